from __future__ import annotations

from datetime import datetime
from typing import Any

from bson import ObjectId

from app.onboarding import access
from app.onboarding.types import FORM_DATA_FIELDS, Invite, Otp, subsidiary_of
from app.utils.datetime import to_iso

_EMPLOYEE_HIDDEN = {"invite", "otp", "approvedAt", "terminatedAt", "version"}


def _serialize(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_serialize(v) for v in value]
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, ObjectId):
        return str(value)
    return value


def _with_id(doc: dict[str, Any]) -> dict[str, Any]:
    out = {k: v for k, v in doc.items() if k != "_id"}
    out["id"] = str(doc["_id"])
    return out


def admin_view(doc: dict[str, Any], now: datetime) -> dict[str, Any]:
    """HR representation: hashes removed, access flags computed."""
    out = _with_id(doc)
    out.pop("version", None)

    invite = Invite.from_doc(doc.get("invite"))
    if invite is not None:
        out["invite"] = {"expiresAt": invite.expires_at, "lastSentAt": invite.last_sent_at}
    otp = Otp.from_doc(doc.get("otp"))
    if otp is not None:
        out["otp"] = {
            "expiresAt": otp.expires_at,
            "attempts": otp.attempts,
            "lockedAt": otp.locked_at,
            "lastSentAt": otp.last_sent_at,
        }
    out.update(access.evaluate(doc, now).to_dict())
    return _serialize(out)


def admin_summary(doc: dict[str, Any]) -> dict[str, Any]:
    keep = (
        "subsidiary",
        "method",
        "status",
        "firstName",
        "lastName",
        "email",
        "employeeNumber",
        "isFormComplete",
        "createdAt",
        "updatedAt",
        "submittedAt",
        "approvedAt",
        "terminatedAt",
    )
    out = {"id": str(doc["_id"])}
    out.update({k: doc[k] for k in keep if k in doc})
    return _serialize(out)


def employee_context(doc: dict[str, Any], now: datetime) -> dict[str, Any]:
    """Employee-facing record: secrets stripped, only the own subsidiary's form."""
    own_form = FORM_DATA_FIELDS[subsidiary_of(doc)]
    other_forms = set(FORM_DATA_FIELDS.values()) - {own_form}

    out = {k: v for k, v in _with_id(doc).items() if k not in _EMPLOYEE_HIDDEN and k not in other_forms}
    decision = access.evaluate(doc, now)
    out["canEdit"] = decision.can_edit
    out["isReadOnly"] = decision.is_read_only
    return _serialize(out)


def audit_entry_view(entry: dict[str, Any]) -> dict[str, Any]:
    out = _with_id(entry)
    out["onboardingId"] = str(entry.get("onboardingId") or "")
    return _serialize(out)
