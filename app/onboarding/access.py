"""Employee access predicates derived from onboarding status and invite state.

These functions never touch storage; every employee-facing read or write
asks them first.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from app.onboarding.repository import as_utc
from app.onboarding.types import (
    EDITABLE_STATUSES,
    PENDING_REVIEW_STATUSES,
    TERMINAL_STATUSES,
    Invite,
    Method,
    Status,
)


def can_access(status: Status, method: Method, invite: Invite | None, now: datetime) -> bool:
    if method != Method.DIGITAL or invite is None:
        return False
    if status in TERMINAL_STATUSES:
        return False
    return as_utc(invite.expires_at) > now


def can_edit(status: Status, method: Method, invite: Invite | None, now: datetime) -> bool:
    return can_access(status, method, invite, now) and status in EDITABLE_STATUSES


def is_read_only(status: Status, method: Method, invite: Invite | None, now: datetime) -> bool:
    if not can_access(status, method, invite, now):
        return True
    return status in PENDING_REVIEW_STATUSES


@dataclass(frozen=True)
class AccessDecision:
    can_access: bool
    can_edit: bool
    is_read_only: bool

    def to_dict(self) -> dict[str, bool]:
        return {"canAccess": self.can_access, "canEdit": self.can_edit, "isReadOnly": self.is_read_only}


def evaluate(doc: dict[str, Any], now: datetime) -> AccessDecision:
    status = Status(doc["status"])
    method = Method(doc["method"])
    invite = Invite.from_doc(doc.get("invite"))
    return AccessDecision(
        can_access=can_access(status, method, invite, now),
        can_edit=can_edit(status, method, invite, now),
        is_read_only=is_read_only(status, method, invite, now),
    )
