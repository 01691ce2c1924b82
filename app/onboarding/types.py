from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class Subsidiary(str, Enum):
    INDIA = "IN"
    CANADA = "CA"
    USA = "US"


class Method(str, Enum):
    DIGITAL = "digital"
    MANUAL = "manual"


class Status(str, Enum):
    INVITE_GENERATED = "InviteGenerated"
    MANUAL_PDF_SENT = "ManualPDFSent"
    MODIFICATION_REQUESTED = "ModificationRequested"
    SUBMITTED = "Submitted"
    RESUBMITTED = "Resubmitted"
    DETAILS_CONFIRMED = "DetailsConfirmed"
    APPROVED = "Approved"
    TERMINATED = "Terminated"


class TerminationType(str, Enum):
    RESIGNED = "resigned"
    COMPANY_TERMINATED = "company_terminated"


class ActorType(str, Enum):
    HR = "HR"
    EMPLOYEE = "EMPLOYEE"
    SYSTEM = "SYSTEM"


class AuditAction(str, Enum):
    STATUS_CHANGED = "STATUS_CHANGED"
    INVITE_GENERATED = "INVITE_GENERATED"
    MANUAL_PDF_SENT = "MANUAL_PDF_SENT"
    INVITE_RESENT = "INVITE_RESENT"
    MODIFICATION_REQUESTED = "MODIFICATION_REQUESTED"
    SUBMITTED = "SUBMITTED"
    RESUBMITTED = "RESUBMITTED"
    DATA_UPDATED = "DATA_UPDATED"
    DETAILS_CONFIRMED = "DETAILS_CONFIRMED"
    APPROVED = "APPROVED"
    TERMINATED = "TERMINATED"


TERMINAL_STATUSES = frozenset({Status.APPROVED, Status.TERMINATED})
EDITABLE_STATUSES = frozenset({Status.INVITE_GENERATED, Status.MODIFICATION_REQUESTED})
PENDING_REVIEW_STATUSES = frozenset({Status.SUBMITTED, Status.RESUBMITTED})

# Each subsidiary stores its form payload under its own key.
FORM_DATA_FIELDS: dict[Subsidiary, str] = {
    Subsidiary.INDIA: "indiaFormData",
    Subsidiary.CANADA: "canadaFormData",
    Subsidiary.USA: "usFormData",
}

STATUS_GROUPS: dict[str, list[Status]] = {
    "pending": [Status.INVITE_GENERATED],
    "modificationRequested": [Status.MODIFICATION_REQUESTED],
    "pendingReview": [Status.SUBMITTED, Status.RESUBMITTED, Status.DETAILS_CONFIRMED],
    "approved": [Status.APPROVED],
    "manual": [Status.MANUAL_PDF_SENT],
    "terminated": [Status.TERMINATED],
}


@dataclass(frozen=True)
class Actor:
    type: ActorType
    name: str
    email: str
    id: str | None = None

    @classmethod
    def system(cls) -> "Actor":
        return cls(type=ActorType.SYSTEM, name="System", email="")

    def to_doc(self) -> dict[str, Any]:
        return {"type": self.type.value, "id": self.id, "name": self.name, "email": self.email}


@dataclass(frozen=True)
class Invite:
    token_hash: str
    expires_at: datetime
    last_sent_at: datetime

    def to_doc(self) -> dict[str, Any]:
        return {"tokenHash": self.token_hash, "expiresAt": self.expires_at, "lastSentAt": self.last_sent_at}

    @classmethod
    def from_doc(cls, doc: dict[str, Any] | None) -> "Invite | None":
        if not doc or not doc.get("tokenHash") or not doc.get("expiresAt"):
            return None
        return cls(
            token_hash=str(doc["tokenHash"]),
            expires_at=doc["expiresAt"],
            last_sent_at=doc.get("lastSentAt") or doc["expiresAt"],
        )


@dataclass(frozen=True)
class Otp:
    otp_hash: str
    expires_at: datetime
    attempts: int
    last_sent_at: datetime
    locked_at: datetime | None = None

    def to_doc(self) -> dict[str, Any]:
        return {
            "otpHash": self.otp_hash,
            "expiresAt": self.expires_at,
            "attempts": self.attempts,
            "lockedAt": self.locked_at,
            "lastSentAt": self.last_sent_at,
        }

    @classmethod
    def from_doc(cls, doc: dict[str, Any] | None) -> "Otp | None":
        if not doc or not doc.get("otpHash"):
            return None
        return cls(
            otp_hash=str(doc["otpHash"]),
            expires_at=doc["expiresAt"],
            attempts=int(doc.get("attempts") or 0),
            last_sent_at=doc.get("lastSentAt") or doc["expiresAt"],
            locked_at=doc.get("lockedAt"),
        )


def parse_enum(enum_cls, value: Any):
    """Return the member of ``enum_cls`` for ``value`` or ``None``."""
    raw = str(value or "").strip()
    if not raw:
        return None
    for member in enum_cls:
        if member.value == raw or member.name == raw.upper():
            return member
    return None


def status_of(doc: dict[str, Any]) -> Status:
    return Status(str(doc.get("status") or ""))


def method_of(doc: dict[str, Any]) -> Method:
    return Method(str(doc.get("method") or ""))


def subsidiary_of(doc: dict[str, Any]) -> Subsidiary:
    return Subsidiary(str(doc.get("subsidiary") or ""))
