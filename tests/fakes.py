from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from app.onboarding.assets import AssetStore, AssetStoreError
from app.onboarding.mailer import MailDeliveryError, Mailer
from app.onboarding.security import Clock
from app.onboarding.types import Actor, ActorType


class FrozenClock(Clock):
    def __init__(self, start: datetime):
        self._now = start

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> datetime:
        self._now = self._now + timedelta(**kwargs)
        return self._now


class RecordingMailer(Mailer):
    """Keeps every message; tags listed in ``fail_tags`` raise instead."""

    def __init__(self):
        super().__init__(base_url="http://onboarding.test")
        self.messages: list[dict[str, Any]] = []
        self.invite_tokens: list[str] = []
        self.otp_codes: list[str] = []
        self.fail_tags: set[str] = set()

    def deliver(self, *, to: str, subject: str, text: str, tag: str) -> None:
        if tag in self.fail_tags:
            raise MailDeliveryError(f"simulated failure for {tag}")
        self.messages.append({"to": to, "subject": subject, "text": text, "tag": tag})

    def send_invitation(self, onboarding, *, invite_token):
        super().send_invitation(onboarding, invite_token=invite_token)
        if invite_token:
            self.invite_tokens.append(invite_token)

    def send_modification_request(self, onboarding, *, invite_token, message):
        super().send_modification_request(onboarding, invite_token=invite_token, message=message)
        self.invite_tokens.append(invite_token)

    def send_otp(self, onboarding, *, otp_code, expires_in_minutes):
        super().send_otp(onboarding, otp_code=otp_code, expires_in_minutes=expires_in_minutes)
        self.otp_codes.append(otp_code)

    @property
    def tags(self) -> list[str]:
        return [m["tag"] for m in self.messages]


class RecordingAssetStore(AssetStore):
    """Remembers deleted keys; set ``fail`` to make deletes raise."""

    def __init__(self):
        self.deleted: list[str] = []
        self.fail = False

    def delete_many(self, keys: list[str]) -> None:
        if self.fail:
            raise AssetStoreError("simulated storage outage")
        self.deleted.extend(keys)


HR = Actor(type=ActorType.HR, id="hr-1", name="Hannah Reyes", email="hr@example.com")


def seed_onboarding(ctx, *, method: str = "digital", status: str | None = None, **fields) -> tuple[dict, str | None]:
    """Insert an onboarding directly; returns ``(doc, rawInviteToken)``."""
    now = ctx.clock.now()
    doc: dict[str, Any] = {
        "subsidiary": "IN",
        "method": method,
        "status": status or ("InviteGenerated" if method == "digital" else "ManualPDFSent"),
        "firstName": "Asha",
        "lastName": "Verma",
        "email": "asha.verma@example.com",
        "isFormComplete": False,
        "isCompleted": False,
        "createdAt": now,
        "updatedAt": now,
    }
    raw_token = None
    if method == "digital":
        raw_token, invite = ctx.invites.issue()
        doc["invite"] = invite.to_doc()
    doc.update(fields)
    return ctx.repo.insert(doc), raw_token


def form_payload() -> dict[str, Any]:
    return {
        "personalInfo": {"firstName": "ignored", "dob": "1994-02-11", "phone": "+91 98100 00000"},
        "bankDetails": {"accountNumber": "0001112223", "ifsc": "HDFC0000123"},
        "documents": {"panCard": {"s3Key": "onboardings/in/pan.pdf", "name": "pan.pdf"}},
    }
