from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import requests

log = logging.getLogger("app.onboarding.mailer")

_SUBSIDIARY_NAMES = {"IN": "NPT India", "CA": "NPT Canada", "US": "NPT USA"}


class MailDeliveryError(RuntimeError):
    pass


def _full_name(onboarding: dict[str, Any]) -> str:
    return f"{onboarding.get('firstName') or ''} {onboarding.get('lastName') or ''}".strip()


def _company(onboarding: dict[str, Any]) -> str:
    return _SUBSIDIARY_NAMES.get(str(onboarding.get("subsidiary") or ""), "NPT")


class Mailer(ABC):
    """Employee notifications. Every method raises ``MailDeliveryError`` on failure."""

    def __init__(self, *, base_url: str):
        self.base_url = str(base_url or "").rstrip("/")

    def invite_url(self, raw_token: str) -> str:
        return f"{self.base_url}/onboarding?token={raw_token}"

    @abstractmethod
    def deliver(self, *, to: str, subject: str, text: str, tag: str) -> None:
        """Send one plain-text message."""

    def send_invitation(self, onboarding: dict[str, Any], *, invite_token: str | None) -> None:
        company = _company(onboarding)
        if invite_token:
            text = (
                f"Hi {_full_name(onboarding)},\n\n"
                f"Welcome to {company}. Please complete your onboarding form using the link below:\n\n"
                f"{self.invite_url(invite_token)}\n\n"
                "You will be asked for a verification code sent to this address."
            )
        else:
            text = (
                f"Hi {_full_name(onboarding)},\n\n"
                f"Welcome to {company}. Please fill in the onboarding form you received from HR "
                "and return it with your supporting documents."
            )
        self.deliver(to=onboarding["email"], subject=f"{company} onboarding", text=text, tag="invitation")

    def send_otp(self, onboarding: dict[str, Any], *, otp_code: str, expires_in_minutes: int) -> None:
        text = (
            f"Hi {_full_name(onboarding)},\n\n"
            f"Your verification code is {otp_code}. It expires in {expires_in_minutes} minutes."
        )
        self.deliver(to=onboarding["email"], subject="Your onboarding verification code", text=text, tag="otp")

    def send_modification_request(self, onboarding: dict[str, Any], *, invite_token: str, message: str) -> None:
        text = (
            f"Hi {_full_name(onboarding)},\n\n"
            "HR has asked for changes to your onboarding form:\n\n"
            f"{message}\n\n"
            f"Please update your form here: {self.invite_url(invite_token)}"
        )
        self.deliver(to=onboarding["email"], subject="Changes requested on your onboarding", text=text, tag="modification")

    def send_approved(self, onboarding: dict[str, Any]) -> None:
        number = onboarding.get("employeeNumber")
        suffix = f" Your employee number is {number}." if number else ""
        text = f"Hi {_full_name(onboarding)},\n\nYour onboarding with {_company(onboarding)} has been approved.{suffix}"
        self.deliver(to=onboarding["email"], subject="Your onboarding is approved", text=text, tag="approved")

    def send_details_confirmed(self, onboarding: dict[str, Any]) -> None:
        text = f"Hi {_full_name(onboarding)},\n\nHR has confirmed the details in your onboarding form."
        self.deliver(to=onboarding["email"], subject="Your onboarding details are confirmed", text=text, tag="details_confirmed")

    def send_termination_notice(self, onboarding: dict[str, Any]) -> None:
        text = f"Hi {_full_name(onboarding)},\n\nYour onboarding with {_company(onboarding)} has been closed."
        reason = onboarding.get("terminationReason")
        if reason:
            text += f"\n\nReason: {reason}"
        self.deliver(to=onboarding["email"], subject="Your onboarding has been closed", text=text, tag="termination")


class HttpMailer(Mailer):
    """Posts messages to a JSON mail API (one request per message, no retries)."""

    def __init__(self, *, base_url: str, api_url: str, api_key: str, sender: str, timeout_seconds: int = 10):
        super().__init__(base_url=base_url)
        self._api_url = api_url
        self._api_key = api_key
        self._sender = sender
        self._timeout = timeout_seconds

    def deliver(self, *, to: str, subject: str, text: str, tag: str) -> None:
        payload = {"from": self._sender, "to": [to], "subject": subject, "text": text, "tags": [tag]}
        headers = {"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"}
        try:
            resp = requests.post(self._api_url, json=payload, headers=headers, timeout=self._timeout)
        except requests.RequestException as e:
            raise MailDeliveryError(f"Mail provider unreachable: {type(e).__name__}") from e

        if resp.status_code >= 400:
            raise MailDeliveryError(f"Mail provider rejected message (HTTP {resp.status_code})")
        log.info("Mail sent tag=%s status=%s", tag, resp.status_code)


class LogMailer(Mailer):
    """Development mailer: records that a message would be sent, without its body."""

    def deliver(self, *, to: str, subject: str, text: str, tag: str) -> None:
        log.info("Mail (log mode) tag=%s to=%s subject=%s", tag, to, subject)
