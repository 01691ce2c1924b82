from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from app.onboarding.errors import OnboardingError, Reason, http_status_for
from app.onboarding.repository import OnboardingRepository, as_utc, to_object_id
from app.onboarding.security import Clock, Hasher
from app.onboarding.types import PENDING_REVIEW_STATUSES, Invite, Method, Status, method_of, status_of


@dataclass(frozen=True)
class SessionDirective:
    """Cookie instruction for the HTTP layer.

    ``max_age_seconds == 0`` clears the cookie.
    """

    name: str
    value: str
    max_age_seconds: int
    secure: bool = True

    def apply(self, resp) -> None:
        resp.set_cookie(
            self.name,
            self.value,
            max_age=max(0, self.max_age_seconds),
            path="/",
            httponly=True,
            samesite="Lax",
            secure=self.secure,
        )


class SessionIssuer:
    def __init__(self, *, clock: Clock, cookie_name: str, secure: bool = True):
        self._clock = clock
        self.cookie_name = cookie_name
        self._secure = secure

    def issue(self, onboarding: dict[str, Any], raw_invite_token: str) -> SessionDirective:
        """Session bound to the invite token; it dies when the invite does."""
        if method_of(onboarding) != Method.DIGITAL:
            raise OnboardingError.of(Reason.NOT_DIGITAL, "Cannot issue a session for a non-digital onboarding")

        invite = Invite.from_doc(onboarding.get("invite"))
        if invite is None:
            raise OnboardingError.of(Reason.INVITE_MISSING)

        remaining = as_utc(invite.expires_at) - self._clock.now()
        max_age = int(remaining.total_seconds())
        if max_age <= 0:
            raise OnboardingError.of(Reason.INVITE_EXPIRED)
        return SessionDirective(self.cookie_name, raw_invite_token, max_age, self._secure)

    def clear(self) -> SessionDirective:
        return SessionDirective(self.cookie_name, "", 0, self._secure)


class SessionGuard:
    """Resolves the employee cookie (raw invite token) to an accessible onboarding."""

    def __init__(self, repo: OnboardingRepository, *, clock: Clock, hasher: Hasher):
        self._repo = repo
        self._clock = clock
        self._hasher = hasher

    def _fail(self, reason: Reason) -> OnboardingError:
        # Only a dead session clears the cookie; read-only access keeps it.
        details = {"clearCookie": True} if http_status_for(reason) == 401 else None
        return OnboardingError.of(reason, details=details)

    def require(self, onboarding_id: Any, raw_token: str | None, *, allow_read_only: bool = True) -> dict[str, Any]:
        raw_token = str(raw_token or "").strip()
        if not raw_token:
            raise self._fail(Reason.MISSING_OR_INVALID_COOKIE)
        if to_object_id(onboarding_id) is None:
            raise self._fail(Reason.INVALID_ONBOARDING_ID)

        onboarding = self._repo.find_by_invite_hash(self._hasher.digest(raw_token), onboarding_id=onboarding_id)
        if onboarding is None:
            raise self._fail(Reason.SESSION_NOT_FOUND_OR_MISMATCH)

        invite = Invite.from_doc(onboarding.get("invite"))
        if invite is None or not self._hasher.matches(raw_token, invite.token_hash):
            raise self._fail(Reason.INVITE_MISSING)
        if as_utc(invite.expires_at) <= self._clock.now():
            raise self._fail(Reason.INVITE_EXPIRED)

        status = status_of(onboarding)
        if status == Status.APPROVED:
            raise self._fail(Reason.APPROVED)
        if status == Status.TERMINATED:
            raise self._fail(Reason.TERMINATED)

        if not allow_read_only and status in PENDING_REVIEW_STATUSES:
            raise self._fail(Reason.READ_ONLY_STATE)
        return onboarding
