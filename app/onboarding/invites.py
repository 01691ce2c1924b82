from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from app.onboarding.errors import OnboardingError, Reason
from app.onboarding.repository import OnboardingRepository, as_utc
from app.onboarding.security import Clock, Hasher, RandomSource
from app.onboarding.types import Invite, Method, Status, method_of, status_of

TOKEN_BYTES = 32


@dataclass(frozen=True)
class InviteRotation:
    raw_token: str
    invite: Invite
    unset_fields: tuple[str, ...] = ("otp",)

    @property
    def set_fields(self) -> dict[str, Any]:
        return {"invite": self.invite.to_doc()}


class InviteTokenManager:
    """Issues, rotates and validates invite tokens.

    Only ``Hash(rawToken)`` is stored. The raw token is handed back once so it
    can be placed in the outbound email link.
    """

    def __init__(
        self,
        repo: OnboardingRepository,
        *,
        clock: Clock,
        random: RandomSource,
        hasher: Hasher,
        ttl: timedelta,
    ):
        if ttl <= timedelta(0):
            raise ValueError("invite TTL must be positive")
        self._repo = repo
        self._clock = clock
        self._random = random
        self._hasher = hasher
        self._ttl = ttl

    def issue(self) -> tuple[str, Invite]:
        now = self._clock.now()
        raw_token = self._random.token_hex(TOKEN_BYTES)
        invite = Invite(token_hash=self._hasher.digest(raw_token), expires_at=now + self._ttl, last_sent_at=now)
        return raw_token, invite

    def rotate(self, onboarding: dict[str, Any]) -> InviteRotation:
        """New invite replacing the stored one; any OTP goes with the old invite.

        The caller writes ``set_fields``/``unset_fields`` in the same
        conditional update as its status change, so the previous raw token
        stops matching the moment that write lands.
        """
        if method_of(onboarding) != Method.DIGITAL:
            raise OnboardingError.of(Reason.NOT_DIGITAL)
        raw_token, invite = self.issue()
        return InviteRotation(raw_token=raw_token, invite=invite)

    def validate(self, raw_token: str, *, onboarding_id: Any = None) -> dict[str, Any]:
        raw_token = str(raw_token or "").strip()
        if not raw_token:
            raise OnboardingError.of(Reason.INVITE_NOT_FOUND)

        token_hash = self._hasher.digest(raw_token)
        onboarding = self._repo.find_by_invite_hash(token_hash, onboarding_id=onboarding_id)
        invite = Invite.from_doc(onboarding.get("invite")) if onboarding else None
        if onboarding is None or invite is None or not self._hasher.matches(raw_token, invite.token_hash):
            raise OnboardingError.of(Reason.INVITE_NOT_FOUND)

        if as_utc(invite.expires_at) <= self._clock.now():
            raise OnboardingError.of(Reason.INVITE_EXPIRED)

        status = status_of(onboarding)
        if status == Status.APPROVED:
            raise OnboardingError.of(Reason.APPROVED)
        if status == Status.TERMINATED:
            raise OnboardingError.of(Reason.TERMINATED)
        return onboarding
