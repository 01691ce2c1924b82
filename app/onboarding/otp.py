from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from app.onboarding.errors import OnboardingError, Reason
from app.onboarding.repository import OnboardingRepository, as_utc
from app.onboarding.security import Clock, Hasher, RandomSource
from app.onboarding.session import SessionDirective, SessionIssuer
from app.onboarding.types import Otp, status_of

log = logging.getLogger("app.onboarding.otp")

OTP_LENGTH = 6


@dataclass(frozen=True)
class OtpPolicy:
    ttl: timedelta = timedelta(minutes=10)
    max_attempts: int = 3
    lock_duration: timedelta = timedelta(minutes=15)
    resend_interval: timedelta = timedelta(seconds=60)


class OtpChallengeManager:
    """Six-digit second factor issued after a valid invite link.

    Failed attempts are counted with conditional increments so parallel wrong
    guesses cannot both slip under the limit; the increment that reaches
    ``max_attempts`` is the one that sets ``lockedAt``.
    """

    def __init__(
        self,
        repo: OnboardingRepository,
        *,
        clock: Clock,
        random: RandomSource,
        hasher: Hasher,
        sessions: SessionIssuer,
        policy: OtpPolicy | None = None,
    ):
        self._repo = repo
        self._clock = clock
        self._random = random
        self._hasher = hasher
        self._sessions = sessions
        self.policy = policy or OtpPolicy()

    # -- issuing ----------------------------------------------------------

    def _lock_active(self, otp: Otp | None, now: datetime) -> bool:
        if otp is None or otp.locked_at is None:
            return False
        return now - as_utc(otp.locked_at) < self.policy.lock_duration

    def ensure_can_issue(self, onboarding: dict[str, Any]) -> None:
        now = self._clock.now()
        otp = Otp.from_doc(onboarding.get("otp"))
        if self._lock_active(otp, now):
            raise OnboardingError.of(Reason.OTP_LOCKED)

        if otp is not None and otp.last_sent_at is not None:
            since = now - as_utc(otp.last_sent_at)
            if since < self.policy.resend_interval:
                retry_after = math.ceil((self.policy.resend_interval - since).total_seconds())
                raise OnboardingError.of(Reason.OTP_THROTTLED, details={"retryAfterSeconds": retry_after})

    def issue(self, onboarding: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        """Store a fresh OTP hash and return ``(rawOtp, updatedOnboarding)``."""
        now = self._clock.now()
        raw_otp = self._random.digits(OTP_LENGTH)
        otp = Otp(
            otp_hash=self._hasher.digest(raw_otp),
            expires_at=now + self.policy.ttl,
            attempts=0,
            last_sent_at=now,
            locked_at=None,
        )
        updated = self._repo.conditional_update(
            onboarding["_id"],
            status_of(onboarding),
            set_fields={"otp": otp.to_doc()},
            expected_version=onboarding.get("version"),
        )
        if updated is None:
            raise OnboardingError.of(Reason.STATUS_CONFLICT)
        return raw_otp, updated

    # -- verification -----------------------------------------------------

    def _reset_elapsed_lock(self, onboarding: dict[str, Any], otp: Otp) -> Otp:
        """Give a fresh attempt budget once the lock window has passed."""
        updated = self._repo.update_otp_if(
            onboarding["_id"],
            {"otp.otpHash": otp.otp_hash, "otp.attempts": otp.attempts, "otp.lockedAt": {"$ne": None}},
            {"$set": {"otp.attempts": 0, "otp.lockedAt": None}},
        )
        if updated is None:
            # Someone else reset or reissued first; use what is stored now.
            current = self._repo.find_by_id(onboarding["_id"])
            refreshed = Otp.from_doc((current or {}).get("otp"))
            if refreshed is None:
                raise OnboardingError.of(Reason.OTP_NOT_ISSUED)
            return refreshed
        log.info("OTP lock window elapsed; attempts reset onboarding_id=%s", onboarding["_id"])
        return Otp.from_doc(updated["otp"])

    def _stale_failure(self, onboarding: dict[str, Any], otp: Otp) -> OnboardingError:
        """Explain a conditional OTP write that matched nothing, from what is stored now."""
        current = self._repo.find_by_id(onboarding["_id"])
        stored = Otp.from_doc((current or {}).get("otp"))
        if stored is None:
            return OnboardingError.of(Reason.OTP_NOT_ISSUED)
        if stored.locked_at is not None or stored.attempts >= self.policy.max_attempts:
            return OnboardingError.of(Reason.OTP_LOCKED)
        if stored.otp_hash != otp.otp_hash:
            # Reissued meanwhile; the submitted code belongs to the old OTP.
            remaining = max(0, self.policy.max_attempts - stored.attempts)
            return OnboardingError.of(Reason.OTP_INVALID, details={"remainingAttempts": remaining})
        return OnboardingError.of(Reason.OTP_LOCKED)

    def _register_failure(self, onboarding: dict[str, Any], otp: Otp) -> OnboardingError:
        max_attempts = self.policy.max_attempts
        base = {"otp.otpHash": otp.otp_hash, "otp.lockedAt": None}

        updated = self._repo.update_otp_if(
            onboarding["_id"],
            {**base, "otp.attempts": {"$lt": max_attempts - 1}},
            {"$inc": {"otp.attempts": 1}},
        )
        if updated is not None:
            attempts = int(updated["otp"]["attempts"])
            return OnboardingError.of(
                Reason.OTP_INVALID, details={"remainingAttempts": max(0, max_attempts - attempts)}
            )

        locked = self._repo.update_otp_if(
            onboarding["_id"],
            {**base, "otp.attempts": max_attempts - 1},
            {"$inc": {"otp.attempts": 1}, "$set": {"otp.lockedAt": self._clock.now()}},
        )
        if locked is not None:
            log.warning("OTP locked after %s failed attempts onboarding_id=%s", max_attempts, onboarding["_id"])
            return OnboardingError.of(Reason.OTP_MAX_ATTEMPTS_EXCEEDED)

        return self._stale_failure(onboarding, otp)

    def verify(self, onboarding: dict[str, Any], submitted_otp: str, raw_invite_token: str) -> SessionDirective:
        now = self._clock.now()
        otp = Otp.from_doc(onboarding.get("otp"))
        if otp is None:
            raise OnboardingError.of(Reason.OTP_NOT_ISSUED)

        if otp.locked_at is not None:
            if self._lock_active(otp, now):
                raise OnboardingError.of(Reason.OTP_LOCKED)
            otp = self._reset_elapsed_lock(onboarding, otp)

        if as_utc(otp.expires_at) <= now:
            raise OnboardingError.of(Reason.OTP_EXPIRED)

        submitted = str(submitted_otp or "").strip()
        if not self._hasher.matches(submitted, otp.otp_hash):
            raise self._register_failure(onboarding, otp)

        # Only an unlocked OTP under the attempt limit may clear its counters.
        updated = self._repo.update_otp_if(
            onboarding["_id"],
            {
                "otp.otpHash": otp.otp_hash,
                "otp.lockedAt": None,
                "otp.attempts": {"$lt": self.policy.max_attempts},
            },
            {"$set": {"otp.attempts": 0, "otp.lockedAt": None}},
        )
        if updated is None:
            raise self._stale_failure(onboarding, otp)
        # The OTP stays valid until it expires; success does not consume it.
        return self._sessions.issue(updated, raw_invite_token)
