from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timezone


def _to_millis(dt: datetime) -> datetime:
    # MongoDB stores datetimes with millisecond precision.
    return dt.replace(microsecond=(dt.microsecond // 1000) * 1000)


class Clock:
    def now(self) -> datetime:
        return _to_millis(datetime.now(timezone.utc))


class RandomSource:
    """CSPRNG-backed generator for invite tokens and OTP codes."""

    def token_hex(self, nbytes: int = 32) -> str:
        return secrets.token_hex(nbytes)

    def digits(self, length: int = 6) -> str:
        # First digit is never zero so the code is always `length` characters.
        first = str(secrets.randbelow(9) + 1)
        rest = "".join(str(secrets.randbelow(10)) for _ in range(length - 1))
        return first + rest


class Hasher:
    """Deterministic HMAC-SHA256 digest with constant-time comparison."""

    def __init__(self, secret: str):
        if not str(secret or "").strip():
            raise RuntimeError("HASH_SECRET must be set")
        self._key = str(secret).encode("utf-8")

    def digest(self, value: str) -> str:
        return hmac.new(self._key, str(value).encode("utf-8"), hashlib.sha256).hexdigest()

    def matches(self, value: str, expected_hash: str) -> bool:
        if not value or not expected_hash:
            return False
        return hmac.compare_digest(self.digest(value), str(expected_hash))
