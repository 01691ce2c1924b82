from __future__ import annotations

import base64
import binascii
import copy
import hashlib
import os
import re
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from app.onboarding.types import FORM_DATA_FIELDS, Subsidiary

_PREFIX = "v1:"
_NONCE_LEN = 12
_HEX_KEY_RE = re.compile(r"[0-9a-fA-F]{64}")

# Government ID and banking numbers inside each subsidiary's form payload.
SENSITIVE_FORM_PATHS: dict[Subsidiary, tuple[tuple[str, ...], ...]] = {
    Subsidiary.INDIA: (
        ("governmentIds", "aadhaar", "aadhaarNumber"),
        ("governmentIds", "panCard", "panNumber"),
        ("bankDetails", "accountNumber"),
        ("bankDetails", "ifscCode"),
        ("bankDetails", "upiId"),
    ),
    Subsidiary.CANADA: (
        ("governmentIds", "sin", "sinNumber"),
        ("bankDetails", "institutionNumber"),
        ("bankDetails", "transitNumber"),
        ("bankDetails", "accountNumber"),
    ),
    Subsidiary.USA: (
        ("governmentIds", "ssn", "ssnNumber"),
        ("bankDetails", "routingNumber"),
        ("bankDetails", "accountNumber"),
    ),
}

_SUBSIDIARY_BY_FIELD = {field: subsidiary for subsidiary, field in FORM_DATA_FIELDS.items()}


class FieldDecryptError(ValueError):
    pass


def derive_key(key_material: str) -> bytes:
    """
    Returns a 32-byte AES-256-GCM key.

    Accepts base64-encoded 32 bytes, 64-char hex, or any passphrase (hashed with
    SHA-256; use a strong random secret in production).
    """

    s = str(key_material or "").strip()
    if not s:
        raise ValueError("Field encryption key is empty")

    try:
        raw = base64.b64decode(s, validate=True)
        if len(raw) == 32:
            return raw
    except (binascii.Error, ValueError):
        pass

    if _HEX_KEY_RE.fullmatch(s):
        return bytes.fromhex(s)

    return hashlib.sha256(s.encode("utf-8")).digest()


class FieldCipher:
    """AES-256-GCM for single string fields, stored as ``v1:<urlsafe b64(nonce + ciphertext)>``."""

    def __init__(self, key_material: str):
        self._aesgcm = AESGCM(derive_key(key_material))

    def encrypt(self, plaintext: str, *, aad: str = "") -> str:
        nonce = os.urandom(_NONCE_LEN)
        ct = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), aad.encode("utf-8") if aad else None)
        return _PREFIX + base64.urlsafe_b64encode(nonce + ct).decode("ascii")

    def decrypt(self, value: str, *, aad: str = "") -> str:
        if not value.startswith(_PREFIX):
            # Written before encryption was enabled.
            return value
        try:
            blob = base64.urlsafe_b64decode(value[len(_PREFIX) :].encode("ascii"))
            if len(blob) <= _NONCE_LEN:
                raise FieldDecryptError("Encrypted field is truncated")
            pt = self._aesgcm.decrypt(blob[:_NONCE_LEN], blob[_NONCE_LEN:], aad.encode("utf-8") if aad else None)
        except (binascii.Error, InvalidTag) as e:
            raise FieldDecryptError(f"Cannot decrypt field {aad or '?'}") from e
        return pt.decode("utf-8")

    def _transform(self, doc: dict[str, Any], encrypt: bool) -> dict[str, Any]:
        out = dict(doc)
        for field, subsidiary in _SUBSIDIARY_BY_FIELD.items():
            form = out.get(field)
            if not isinstance(form, dict):
                continue
            form = copy.deepcopy(form)
            for path in SENSITIVE_FORM_PATHS[subsidiary]:
                parent = form
                for part in path[:-1]:
                    parent = parent.get(part) if isinstance(parent, dict) else None
                if not isinstance(parent, dict):
                    continue
                value = parent.get(path[-1])
                if not isinstance(value, str) or not value:
                    continue
                aad = ".".join((field,) + path)
                parent[path[-1]] = self.encrypt(value, aad=aad) if encrypt else self.decrypt(value, aad=aad)
            out[field] = form
        return out

    def encrypt_forms(self, doc: dict[str, Any]) -> dict[str, Any]:
        """Copy of ``doc`` with sensitive form values encrypted. ``doc`` is left as is."""
        return self._transform(doc, encrypt=True)

    def decrypt_forms(self, doc: dict[str, Any] | None) -> dict[str, Any] | None:
        if doc is None:
            return None
        return self._transform(doc, encrypt=False)
