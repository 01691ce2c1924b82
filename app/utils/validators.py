from __future__ import annotations

import re
from typing import Any

from flask import request

from app.utils.errors import ApiError

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def require_json() -> dict[str, Any]:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ApiError("BAD_REQUEST", "JSON body must be an object", status=400)
    return body


def validate_email(value: Any) -> str:
    email = str(value or "").strip().lower()
    if not email or not _EMAIL_RE.match(email):
        raise ApiError("BAD_REQUEST", "Invalid email", status=400)
    return email


def validate_password(value: Any, *, allow_short: bool) -> str:
    password = str(value or "")
    if not password:
        raise ApiError("BAD_REQUEST", "Password required", status=400)
    if not allow_short and len(password) < 8:
        raise ApiError("BAD_REQUEST", "Password must be at least 8 characters", status=400)
    return password
