from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Any

from flask import Blueprint, current_app, jsonify, request

from pymongo.errors import DuplicateKeyError

from app.utils.auth import create_access_token, get_current_user, hash_password, require_roles, verify_password
from app.utils.errors import ApiError
from app.utils.validators import require_json, validate_email, validate_password


auth_bp = Blueprint("auth", __name__)

STAFF_ROLES = ("ADMIN", "HR")


def _role(value: Any, default: str) -> str:
    role = str(value or "").strip().upper() or default
    if role not in STAFF_ROLES:
        raise ApiError("BAD_REQUEST", "Invalid role", status=400, details={"allowed": list(STAFF_ROLES)})
    return role


def _new_user(body: dict[str, Any], *, default_role: str) -> dict[str, Any]:
    email = validate_email(body.get("email"))
    password = validate_password(body.get("password"), allow_short=False)
    now = datetime.now(timezone.utc)
    return {
        "email": email,
        "name": str(body.get("name") or "").strip(),
        "passwordHash": hash_password(password),
        "role": _role(body.get("role"), default_role),
        "status": "ACTIVE",
        "createdAt": now,
        "updatedAt": now,
    }


@auth_bp.post("/bootstrap")
def bootstrap():
    bootstrap_token = str(os.getenv("BOOTSTRAP_TOKEN", "") or "").strip()
    if not bootstrap_token:
        raise ApiError("FORBIDDEN", "Bootstrap is disabled", status=403)

    provided = str(request.headers.get("X-Bootstrap-Token") or "").strip()
    if not provided or provided != bootstrap_token:
        raise ApiError("FORBIDDEN", "Invalid bootstrap token", status=403)

    db = current_app.extensions["mongo_db"]
    if db.users.count_documents({}) > 0:
        raise ApiError("CONFLICT", "Bootstrap already completed", status=409)

    user = _new_user(require_json(), default_role="ADMIN")
    db.users.insert_one(user)

    return jsonify({"success": True, "data": {"email": user["email"], "role": user["role"]}}), 201


@auth_bp.post("/login")
def login():
    body = require_json()
    email = validate_email(body.get("email"))
    password = validate_password(body.get("password"), allow_short=False)

    db = current_app.extensions["mongo_db"]
    user = db.users.find_one({"email": email})
    if not user:
        raise ApiError("AUTH_INVALID", "Invalid credentials", status=401)

    if str(user.get("status") or "ACTIVE").upper() != "ACTIVE":
        raise ApiError("FORBIDDEN", "User is disabled", status=403)

    if not verify_password(password, str(user.get("passwordHash") or "")):
        raise ApiError("AUTH_INVALID", "Invalid credentials", status=401)

    token = create_access_token(current_app, user)
    db.users.update_one({"_id": user["_id"]}, {"$set": {"lastLoginAt": datetime.now(timezone.utc)}})

    return jsonify(
        {
            "success": True,
            "data": {
                "access_token": token,
                "token_type": "bearer",
                "user": {"id": str(user["_id"]), "email": user["email"], "role": user.get("role", "")},
            },
        }
    )


@auth_bp.get("/me")
def me():
    user = get_current_user()
    return jsonify({"success": True, "data": user})


@auth_bp.post("/users")
@require_roles(["ADMIN"])
def create_user():
    user = _new_user(require_json(), default_role="HR")

    db = current_app.extensions["mongo_db"]
    try:
        db.users.insert_one(user)
    except DuplicateKeyError as e:
        raise ApiError("CONFLICT", "Email already exists", status=409) from e

    return jsonify({"success": True, "data": {"email": user["email"], "role": user["role"]}}), 201
