from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from app.middlewares.error_handler import error_payload
from app.onboarding.errors import OnboardingError
from app.onboarding.service import OnboardingService
from app.utils.validators import require_json

employee_onboarding_bp = Blueprint("employee_onboarding", __name__)


def _ctx():
    return current_app.extensions["onboarding"]


def _session_token() -> str | None:
    return request.cookies.get(_ctx().cfg.ONBOARDING_SESSION_COOKIE_NAME)


@employee_onboarding_bp.errorhandler(OnboardingError)
def _onboarding_error(err: OnboardingError):
    resp = jsonify(error_payload(err.code, err.message, err.details, err.reason))
    resp.status_code = err.status
    if isinstance(err.details, dict) and err.details.get("clearCookie"):
        _ctx().sessions.clear().apply(resp)
    return resp


@employee_onboarding_bp.post("/invite/verify")
def verify_invite():
    body = require_json()
    data = OnboardingService(_ctx()).verify_invite(body.get("token"))
    return jsonify({"success": True, "message": "Verification code sent", "data": data})


@employee_onboarding_bp.post("/otp/verify")
def verify_otp():
    body = require_json()
    data, directive = OnboardingService(_ctx()).verify_otp(body.get("token"), body.get("otp"))
    resp = jsonify({"success": True, "message": "Verification successful", "data": data})
    directive.apply(resp)
    return resp


@employee_onboarding_bp.get("/<onboarding_id>")
def get_context(onboarding_id: str):
    data = OnboardingService(_ctx()).employee_context(onboarding_id, _session_token())
    return jsonify({"success": True, "data": data})


@employee_onboarding_bp.post("/<onboarding_id>")
def submit(onboarding_id: str):
    data = OnboardingService(_ctx()).employee_submit(onboarding_id, _session_token(), require_json())
    return jsonify({"success": True, "message": "Onboarding submitted", "data": data})
