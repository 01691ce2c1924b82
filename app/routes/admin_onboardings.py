from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from app.onboarding.service import OnboardingService
from app.onboarding.types import Actor, ActorType
from app.onboarding.views import admin_view
from app.utils.auth import require_roles
from app.utils.validators import require_json

admin_onboardings_bp = Blueprint("admin_onboardings", __name__)

HR_ROLES = ["ADMIN", "HR"]


def _service() -> OnboardingService:
    return OnboardingService(current_app.extensions["onboarding"])


def _actor() -> Actor:
    user = g.current_user
    return Actor(type=ActorType.HR, id=user["id"], name=user.get("name") or user["email"], email=user["email"])


def _optional_json() -> dict:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _onboarding_response(doc, status: int = 200):
    ctx = current_app.extensions["onboarding"]
    return jsonify({"success": True, "data": admin_view(doc, ctx.clock.now())}), status


@admin_onboardings_bp.post("")
@require_roles(HR_ROLES)
def create_onboarding():
    doc = _service().create(require_json(), _actor())
    return _onboarding_response(doc, 201)


@admin_onboardings_bp.get("")
@require_roles(HR_ROLES)
def list_onboardings():
    return jsonify({"success": True, "data": _service().list(request.args)})


@admin_onboardings_bp.get("/<onboarding_id>")
@require_roles(HR_ROLES)
def get_onboarding(onboarding_id: str):
    return jsonify({"success": True, "data": _service().get(onboarding_id)})


@admin_onboardings_bp.put("/<onboarding_id>")
@require_roles(HR_ROLES)
def update_onboarding_form(onboarding_id: str):
    doc = _service().admin_update_form(onboarding_id, require_json(), _actor())
    return _onboarding_response(doc)


@admin_onboardings_bp.delete("/<onboarding_id>")
@require_roles(HR_ROLES)
def delete_onboarding(onboarding_id: str):
    _service().delete(onboarding_id, _actor())
    return jsonify({"success": True, "data": {"id": onboarding_id, "deleted": True}})


@admin_onboardings_bp.post("/<onboarding_id>/resend-invite")
@require_roles(HR_ROLES)
def resend_invite(onboarding_id: str):
    return _onboarding_response(_service().resend_invite(onboarding_id, _actor()))


@admin_onboardings_bp.post("/<onboarding_id>/request-modification")
@require_roles(HR_ROLES)
def request_modification(onboarding_id: str):
    body = require_json()
    return _onboarding_response(_service().request_modification(onboarding_id, body.get("message"), _actor()))


@admin_onboardings_bp.post("/<onboarding_id>/confirm-details")
@require_roles(HR_ROLES)
def confirm_details(onboarding_id: str):
    return _onboarding_response(_service().confirm_details(onboarding_id, _actor()))


@admin_onboardings_bp.post("/<onboarding_id>/approve")
@require_roles(HR_ROLES)
def approve(onboarding_id: str):
    body = _optional_json()
    return _onboarding_response(_service().approve(onboarding_id, body.get("employeeNumber"), _actor()))


@admin_onboardings_bp.post("/<onboarding_id>/terminate")
@require_roles(HR_ROLES)
def terminate(onboarding_id: str):
    body = require_json()
    doc = _service().terminate(onboarding_id, body.get("terminationType"), body.get("terminationReason"), _actor())
    return _onboarding_response(doc)


@admin_onboardings_bp.post("/<onboarding_id>/restore")
@require_roles(HR_ROLES)
def restore(onboarding_id: str):
    return _onboarding_response(_service().restore(onboarding_id, _actor()))


@admin_onboardings_bp.get("/<onboarding_id>/audit-logs")
@require_roles(HR_ROLES)
def audit_logs(onboarding_id: str):
    return jsonify({"success": True, "data": {"items": _service().audit_log(onboarding_id)}})
