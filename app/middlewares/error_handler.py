from __future__ import annotations

import logging
from typing import Any

from flask import Flask, g, jsonify
from werkzeug.exceptions import HTTPException

from app.onboarding.errors import Reason, http_status_for
from app.onboarding.mailer import MailDeliveryError
from app.utils.errors import ApiError


def error_payload(code: str, message: str, details: Any = None, reason: str | None = None) -> dict[str, Any]:
    error: dict[str, Any] = {"code": code, "message": message, "details": details}
    if reason:
        error["reason"] = reason
    payload: dict[str, Any] = {"success": False, "error": error}
    if getattr(g, "request_id", None):
        payload["request_id"] = g.request_id
    return payload


def init_error_handlers(app: Flask) -> None:
    @app.errorhandler(ApiError)
    def _api_error(err: ApiError):
        return jsonify(error_payload(err.code, err.message, err.details, err.reason)), err.status

    @app.errorhandler(MailDeliveryError)
    def _mail_error(err: MailDeliveryError):
        # The action was rolled back before this reached the handler.
        logging.getLogger("app").error(
            "Mail delivery failed request_id=%s error=%s", getattr(g, "request_id", ""), err
        )
        reason = Reason.MAIL_DELIVERY_FAILED
        payload = error_payload(
            "INTERNAL", "Email delivery failed; no changes were saved", None, reason.value
        )
        return jsonify(payload), http_status_for(reason)

    @app.errorhandler(HTTPException)
    def _http_error(err: HTTPException):
        code = f"HTTP_{int(err.code or 500)}"
        payload = error_payload(code, str(err.description or "HTTP error"))
        return jsonify(payload), int(err.code or 500)

    @app.errorhandler(Exception)
    def _unhandled(err: Exception):
        logging.getLogger("app").exception(
            "Unhandled exception request_id=%s", getattr(g, "request_id", "")
        )
        return jsonify(error_payload("INTERNAL", "Unexpected error")), 500
