from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from app.utils.errors import ApiError


class Reason(str, Enum):
    ONBOARDING_NOT_FOUND = "ONBOARDING_NOT_FOUND"
    INVALID_ONBOARDING_ID = "INVALID_ONBOARDING_ID"
    MISSING_FIELDS = "MISSING_FIELDS"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    UNSUPPORTED_SUBSIDIARY = "UNSUPPORTED_SUBSIDIARY"
    INVALID_METHOD = "INVALID_METHOD"
    DUPLICATE_ONBOARDING = "DUPLICATE_ONBOARDING"
    NOT_DIGITAL = "NOT_DIGITAL"
    STATUS_NOT_INVITE_GENERATED = "STATUS_NOT_INVITE_GENERATED"
    STATUS_NOT_SUBMITTED_OR_RESUBMITTED = "STATUS_NOT_SUBMITTED_OR_RESUBMITTED"
    STATUS_NOT_EDITABLE = "STATUS_NOT_EDITABLE"
    STATUS_NOT_TERMINATED = "STATUS_NOT_TERMINATED"
    ALREADY_APPROVED = "ALREADY_APPROVED"
    ALREADY_TERMINATED = "ALREADY_TERMINATED"
    ALREADY_DETAILS_CONFIRMED = "ALREADY_DETAILS_CONFIRMED"
    FORM_INCOMPLETE = "FORM_INCOMPLETE"
    MESSAGE_REQUIRED = "MESSAGE_REQUIRED"
    TERMINATION_TYPE_REQUIRED = "TERMINATION_TYPE_REQUIRED"
    EMPLOYEE_NUMBER_TAKEN = "EMPLOYEE_NUMBER_TAKEN"
    STATUS_CONFLICT = "STATUS_CONFLICT"
    INVITE_NOT_FOUND = "INVITE_NOT_FOUND"
    INVITE_EXPIRED = "INVITE_EXPIRED"
    INVITE_MISSING = "INVITE_MISSING"
    APPROVED = "APPROVED"
    TERMINATED = "TERMINATED"
    MISSING_OR_INVALID_COOKIE = "MISSING_OR_INVALID_COOKIE"
    SESSION_NOT_FOUND_OR_MISMATCH = "SESSION_NOT_FOUND_OR_MISMATCH"
    READ_ONLY_STATE = "READ_ONLY_STATE"
    OTP_NOT_ISSUED = "OTP_NOT_ISSUED"
    OTP_LOCKED = "OTP_LOCKED"
    OTP_EXPIRED = "OTP_EXPIRED"
    OTP_INVALID = "OTP_INVALID"
    OTP_MAX_ATTEMPTS_EXCEEDED = "OTP_MAX_ATTEMPTS_EXCEEDED"
    OTP_THROTTLED = "OTP_THROTTLED"
    MAIL_DELIVERY_FAILED = "MAIL_DELIVERY_FAILED"


# reason -> (http status, error code, default message)
_REASONS: dict[Reason, tuple[int, str, str]] = {
    Reason.ONBOARDING_NOT_FOUND: (404, "NOT_FOUND", "Onboarding not found"),
    Reason.INVALID_ONBOARDING_ID: (401, "SESSION_REQUIRED", "Session expired, new invite required"),
    Reason.MISSING_FIELDS: (400, "BAD_REQUEST", "Missing required fields"),
    Reason.INVALID_PAYLOAD: (400, "BAD_REQUEST", "Invalid onboarding data"),
    Reason.UNSUPPORTED_SUBSIDIARY: (400, "BAD_REQUEST", "Subsidiary is not supported for onboarding"),
    Reason.INVALID_METHOD: (400, "BAD_REQUEST", "Invalid onboarding method"),
    Reason.DUPLICATE_ONBOARDING: (409, "CONFLICT", "An onboarding already exists for this email in this subsidiary"),
    Reason.NOT_DIGITAL: (400, "BAD_REQUEST", "Only allowed for digital onboardings"),
    Reason.STATUS_NOT_INVITE_GENERATED: (400, "BAD_REQUEST", "Cannot resend invite in the current onboarding state"),
    Reason.STATUS_NOT_SUBMITTED_OR_RESUBMITTED: (
        400,
        "BAD_REQUEST",
        "Modification can only be requested on submitted digital onboardings",
    ),
    Reason.STATUS_NOT_EDITABLE: (403, "FORBIDDEN", "Onboarding is not editable in the current state"),
    Reason.STATUS_NOT_TERMINATED: (400, "BAD_REQUEST", "Only terminated onboardings allow this action"),
    Reason.ALREADY_APPROVED: (400, "BAD_REQUEST", "Onboarding is already approved"),
    Reason.ALREADY_TERMINATED: (400, "BAD_REQUEST", "Onboarding is terminated"),
    Reason.ALREADY_DETAILS_CONFIRMED: (400, "BAD_REQUEST", "Details are already confirmed"),
    Reason.FORM_INCOMPLETE: (400, "BAD_REQUEST", "The onboarding form is not fully completed"),
    Reason.MESSAGE_REQUIRED: (400, "BAD_REQUEST", "Modification message is required"),
    Reason.TERMINATION_TYPE_REQUIRED: (400, "BAD_REQUEST", "terminationType is required"),
    Reason.EMPLOYEE_NUMBER_TAKEN: (409, "CONFLICT", "Employee number already in use for this subsidiary"),
    Reason.STATUS_CONFLICT: (409, "CONFLICT", "Onboarding was changed by another request; reload and retry"),
    Reason.INVITE_NOT_FOUND: (401, "AUTH_INVALID", "Invite link is invalid or has expired"),
    Reason.INVITE_EXPIRED: (401, "SESSION_REQUIRED", "Invite link has expired"),
    Reason.INVITE_MISSING: (401, "SESSION_REQUIRED", "Invite no longer valid"),
    Reason.APPROVED: (401, "AUTH_INVALID", "Onboarding is no longer accessible"),
    Reason.TERMINATED: (401, "AUTH_INVALID", "Onboarding is no longer accessible"),
    Reason.MISSING_OR_INVALID_COOKIE: (401, "SESSION_REQUIRED", "Session expired, new invite required"),
    Reason.SESSION_NOT_FOUND_OR_MISMATCH: (401, "SESSION_REQUIRED", "Session expired, new invite required"),
    Reason.READ_ONLY_STATE: (403, "FORBIDDEN", "Onboarding is read-only"),
    Reason.OTP_NOT_ISSUED: (400, "BAD_REQUEST", "No active verification code found. Please request a new code."),
    Reason.OTP_LOCKED: (429, "RATE_LIMITED", "Too many invalid verification attempts. Please try again later."),
    Reason.OTP_EXPIRED: (401, "AUTH_INVALID", "Verification code has expired. Please request a new code."),
    Reason.OTP_INVALID: (401, "AUTH_INVALID", "Invalid verification code"),
    Reason.OTP_MAX_ATTEMPTS_EXCEEDED: (
        429,
        "RATE_LIMITED",
        "Too many invalid verification attempts. Please try again later.",
    ),
    Reason.OTP_THROTTLED: (429, "RATE_LIMITED", "You can request a new verification code only once per minute."),
    Reason.MAIL_DELIVERY_FAILED: (500, "INTERNAL", "Email delivery failed; no changes were saved"),
}


@dataclass(frozen=True)
class OnboardingError(ApiError):
    """An expected business-rule failure carrying a machine-readable reason."""

    @classmethod
    def of(cls, reason: Reason, message: str | None = None, details: dict[str, Any] | None = None) -> "OnboardingError":
        status, code, default_message = _REASONS[reason]
        return cls(
            code=code,
            message=message or default_message,
            status=status,
            details=details,
            reason=reason.value,
        )

    @property
    def reason_code(self) -> Reason:
        return Reason(self.reason)


def http_status_for(reason: Reason) -> int:
    return _REASONS[reason][0]
