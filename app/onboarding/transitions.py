"""Onboarding status state machine.

Every action is planned against a loaded document and then applied with a
single conditional update. Guards run in a fixed order before any write:

1. the record exists,
2. terminal states (``Approved`` / ``Terminated``) are excluded,
3. the action's own precondition holds (method, form completeness, status).

A failing guard raises ``OnboardingError`` and nothing is written. If another
request moved the record between load and apply, the update matches nothing
and the caller gets ``STATUS_CONFLICT`` instead of overwriting that change.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from pymongo.errors import DuplicateKeyError

from app.onboarding.errors import OnboardingError, Reason
from app.onboarding.invites import InviteRotation, InviteTokenManager
from app.onboarding.repository import OnboardingRepository, SchemaError
from app.onboarding.security import Clock
from app.onboarding.types import (
    EDITABLE_STATUSES,
    FORM_DATA_FIELDS,
    PENDING_REVIEW_STATUSES,
    Method,
    Status,
    TerminationType,
    method_of,
    parse_enum,
    status_of,
    subsidiary_of,
)

log = logging.getLogger("app.onboarding.transitions")


@dataclass(frozen=True)
class Transition:
    onboarding_id: Any
    from_status: Status
    to_status: Status
    subsidiary: str
    version: int | None
    set_fields: dict[str, Any]
    unset_fields: tuple[str, ...] = ()
    # Prior values of every touched field that existed before the change.
    previous: dict[str, Any] = field(default_factory=dict)
    invite_rotation: InviteRotation | None = None

    @property
    def touched(self) -> set[str]:
        return set(self.set_fields) | set(self.unset_fields)

    @property
    def raw_invite_token(self) -> str | None:
        return self.invite_rotation.raw_token if self.invite_rotation else None


def infer_restore_status(onboarding: dict[str, Any]) -> Status:
    if onboarding.get("approvedAt"):
        return Status.APPROVED
    if onboarding.get("submittedAt"):
        return Status.SUBMITTED
    if method_of(onboarding) == Method.DIGITAL:
        return Status.INVITE_GENERATED
    return Status.MANUAL_PDF_SENT


def _exclude_terminal(onboarding: dict[str, Any], *, allow_approved: bool = False) -> None:
    status = status_of(onboarding)
    if status == Status.TERMINATED:
        raise OnboardingError.of(Reason.ALREADY_TERMINATED)
    if status == Status.APPROVED and not allow_approved:
        raise OnboardingError.of(Reason.ALREADY_APPROVED)


def _require_form_complete(onboarding: dict[str, Any]) -> None:
    if not onboarding.get("isFormComplete"):
        raise OnboardingError.of(Reason.FORM_INCOMPLETE)


def _require_digital(onboarding: dict[str, Any]) -> None:
    if method_of(onboarding) != Method.DIGITAL:
        raise OnboardingError.of(Reason.NOT_DIGITAL)


def _form_fields(onboarding: dict[str, Any], payload: Any) -> dict[str, Any]:
    if not isinstance(payload, dict) or not payload:
        raise OnboardingError.of(Reason.MISSING_FIELDS, "Form data for this subsidiary is required")

    form = dict(payload)
    personal = form.get("personalInfo")
    if isinstance(personal, dict):
        # Identity always comes from the onboarding record.
        form["personalInfo"] = {
            **personal,
            "firstName": onboarding.get("firstName"),
            "lastName": onboarding.get("lastName"),
            "email": onboarding.get("email"),
        }
    return {FORM_DATA_FIELDS[subsidiary_of(onboarding)]: form}


class StatusTransitionAuthority:
    def __init__(self, repo: OnboardingRepository, *, clock: Clock, invites: InviteTokenManager):
        self._repo = repo
        self._clock = clock
        self._invites = invites

    def load(self, onboarding_id: Any) -> dict[str, Any]:
        onboarding = self._repo.find_by_id(onboarding_id)
        if onboarding is None:
            raise OnboardingError.of(Reason.ONBOARDING_NOT_FOUND)
        return onboarding

    def _plan(
        self,
        onboarding: dict[str, Any],
        to_status: Status,
        set_fields: dict[str, Any],
        unset_fields: tuple[str, ...] = (),
        *,
        invite_rotation: InviteRotation | None = None,
    ) -> Transition:
        set_fields = {**set_fields, "status": to_status.value, "updatedAt": self._clock.now()}
        if invite_rotation is not None:
            set_fields.update(invite_rotation.set_fields)
            unset_fields = tuple(unset_fields) + invite_rotation.unset_fields
        unset_fields = tuple(f for f in dict.fromkeys(unset_fields) if f not in set_fields)

        touched = set(set_fields) | set(unset_fields)
        previous = {name: onboarding[name] for name in touched if name in onboarding}
        return Transition(
            onboarding_id=onboarding["_id"],
            from_status=status_of(onboarding),
            to_status=to_status,
            subsidiary=str(onboarding.get("subsidiary") or ""),
            version=onboarding.get("version"),
            set_fields=set_fields,
            unset_fields=unset_fields,
            previous=previous,
            invite_rotation=invite_rotation,
        )

    # -- HR actions -------------------------------------------------------

    def plan_resend_invite(self, onboarding: dict[str, Any]) -> Transition:
        _exclude_terminal(onboarding)
        _require_digital(onboarding)
        status = status_of(onboarding)
        if status != Status.INVITE_GENERATED:
            raise OnboardingError.of(Reason.STATUS_NOT_INVITE_GENERATED, details={"status": status.value})
        return self._plan(onboarding, status, {}, invite_rotation=self._invites.rotate(onboarding))

    def plan_request_modification(self, onboarding: dict[str, Any], message: str) -> Transition:
        _exclude_terminal(onboarding)
        _require_digital(onboarding)
        _require_form_complete(onboarding)
        status = status_of(onboarding)
        if status not in PENDING_REVIEW_STATUSES:
            raise OnboardingError.of(Reason.STATUS_NOT_SUBMITTED_OR_RESUBMITTED, details={"status": status.value})

        message = str(message or "").strip()
        if not message:
            raise OnboardingError.of(Reason.MESSAGE_REQUIRED)

        return self._plan(
            onboarding,
            Status.MODIFICATION_REQUESTED,
            {"modificationRequestMessage": message, "modificationRequestedAt": self._clock.now()},
            invite_rotation=self._invites.rotate(onboarding),
        )

    def plan_confirm_details(self, onboarding: dict[str, Any]) -> Transition:
        _exclude_terminal(onboarding)
        _require_form_complete(onboarding)
        if status_of(onboarding) == Status.DETAILS_CONFIRMED:
            raise OnboardingError.of(Reason.ALREADY_DETAILS_CONFIRMED)
        return self._plan(onboarding, Status.DETAILS_CONFIRMED, {})

    def plan_approve(self, onboarding: dict[str, Any], employee_number: str | None = None) -> Transition:
        _exclude_terminal(onboarding)
        _require_form_complete(onboarding)

        now = self._clock.now()
        set_fields: dict[str, Any] = {"approvedAt": now, "isFormComplete": True}
        if not onboarding.get("completedAt"):
            set_fields["completedAt"] = now

        employee_number = str(employee_number or "").strip() or None
        if employee_number:
            # Fast path for a friendly error; the unique index is the real guard.
            if self._repo.employee_number_taken(
                str(onboarding.get("subsidiary")), employee_number, exclude_id=onboarding["_id"]
            ):
                raise OnboardingError.of(Reason.EMPLOYEE_NUMBER_TAKEN)
            set_fields["employeeNumber"] = employee_number

        unset: tuple[str, ...] = ()
        if method_of(onboarding) == Method.DIGITAL:
            unset = ("invite", "otp")
        return self._plan(onboarding, Status.APPROVED, set_fields, unset)

    def plan_terminate(
        self, onboarding: dict[str, Any], termination_type: Any, termination_reason: str | None = None
    ) -> Transition:
        _exclude_terminal(onboarding, allow_approved=True)
        parsed = parse_enum(TerminationType, termination_type)
        if parsed is None:
            raise OnboardingError.of(
                Reason.TERMINATION_TYPE_REQUIRED, details={"allowed": [t.value for t in TerminationType]}
            )

        set_fields: dict[str, Any] = {"terminationType": parsed.value, "terminatedAt": self._clock.now()}
        unset: list[str] = []
        reason = str(termination_reason or "").strip()
        if reason:
            set_fields["terminationReason"] = reason
        else:
            unset.append("terminationReason")
        if method_of(onboarding) == Method.DIGITAL:
            unset += ["invite", "otp"]
        return self._plan(onboarding, Status.TERMINATED, set_fields, tuple(unset))

    def plan_restore(self, onboarding: dict[str, Any]) -> Transition:
        if status_of(onboarding) != Status.TERMINATED:
            raise OnboardingError.of(Reason.STATUS_NOT_TERMINATED, "Only terminated onboardings can be restored")
        return self._plan(
            onboarding,
            infer_restore_status(onboarding),
            {},
            ("terminationType", "terminationReason", "terminatedAt"),
        )

    def plan_admin_form_update(self, onboarding: dict[str, Any], payload: Any) -> Transition:
        """HR fills or corrects the form; first completion moves the record to ``Submitted``."""
        status = status_of(onboarding)
        if status == Status.TERMINATED:
            raise OnboardingError.of(Reason.ALREADY_TERMINATED)
        set_fields = _form_fields(onboarding, payload)

        if onboarding.get("isFormComplete"):
            return self._plan(onboarding, status, set_fields)

        now = self._clock.now()
        set_fields.update({"isFormComplete": True, "submittedAt": now})
        return self._plan(onboarding, Status.SUBMITTED, set_fields)

    def check_delete(self, onboarding: dict[str, Any]) -> None:
        if status_of(onboarding) != Status.TERMINATED:
            raise OnboardingError.of(Reason.STATUS_NOT_TERMINATED, "Only terminated onboardings can be deleted")

    # -- employee actions -------------------------------------------------

    def plan_employee_submit(self, onboarding: dict[str, Any], payload: Any) -> Transition:
        _exclude_terminal(onboarding)
        _require_digital(onboarding)
        status = status_of(onboarding)
        if status not in EDITABLE_STATUSES:
            raise OnboardingError.of(Reason.STATUS_NOT_EDITABLE, details={"status": status.value})

        now = self._clock.now()
        set_fields = _form_fields(onboarding, payload)
        set_fields.update({"submittedAt": now, "isFormComplete": True, "isCompleted": True})
        if not onboarding.get("completedAt"):
            set_fields["completedAt"] = now

        to_status = Status.SUBMITTED if status == Status.INVITE_GENERATED else Status.RESUBMITTED
        return self._plan(onboarding, to_status, set_fields)

    # -- writes -----------------------------------------------------------

    def apply(self, transition: Transition) -> dict[str, Any]:
        try:
            updated = self._repo.conditional_update(
                transition.onboarding_id,
                transition.from_status,
                set_fields=transition.set_fields,
                unset_fields=transition.unset_fields,
                expected_version=transition.version,
                subsidiary=transition.subsidiary,
            )
        except DuplicateKeyError as e:
            raise OnboardingError.of(Reason.EMPLOYEE_NUMBER_TAKEN) from e
        except SchemaError as e:
            raise OnboardingError.of(Reason.INVALID_PAYLOAD, str(e)) from e

        if updated is None:
            current = self._repo.find_by_id(transition.onboarding_id)
            if current is None:
                raise OnboardingError.of(Reason.ONBOARDING_NOT_FOUND)
            raise OnboardingError.of(
                Reason.STATUS_CONFLICT,
                details={"expectedStatus": transition.from_status.value, "currentStatus": current.get("status")},
            )

        log.info(
            "Onboarding transition onboarding_id=%s from=%s to=%s",
            transition.onboarding_id,
            transition.from_status.value,
            transition.to_status.value,
        )
        return updated

    def revert(self, transition: Transition, applied: dict[str, Any]) -> dict[str, Any] | None:
        """Put back the snapshot, unless the record moved on since ``applied``."""
        unset_back = tuple(name for name in transition.touched if name not in transition.previous)
        restored = self._repo.conditional_update(
            transition.onboarding_id,
            transition.to_status,
            set_fields=dict(transition.previous),
            unset_fields=unset_back,
            expected_version=applied.get("version"),
            subsidiary=transition.subsidiary,
        )
        if restored is None:
            log.error(
                "Rollback skipped; onboarding changed after transition onboarding_id=%s to=%s",
                transition.onboarding_id,
                transition.to_status.value,
            )
        else:
            log.info(
                "Onboarding transition rolled back onboarding_id=%s to=%s",
                transition.onboarding_id,
                transition.from_status.value,
            )
        return restored
