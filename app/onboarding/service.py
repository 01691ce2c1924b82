from __future__ import annotations

import logging
from typing import Any, Callable

from pymongo import ASCENDING, DESCENDING

from app.onboarding import views
from app.onboarding.assets import collect_asset_keys
from app.onboarding.compensation import AuditEntry
from app.onboarding.context import OnboardingContext
from app.onboarding.errors import OnboardingError, Reason
from app.onboarding.repository import SchemaError
from app.onboarding.transitions import Transition
from app.onboarding.types import (
    FORM_DATA_FIELDS,
    STATUS_GROUPS,
    Actor,
    ActorType,
    AuditAction,
    Method,
    Status,
    Subsidiary,
    parse_enum,
    status_of,
    subsidiary_of,
)
from app.utils.validators import validate_email

log = logging.getLogger("app.onboarding.service")

SideEffect = Callable[[dict[str, Any], Transition], Any]

_SORTABLE = {"createdAt", "updatedAt", "submittedAt", "lastName", "status"}


def employee_actor(onboarding: dict[str, Any]) -> Actor:
    name = f"{onboarding.get('firstName') or ''} {onboarding.get('lastName') or ''}".strip()
    return Actor(type=ActorType.EMPLOYEE, id=str(onboarding["_id"]), name=name, email=str(onboarding.get("email") or ""))


def _form_payload(onboarding: dict[str, Any], body: dict[str, Any]) -> Any:
    field = FORM_DATA_FIELDS[subsidiary_of(onboarding)]
    if field in body:
        return body[field]
    return body.get("formData")


class OnboardingService:
    """HR and employee operations on onboardings.

    Actions that email the employee run through the transactional runner:
    the conditional write happens first, the email second, and a failed email
    puts the previous field values back before the error is re-raised.
    """

    def __init__(self, ctx: OnboardingContext):
        self.ctx = ctx

    # -- shared -----------------------------------------------------------

    def _execute(
        self,
        transition: Transition,
        *,
        actor: Actor,
        action: AuditAction,
        side_effect: SideEffect | None = None,
        message: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        ctx = self.ctx
        meta = {"fromStatus": transition.from_status, "toStatus": transition.to_status, **(metadata or {})}

        def _audit(updated: dict[str, Any]) -> AuditEntry:
            return AuditEntry(
                onboarding_id=transition.onboarding_id, action=action, actor=actor, message=message, metadata=meta
            )

        if side_effect is None:
            updated = ctx.transitions.apply(transition)
            ctx.runner.record(_audit(updated))
            return updated

        return ctx.runner.run(
            mutate=lambda: ctx.transitions.apply(transition),
            side_effect=lambda updated: side_effect(updated, transition),
            compensate=lambda updated: ctx.transitions.revert(transition, updated),
            audit=_audit,
            label=f"{action.value} onboarding_id={transition.onboarding_id}",
        )

    # -- HR ---------------------------------------------------------------

    def create(self, body: dict[str, Any], actor: Actor) -> dict[str, Any]:
        ctx = self.ctx
        subsidiary = parse_enum(Subsidiary, body.get("subsidiary"))
        if subsidiary is None or subsidiary.value not in ctx.cfg.ENABLED_SUBSIDIARIES:
            raise OnboardingError.of(
                Reason.UNSUPPORTED_SUBSIDIARY, details={"enabled": list(ctx.cfg.ENABLED_SUBSIDIARIES)}
            )
        method = parse_enum(Method, body.get("method"))
        if method is None:
            raise OnboardingError.of(Reason.INVALID_METHOD, details={"allowed": [m.value for m in Method]})

        first_name = str(body.get("firstName") or "").strip()
        last_name = str(body.get("lastName") or "").strip()
        missing = [
            name
            for name, value in (("firstName", first_name), ("lastName", last_name), ("email", body.get("email")))
            if not str(value or "").strip()
        ]
        if missing:
            raise OnboardingError.of(Reason.MISSING_FIELDS, details={"fields": missing})
        email = validate_email(body.get("email"))

        if ctx.repo.find_by_email(subsidiary.value, email) is not None:
            raise OnboardingError.of(Reason.DUPLICATE_ONBOARDING)

        now = ctx.clock.now()
        doc: dict[str, Any] = {
            "subsidiary": subsidiary.value,
            "method": method.value,
            "firstName": first_name,
            "lastName": last_name,
            "email": email,
            "isFormComplete": False,
            "isCompleted": False,
            "createdAt": now,
            "updatedAt": now,
        }
        raw_token: str | None = None
        if method == Method.DIGITAL:
            raw_token, invite = ctx.invites.issue()
            doc["status"] = Status.INVITE_GENERATED.value
            doc["invite"] = invite.to_doc()
            action = AuditAction.INVITE_GENERATED
        else:
            doc["status"] = Status.MANUAL_PDF_SENT.value
            action = AuditAction.MANUAL_PDF_SENT

        def _insert() -> dict[str, Any]:
            try:
                return ctx.repo.insert(doc)
            except SchemaError as e:
                raise OnboardingError.of(Reason.INVALID_PAYLOAD, str(e)) from e

        def _undo(created: dict[str, Any]) -> None:
            # Nothing existed before, so compensation removes the new record.
            ctx.repo.delete(created["_id"])

        created = ctx.runner.run(
            mutate=_insert,
            side_effect=lambda created: ctx.mailer.send_invitation(created, invite_token=raw_token),
            compensate=_undo,
            audit=lambda created: AuditEntry(
                onboarding_id=created["_id"],
                action=action,
                actor=actor,
                message=f"Onboarding created ({method.value})",
                metadata={"subsidiary": subsidiary.value, "method": method.value, "status": created["status"]},
            ),
            label=f"create onboarding subsidiary={subsidiary.value}",
        )
        log.info("Onboarding created onboarding_id=%s method=%s", created["_id"], method.value)
        return created

    def resend_invite(self, onboarding_id: Any, actor: Actor) -> dict[str, Any]:
        ctx = self.ctx
        transition = ctx.transitions.plan_resend_invite(ctx.transitions.load(onboarding_id))
        return self._execute(
            transition,
            actor=actor,
            action=AuditAction.INVITE_RESENT,
            side_effect=lambda updated, t: ctx.mailer.send_invitation(updated, invite_token=t.raw_invite_token),
            message="Invite resent",
        )

    def request_modification(self, onboarding_id: Any, message: Any, actor: Actor) -> dict[str, Any]:
        ctx = self.ctx
        transition = ctx.transitions.plan_request_modification(ctx.transitions.load(onboarding_id), message)
        text = transition.set_fields["modificationRequestMessage"]
        return self._execute(
            transition,
            actor=actor,
            action=AuditAction.MODIFICATION_REQUESTED,
            side_effect=lambda updated, t: ctx.mailer.send_modification_request(
                updated, invite_token=t.raw_invite_token, message=text
            ),
            message=text,
        )

    def confirm_details(self, onboarding_id: Any, actor: Actor) -> dict[str, Any]:
        ctx = self.ctx
        transition = ctx.transitions.plan_confirm_details(ctx.transitions.load(onboarding_id))
        return self._execute(
            transition,
            actor=actor,
            action=AuditAction.DETAILS_CONFIRMED,
            side_effect=lambda updated, t: ctx.mailer.send_details_confirmed(updated),
            message="Details confirmed",
        )

    def approve(self, onboarding_id: Any, employee_number: Any, actor: Actor) -> dict[str, Any]:
        ctx = self.ctx
        transition = ctx.transitions.plan_approve(ctx.transitions.load(onboarding_id), employee_number)
        return self._execute(
            transition,
            actor=actor,
            action=AuditAction.APPROVED,
            side_effect=lambda updated, t: ctx.mailer.send_approved(updated),
            message="Onboarding approved",
            metadata={"employeeNumber": transition.set_fields.get("employeeNumber")},
        )

    def terminate(self, onboarding_id: Any, termination_type: Any, reason: Any, actor: Actor) -> dict[str, Any]:
        ctx = self.ctx
        transition = ctx.transitions.plan_terminate(ctx.transitions.load(onboarding_id), termination_type, reason)
        return self._execute(
            transition,
            actor=actor,
            action=AuditAction.TERMINATED,
            side_effect=lambda updated, t: ctx.mailer.send_termination_notice(updated),
            message="Onboarding terminated",
            metadata={
                "terminationType": transition.set_fields["terminationType"],
                "terminationReason": transition.set_fields.get("terminationReason"),
            },
        )

    def restore(self, onboarding_id: Any, actor: Actor) -> dict[str, Any]:
        ctx = self.ctx
        onboarding = ctx.transitions.load(onboarding_id)
        transition = ctx.transitions.plan_restore(onboarding)
        return self._execute(
            transition,
            actor=actor,
            action=AuditAction.STATUS_CHANGED,
            message=f"Onboarding restored to {transition.to_status.value}",
            metadata={
                "restoredFrom": {
                    "terminationType": onboarding.get("terminationType"),
                    "terminationReason": onboarding.get("terminationReason"),
                    "terminatedAt": onboarding.get("terminatedAt"),
                }
            },
        )

    def admin_update_form(self, onboarding_id: Any, body: dict[str, Any], actor: Actor) -> dict[str, Any]:
        ctx = self.ctx
        onboarding = ctx.transitions.load(onboarding_id)
        transition = ctx.transitions.plan_admin_form_update(onboarding, _form_payload(onboarding, body))
        first_completion = not onboarding.get("isFormComplete")
        return self._execute(
            transition,
            actor=actor,
            action=AuditAction.SUBMITTED if first_completion else AuditAction.DATA_UPDATED,
            message="Form completed by HR" if first_completion else "Form updated by HR",
        )

    def delete(self, onboarding_id: Any, actor: Actor) -> None:
        ctx = self.ctx
        onboarding = ctx.transitions.load(onboarding_id)
        ctx.transitions.check_delete(onboarding)
        keys = collect_asset_keys(onboarding)

        if not ctx.repo.delete(onboarding["_id"], expected_status=Status.TERMINATED):
            if ctx.repo.find_by_id(onboarding["_id"]) is None:
                raise OnboardingError.of(Reason.ONBOARDING_NOT_FOUND)
            raise OnboardingError.of(Reason.STATUS_CONFLICT)

        try:
            ctx.assets.delete_objects(keys)
        except Exception:
            # The record is gone; orphaned objects are left for storage cleanup.
            log.exception("Asset cleanup failed onboarding_id=%s keys=%s", onboarding["_id"], len(keys))

        purged = ctx.audit.purge_for(onboarding["_id"])
        log.info(
            "Onboarding deleted onboarding_id=%s by=%s assets=%s audit_entries=%s",
            onboarding["_id"],
            actor.email or actor.id,
            len(keys),
            purged,
        )

    def get(self, onboarding_id: Any) -> dict[str, Any]:
        return views.admin_view(self.ctx.transitions.load(onboarding_id), self.ctx.clock.now())

    def list(self, args: dict[str, Any]) -> dict[str, Any]:
        subsidiary = parse_enum(Subsidiary, args.get("subsidiary"))
        if subsidiary is None:
            raise OnboardingError.of(Reason.UNSUPPORTED_SUBSIDIARY, "subsidiary query parameter is required")

        query: dict[str, Any] = {"subsidiary": subsidiary.value}

        status_raw = str(args.get("status") or "").strip()
        group = str(args.get("statusGroup") or "").strip()
        if status_raw:
            status = parse_enum(Status, status_raw)
            if status is None:
                raise OnboardingError.of(Reason.INVALID_PAYLOAD, "Unknown status", details={"status": status_raw})
            query["status"] = status.value
        elif group:
            if group not in STATUS_GROUPS:
                raise OnboardingError.of(
                    Reason.INVALID_PAYLOAD, "Unknown statusGroup", details={"allowed": sorted(STATUS_GROUPS)}
                )
            query["status"] = {"$in": [s.value for s in STATUS_GROUPS[group]]}

        method_raw = str(args.get("method") or "").strip()
        if method_raw:
            method = parse_enum(Method, method_raw)
            if method is None:
                raise OnboardingError.of(Reason.INVALID_METHOD)
            query["method"] = method.value

        page = _positive_int(args.get("page"), 1)
        limit = min(_positive_int(args.get("limit"), 20), 100)
        sort_by = str(args.get("sortBy") or "createdAt")
        if sort_by not in _SORTABLE:
            sort_by = "createdAt"
        sort_dir = ASCENDING if str(args.get("sortDir") or "").lower() == "asc" else DESCENDING

        docs, total = self.ctx.repo.list(query, sort_by=sort_by, sort_dir=sort_dir, skip=(page - 1) * limit, limit=limit)
        return {
            "items": [views.admin_summary(d) for d in docs],
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": (total + limit - 1) // limit,
        }

    def audit_log(self, onboarding_id: Any) -> list[dict[str, Any]]:
        onboarding = self.ctx.transitions.load(onboarding_id)
        return [views.audit_entry_view(e) for e in self.ctx.audit.list_for(onboarding["_id"])]

    # -- employee ---------------------------------------------------------

    def verify_invite(self, raw_token: Any) -> dict[str, Any]:
        """Validate the invite link and email a fresh OTP."""
        ctx = self.ctx
        token = str(raw_token or "").strip()
        if not token:
            raise OnboardingError.of(Reason.MISSING_FIELDS, "Missing or invalid invite token")

        onboarding = ctx.invites.validate(token)
        ctx.otps.ensure_can_issue(onboarding)
        previous_otp = onboarding.get("otp")

        def _restore_otp(issued: tuple[str, dict[str, Any]]) -> None:
            _, updated = issued
            update = {"$set": {"otp": previous_otp}} if previous_otp else {"$unset": {"otp": ""}}
            ctx.repo.update_otp_if(updated["_id"], {"otp.otpHash": updated["otp"]["otpHash"]}, update)

        _, updated = ctx.runner.run(
            mutate=lambda: ctx.otps.issue(onboarding),
            side_effect=lambda issued: ctx.mailer.send_otp(
                issued[1],
                otp_code=issued[0],
                expires_in_minutes=int(ctx.otps.policy.ttl.total_seconds() // 60),
            ),
            compensate=_restore_otp,
            label=f"send otp onboarding_id={onboarding['_id']}",
        )
        return {
            "onboardingId": str(updated["_id"]),
            "subsidiary": updated["subsidiary"],
            "email": updated["email"],
        }

    def verify_otp(self, raw_token: Any, submitted_otp: Any):
        ctx = self.ctx
        token = str(raw_token or "").strip()
        code = str(submitted_otp or "").strip()
        if not token or not code:
            raise OnboardingError.of(Reason.MISSING_FIELDS, "Invite token and verification code are required")

        onboarding = ctx.invites.validate(token)
        directive = ctx.otps.verify(onboarding, code, token)
        data = {
            "onboardingId": str(onboarding["_id"]),
            "subsidiary": onboarding["subsidiary"],
            "status": onboarding["status"],
        }
        return data, directive

    def employee_context(self, onboarding_id: Any, session_token: str | None) -> dict[str, Any]:
        onboarding = self.ctx.session_guard.require(onboarding_id, session_token, allow_read_only=True)
        return views.employee_context(onboarding, self.ctx.clock.now())

    def employee_submit(self, onboarding_id: Any, session_token: str | None, body: dict[str, Any]) -> dict[str, Any]:
        ctx = self.ctx
        onboarding = ctx.session_guard.require(onboarding_id, session_token, allow_read_only=False)
        transition = ctx.transitions.plan_employee_submit(onboarding, _form_payload(onboarding, body))
        resubmission = status_of(onboarding) == Status.MODIFICATION_REQUESTED
        updated = self._execute(
            transition,
            actor=employee_actor(onboarding),
            action=AuditAction.RESUBMITTED if resubmission else AuditAction.SUBMITTED,
            message="Form resubmitted by employee" if resubmission else "Form submitted by employee",
        )
        return views.employee_context(updated, ctx.clock.now())


def _positive_int(value: Any, default: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default
