from __future__ import annotations

import pytest
from bson import ObjectId

from app.onboarding.errors import OnboardingError, Reason
from app.onboarding.transitions import infer_restore_status
from app.onboarding.types import Status
from fakes import HR, form_payload, seed_onboarding


def _status(ctx, doc) -> str:
    return ctx.repo.find_by_id(doc["_id"])["status"]


def _fails(fn, *args) -> OnboardingError:
    with pytest.raises(OnboardingError) as exc:
        fn(*args)
    return exc.value


def test_approve_requires_complete_form(ctx, service, mailer):
    doc, _ = seed_onboarding(ctx)

    err = _fails(service.approve, doc["_id"], "EMP-1", HR)

    assert err.status == 400
    assert err.reason_code == Reason.FORM_INCOMPLETE
    assert _status(ctx, doc) == "InviteGenerated"
    assert "employeeNumber" not in ctx.repo.find_by_id(doc["_id"])
    assert mailer.messages == []


@pytest.mark.parametrize("status", ["InviteGenerated", "ModificationRequested", "Submitted", "ManualPDFSent"])
def test_approve_guard_holds_for_any_incomplete_status(ctx, service, status):
    method = "manual" if status == "ManualPDFSent" else "digital"
    doc, _ = seed_onboarding(ctx, method=method, status=status)
    assert _fails(service.approve, doc["_id"], None, HR).reason_code == Reason.FORM_INCOMPLETE
    assert _status(ctx, doc) == status


def test_approve_digital_clears_invite_and_otp(ctx, service, mailer, clock):
    doc, _ = seed_onboarding(
        ctx, status="Submitted", isFormComplete=True, otp={"otpHash": "h", "expiresAt": clock.now(), "attempts": 0}
    )

    updated = service.approve(doc["_id"], " EMP-0042 ", HR)

    assert updated["status"] == "Approved"
    assert updated["employeeNumber"] == "EMP-0042"
    assert "invite" not in updated and "otp" not in updated
    assert updated["approvedAt"] is not None and updated["completedAt"] is not None
    assert mailer.tags == ["approved"]
    assert [e["action"] for e in ctx.audit.list_for(doc["_id"])] == ["APPROVED"]


def test_approve_rejects_taken_employee_number(ctx, service):
    seed_onboarding(ctx, email="first@example.com", status="Approved", isFormComplete=True, employeeNumber="EMP-7")
    doc, _ = seed_onboarding(ctx, status="Submitted", isFormComplete=True)

    err = _fails(service.approve, doc["_id"], "EMP-7", HR)
    assert err.status == 409
    assert err.reason_code == Reason.EMPLOYEE_NUMBER_TAKEN
    assert _status(ctx, doc) == "Submitted"


def test_approve_refuses_terminal_states(ctx, service):
    approved, _ = seed_onboarding(ctx, email="a@example.com", status="Approved", isFormComplete=True)
    terminated, _ = seed_onboarding(ctx, email="t@example.com", status="Terminated", isFormComplete=True)

    assert _fails(service.approve, approved["_id"], None, HR).reason_code == Reason.ALREADY_APPROVED
    assert _fails(service.approve, terminated["_id"], None, HR).reason_code == Reason.ALREADY_TERMINATED


def test_unknown_onboarding(service):
    err = _fails(service.approve, ObjectId(), None, HR)
    assert err.status == 404
    assert err.reason_code == Reason.ONBOARDING_NOT_FOUND
    assert _fails(service.get, "not-an-id").status == 404


def test_request_modification_rotates_invite_and_stores_message(ctx, service, mailer):
    doc, old_token = seed_onboarding(ctx, status="Submitted", isFormComplete=True)

    updated = service.request_modification(doc["_id"], "  Fix address  ", HR)

    assert updated["status"] == "ModificationRequested"
    assert updated["modificationRequestMessage"] == "Fix address"
    assert mailer.tags == ["modification"]
    new_token = mailer.invite_tokens[-1]
    assert ctx.invites.validate(new_token)["_id"] == doc["_id"]
    with pytest.raises(OnboardingError):
        ctx.invites.validate(old_token)


@pytest.mark.parametrize(
    "fields,reason",
    [
        ({"status": "InviteGenerated", "isFormComplete": True}, Reason.STATUS_NOT_SUBMITTED_OR_RESUBMITTED),
        ({"status": "Submitted", "isFormComplete": False}, Reason.FORM_INCOMPLETE),
        ({"status": "Approved", "isFormComplete": True}, Reason.ALREADY_APPROVED),
    ],
)
def test_request_modification_guards(ctx, service, fields, reason):
    doc, _ = seed_onboarding(ctx, **fields)
    assert _fails(service.request_modification, doc["_id"], "Fix address", HR).reason_code == reason
    assert _status(ctx, doc) == fields["status"]


def test_request_modification_needs_message_and_digital(ctx, service):
    digital, _ = seed_onboarding(ctx, status="Submitted", isFormComplete=True)
    manual, _ = seed_onboarding(ctx, method="manual", email="m@example.com", status="Submitted", isFormComplete=True)

    assert _fails(service.request_modification, digital["_id"], "   ", HR).reason_code == Reason.MESSAGE_REQUIRED
    assert _fails(service.request_modification, manual["_id"], "Fix", HR).reason_code == Reason.NOT_DIGITAL


def test_terminate_records_reason_and_clears_invite(ctx, service, mailer):
    doc, raw = seed_onboarding(ctx, status="Submitted", isFormComplete=True)

    updated = service.terminate(doc["_id"], "resigned", "Accepted another offer", HR)

    assert updated["status"] == "Terminated"
    assert updated["terminationType"] == "resigned"
    assert updated["terminationReason"] == "Accepted another offer"
    assert "invite" not in updated
    assert mailer.tags == ["termination"]
    with pytest.raises(OnboardingError):
        ctx.invites.validate(raw)


def test_terminate_requires_type_and_allows_approved(ctx, service):
    doc, _ = seed_onboarding(ctx, status="Approved", isFormComplete=True, approvedAt=ctx.clock.now())

    assert _fails(service.terminate, doc["_id"], "fired", None, HR).reason_code == Reason.TERMINATION_TYPE_REQUIRED
    assert service.terminate(doc["_id"], "company_terminated", None, HR)["status"] == "Terminated"
    assert _fails(service.terminate, doc["_id"], "resigned", None, HR).reason_code == Reason.ALREADY_TERMINATED


def test_restore_infers_previous_status(ctx, service, clock):
    now = clock.now()
    approved, _ = seed_onboarding(
        ctx, email="a@example.com", status="Terminated", approvedAt=now, submittedAt=now, terminationType="resigned"
    )
    submitted, _ = seed_onboarding(ctx, email="s@example.com", status="Terminated", submittedAt=now)
    manual, _ = seed_onboarding(ctx, method="manual", email="m@example.com", status="Terminated")
    digital, _ = seed_onboarding(ctx, email="d@example.com", status="Terminated")

    assert service.restore(approved["_id"], HR)["status"] == "Approved"
    assert service.restore(submitted["_id"], HR)["status"] == "Submitted"
    assert service.restore(manual["_id"], HR)["status"] == "ManualPDFSent"
    assert service.restore(digital["_id"], HR)["status"] == "InviteGenerated"

    restored = ctx.repo.find_by_id(approved["_id"])
    assert "terminationType" not in restored and "terminatedAt" not in restored
    entry = ctx.audit.list_for(approved["_id"])[0]
    assert entry["action"] == "STATUS_CHANGED"
    assert entry["metadata"]["restoredFrom"]["terminationType"] == "resigned"


def test_restore_only_from_terminated(ctx, service, mailer):
    doc, _ = seed_onboarding(ctx, status="Submitted")
    assert _fails(service.restore, doc["_id"], HR).reason_code == Reason.STATUS_NOT_TERMINATED
    assert mailer.messages == []


def test_infer_restore_status_prefers_approval():
    assert infer_restore_status({"approvedAt": 1, "submittedAt": 1, "method": "digital"}) == Status.APPROVED
    assert infer_restore_status({"submittedAt": 1, "method": "manual"}) == Status.SUBMITTED


def test_racing_approve_and_terminate_one_wins(ctx):
    doc, _ = seed_onboarding(ctx, status="Submitted", isFormComplete=True)
    authority = ctx.transitions

    # Both requests load the record before either writes.
    approve = authority.plan_approve(authority.load(doc["_id"]), "EMP-9")
    terminate = authority.plan_terminate(authority.load(doc["_id"]), "resigned")

    authority.apply(approve)
    with pytest.raises(OnboardingError) as exc:
        authority.apply(terminate)

    assert exc.value.status == 409
    assert exc.value.reason_code == Reason.STATUS_CONFLICT
    stored = ctx.repo.find_by_id(doc["_id"])
    assert stored["status"] == "Approved"
    assert "terminationType" not in stored


def test_same_status_writes_also_conflict(ctx):
    doc, _ = seed_onboarding(ctx, status="Submitted", isFormComplete=True)
    authority = ctx.transitions

    first = authority.plan_admin_form_update(authority.load(doc["_id"]), form_payload())
    second = authority.plan_admin_form_update(authority.load(doc["_id"]), form_payload())

    authority.apply(first)
    with pytest.raises(OnboardingError) as exc:
        authority.apply(second)
    assert exc.value.reason_code == Reason.STATUS_CONFLICT


def test_confirm_details(ctx, service, mailer):
    doc, _ = seed_onboarding(ctx, status="Submitted", isFormComplete=True)

    updated = service.confirm_details(doc["_id"], HR)
    assert updated["status"] == "DetailsConfirmed"
    assert "invite" in updated
    assert mailer.tags == ["details_confirmed"]
    assert _fails(service.confirm_details, doc["_id"], HR).reason_code == Reason.ALREADY_DETAILS_CONFIRMED


def test_admin_form_completion_then_edit(ctx, service):
    doc, _ = seed_onboarding(ctx, method="manual")

    completed = service.admin_update_form(doc["_id"], {"indiaFormData": form_payload()}, HR)
    assert completed["status"] == "Submitted"
    assert completed["isFormComplete"] is True
    assert completed["indiaFormData"]["personalInfo"]["firstName"] == "Asha"

    edited = service.admin_update_form(doc["_id"], {"formData": {"bankDetails": {"ifsc": "ICIC0000001"}}}, HR)
    assert edited["status"] == "Submitted"
    assert [e["action"] for e in ctx.audit.list_for(doc["_id"])] == ["DATA_UPDATED", "SUBMITTED"]


def test_admin_form_rejects_other_subsidiary_payload(ctx, service):
    doc, _ = seed_onboarding(ctx, method="manual")
    err = _fails(service.admin_update_form, doc["_id"], {"canadaFormData": form_payload()}, HR)
    assert err.reason_code == Reason.MISSING_FIELDS
    assert _status(ctx, doc) == "ManualPDFSent"


def test_delete_only_terminated(ctx, service):
    doc, _ = seed_onboarding(ctx, status="Submitted")
    assert _fails(service.delete, doc["_id"], HR).reason_code == Reason.STATUS_NOT_TERMINATED
    assert ctx.repo.find_by_id(doc["_id"]) is not None


def test_delete_removes_record_assets_and_history(ctx, service, assets):
    doc, _ = seed_onboarding(ctx, status="Submitted", isFormComplete=True, indiaFormData=form_payload())
    service.terminate(doc["_id"], "resigned", None, HR)

    service.delete(doc["_id"], HR)

    assert ctx.repo.find_by_id(doc["_id"]) is None
    assert ctx.audit.list_for(doc["_id"]) == []
    assert assets.deleted == ["onboardings/in/pan.pdf"]


def test_delete_survives_storage_outage(ctx, service, assets, caplog):
    assets.fail = True
    doc, _ = seed_onboarding(ctx, status="Submitted", isFormComplete=True, indiaFormData=form_payload())
    service.terminate(doc["_id"], "resigned", None, HR)

    with caplog.at_level("ERROR", logger="app.onboarding.service"):
        service.delete(doc["_id"], HR)

    assert ctx.repo.find_by_id(doc["_id"]) is None
    assert ctx.audit.list_for(doc["_id"]) == []
    assert "Asset cleanup failed" in caplog.text
