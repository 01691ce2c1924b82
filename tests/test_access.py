from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.onboarding import access
from app.onboarding.types import Invite, Method, Status

NOW = datetime(2025, 3, 3, 12, 0, tzinfo=timezone.utc)
LIVE = Invite(token_hash="h", expires_at=NOW + timedelta(days=1), last_sent_at=NOW)
EXPIRED = Invite(token_hash="h", expires_at=NOW, last_sent_at=NOW - timedelta(days=7))


@pytest.mark.parametrize(
    "status,can_access,can_edit,read_only",
    [
        (Status.INVITE_GENERATED, True, True, False),
        (Status.MODIFICATION_REQUESTED, True, True, False),
        (Status.SUBMITTED, True, False, True),
        (Status.RESUBMITTED, True, False, True),
        (Status.DETAILS_CONFIRMED, True, False, False),
        (Status.APPROVED, False, False, True),
        (Status.TERMINATED, False, False, True),
    ],
)
def test_predicates_by_status(status, can_access, can_edit, read_only):
    assert access.can_access(status, Method.DIGITAL, LIVE, NOW) is can_access
    assert access.can_edit(status, Method.DIGITAL, LIVE, NOW) is can_edit
    assert access.is_read_only(status, Method.DIGITAL, LIVE, NOW) is read_only


def test_expired_or_missing_invite_denies_access():
    for invite in (EXPIRED, None):
        assert access.can_access(Status.INVITE_GENERATED, Method.DIGITAL, invite, NOW) is False
        assert access.can_edit(Status.INVITE_GENERATED, Method.DIGITAL, invite, NOW) is False
        assert access.is_read_only(Status.INVITE_GENERATED, Method.DIGITAL, invite, NOW) is True


def test_manual_onboardings_are_never_accessible():
    assert access.can_access(Status.MANUAL_PDF_SENT, Method.MANUAL, LIVE, NOW) is False
    assert access.is_read_only(Status.MANUAL_PDF_SENT, Method.MANUAL, LIVE, NOW) is True


def test_evaluate_reads_document_fields():
    doc = {"status": "ModificationRequested", "method": "digital", "invite": LIVE.to_doc()}
    decision = access.evaluate(doc, NOW)
    assert decision.to_dict() == {"canAccess": True, "canEdit": True, "isReadOnly": False}
