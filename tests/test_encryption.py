from __future__ import annotations

import pytest

from app.onboarding.encryption import FieldCipher, FieldDecryptError
from app.onboarding.mailer import MailDeliveryError
from fakes import HR, form_payload, seed_onboarding


def _india_form() -> dict:
    form = form_payload()
    form["bankDetails"] = {"accountHolderName": "Asha Verma", "accountNumber": "0001112223", "ifscCode": "HDFC0000123"}
    form["governmentIds"] = {"panCard": {"panNumber": "ABCDE1234F", "file": {"s3Key": "onboardings/in/pan.pdf"}}}
    return form


def test_sensitive_values_stored_as_ciphertext(ctx):
    doc, _ = seed_onboarding(ctx, indiaFormData=_india_form())

    raw = ctx.repo.collection.find_one({"_id": doc["_id"]})["indiaFormData"]
    assert raw["bankDetails"]["accountNumber"].startswith("v1:")
    assert raw["bankDetails"]["ifscCode"].startswith("v1:")
    assert raw["governmentIds"]["panCard"]["panNumber"].startswith("v1:")
    assert "0001112223" not in str(raw)
    # Non-sensitive values stay searchable.
    assert raw["bankDetails"]["accountHolderName"] == "Asha Verma"

    loaded = ctx.repo.find_by_id(doc["_id"])["indiaFormData"]
    assert loaded["bankDetails"]["accountNumber"] == "0001112223"
    assert loaded["governmentIds"]["panCard"]["panNumber"] == "ABCDE1234F"


def test_form_updates_are_encrypted(ctx, service):
    doc, _ = seed_onboarding(ctx, status="Submitted", isFormComplete=True, indiaFormData=form_payload())

    service.admin_update_form(doc["_id"], {"indiaFormData": _india_form()}, HR)

    raw = ctx.repo.collection.find_one({"_id": doc["_id"]})["indiaFormData"]
    assert raw["bankDetails"]["accountNumber"].startswith("v1:")
    assert ctx.repo.find_by_id(doc["_id"])["indiaFormData"]["bankDetails"]["accountNumber"] == "0001112223"


def test_rolled_back_transition_keeps_ciphertext(ctx, service, mailer):
    doc, _ = seed_onboarding(ctx, status="Submitted", isFormComplete=True, indiaFormData=_india_form())
    mailer.fail_tags.add("modification")

    with pytest.raises(MailDeliveryError):
        service.request_modification(doc["_id"], "Fix address", HR)

    raw = ctx.repo.collection.find_one({"_id": doc["_id"]})["indiaFormData"]
    assert raw["bankDetails"]["accountNumber"].startswith("v1:")
    assert ctx.repo.find_by_id(doc["_id"])["status"] == "Submitted"


def test_canada_fields_use_their_own_paths(ctx):
    form = {"governmentIds": {"sin": {"sinNumber": "046 454 286"}}, "bankDetails": {"transitNumber": "00011"}}
    doc, _ = seed_onboarding(ctx, subsidiary="CA", canadaFormData=form)

    raw = ctx.repo.collection.find_one({"_id": doc["_id"]})["canadaFormData"]
    assert raw["governmentIds"]["sin"]["sinNumber"].startswith("v1:")
    assert raw["bankDetails"]["transitNumber"].startswith("v1:")
    assert ctx.repo.find_by_id(doc["_id"])["canadaFormData"] == form


def test_ciphertext_is_bound_to_field_and_key():
    cipher = FieldCipher("k" * 40)
    token = cipher.encrypt("0001112223", aad="indiaFormData.bankDetails.accountNumber")

    assert cipher.decrypt(token, aad="indiaFormData.bankDetails.accountNumber") == "0001112223"
    with pytest.raises(FieldDecryptError):
        cipher.decrypt(token, aad="indiaFormData.bankDetails.upiId")
    with pytest.raises(FieldDecryptError):
        FieldCipher("another-key").decrypt(token, aad="indiaFormData.bankDetails.accountNumber")


def test_legacy_plaintext_is_returned_as_is():
    assert FieldCipher("k" * 40).decrypt("0001112223") == "0001112223"
