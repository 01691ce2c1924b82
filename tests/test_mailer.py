from __future__ import annotations

import pytest
import requests

from app.onboarding import mailer as mailer_mod
from app.onboarding.mailer import HttpMailer, MailDeliveryError, Mailer

ONBOARDING = {"firstName": "Asha", "lastName": "Verma", "email": "asha.verma@example.com", "subsidiary": "IN"}


class _Resp:
    def __init__(self, status_code: int):
        self.status_code = status_code


def _mailer() -> HttpMailer:
    return HttpMailer(
        base_url="https://onboarding.example.test/",
        api_url="https://mail.example.test/send",
        api_key="mail-key",
        sender="hr@example.test",
        timeout_seconds=3,
    )


def test_mailer_is_abstract():
    with pytest.raises(TypeError):
        Mailer(base_url="https://onboarding.example.test")


def test_http_mailer_posts_message(monkeypatch):
    calls = []
    monkeypatch.setattr(mailer_mod.requests, "post", lambda url, **kw: calls.append((url, kw)) or _Resp(202))

    _mailer().send_invitation(ONBOARDING, invite_token="abc")

    url, kw = calls[0]
    assert url == "https://mail.example.test/send"
    assert kw["json"]["to"] == ["asha.verma@example.com"]
    assert kw["json"]["tags"] == ["invitation"]
    assert "https://onboarding.example.test/onboarding?token=abc" in kw["json"]["text"]
    assert kw["headers"]["Authorization"] == "Bearer mail-key"
    assert kw["timeout"] == 3


def test_http_mailer_rejected(monkeypatch):
    monkeypatch.setattr(mailer_mod.requests, "post", lambda url, **kw: _Resp(500))
    with pytest.raises(MailDeliveryError):
        _mailer().send_approved(ONBOARDING)


def test_http_mailer_unreachable(monkeypatch):
    def _post(url, **kw):
        raise requests.Timeout("slow")

    monkeypatch.setattr(mailer_mod.requests, "post", _post)
    with pytest.raises(MailDeliveryError):
        _mailer().send_otp(ONBOARDING, otp_code="123456", expires_in_minutes=10)
