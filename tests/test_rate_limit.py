from __future__ import annotations

from app.utils.rate_limiter import client_ip


def test_forwarded_for_ignored_unless_proxy_trusted():
    headers = {"X-Forwarded-For": "203.0.113.9"}
    assert client_ip(headers, "10.0.0.5", trust_proxy_headers=False) == "10.0.0.5"


def test_trusted_proxy_uses_the_hop_it_appended():
    headers = {"X-Forwarded-For": "198.51.100.1, 203.0.113.9"}
    assert client_ip(headers, "10.0.0.5", trust_proxy_headers=True) == "203.0.113.9"
    assert client_ip({}, "10.0.0.5", trust_proxy_headers=True) == "10.0.0.5"


def test_rotating_forwarded_for_does_not_reset_otp_limit(ctx, monkeypatch):
    from app import create_app
    from app.config import get_config

    monkeypatch.setenv("RATE_LIMIT_OTP", "2 per minute")
    monkeypatch.delenv("TRUST_PROXY_HEADERS", raising=False)
    ctx.cfg = get_config()
    app = create_app(ctx)
    client = app.test_client()

    # A dedicated address keeps this bucket apart from other tests sharing the limiter.
    environ = {"REMOTE_ADDR": "192.0.2.77"}
    codes = []
    for n in range(3):
        res = client.post(
            "/api/v1/onboarding/otp/verify",
            json={"token": "x", "otp": "000000"},
            headers={"X-Forwarded-For": f"198.51.100.{n}"},
            environ_base=environ,
        )
        codes.append(res.status_code)

    assert 429 not in codes[:2]
    assert codes[2] == 429
