import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest


BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))


BOOTSTRAP_TOKEN = "test-bootstrap-token"
HR_PASSWORD = "correct-horse-battery"


@pytest.fixture()
def cfg(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ENV", "testing")
    monkeypatch.setenv("MONGODB_URI", "mongomock://localhost")
    monkeypatch.setenv("DB_NAME", "onboarding_test")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    monkeypatch.setenv("BOOTSTRAP_TOKEN", BOOTSTRAP_TOKEN)
    monkeypatch.setenv("ENABLED_SUBSIDIARIES", "IN,CA")
    monkeypatch.setenv("MAIL_MODE", "log")
    # The in-process limiter is shared by every app in the session.
    monkeypatch.setenv("RATE_LIMIT_OTP", "100000 per minute")
    monkeypatch.setenv("RATE_LIMIT_DEFAULT", "100000 per minute")
    monkeypatch.setenv("RATE_LIMIT_GLOBAL", "100000 per minute")
    monkeypatch.setenv("RATE_LIMIT_LOGIN", "100000 per minute")

    # Prevent accidental pollution from any existing env config.
    for name in (
        "HASH_SECRET",
        "JWT_SECRET",
        "FORM_ENC_KEY",
        "MAIL_API_URL",
        "ASSET_STORE_MODE",
        "TRUST_PROXY_HEADERS",
        "INVITE_TTL_HOURS",
        "OTP_MAX_ATTEMPTS",
    ):
        monkeypatch.delenv(name, raising=False)

    from app.config import get_config

    return get_config()


@pytest.fixture()
def clock():
    from fakes import FrozenClock

    return FrozenClock(datetime(2025, 3, 3, 9, 30, tzinfo=timezone.utc))


@pytest.fixture()
def mailer():
    from fakes import RecordingMailer

    return RecordingMailer()


@pytest.fixture()
def assets():
    from fakes import RecordingAssetStore

    return RecordingAssetStore()


@pytest.fixture()
def ctx(cfg, clock, mailer, assets):
    import mongomock

    from app.onboarding.context import build_context

    db = mongomock.MongoClient(tz_aware=True, tzinfo=timezone.utc)[cfg.DB_NAME]
    context = build_context(cfg, db, mailer=mailer, clock=clock, assets=assets)
    context.ensure_indexes()
    return context


@pytest.fixture()
def service(ctx):
    from app.onboarding.service import OnboardingService

    return OnboardingService(ctx)


@pytest.fixture()
def app_client(ctx):
    from app import create_app

    app = create_app(ctx)
    app.testing = True

    with app.test_client() as client:
        yield app, client


@pytest.fixture()
def hr_headers(app_client):
    _app, client = app_client
    res = client.post(
        "/api/v1/auth/bootstrap",
        json={"email": "hr@example.com", "password": HR_PASSWORD, "role": "HR", "name": "Hannah Reyes"},
        headers={"X-Bootstrap-Token": BOOTSTRAP_TOKEN},
    )
    assert res.status_code == 201

    res = client.post("/api/v1/auth/login", json={"email": "hr@example.com", "password": HR_PASSWORD})
    assert res.status_code == 200
    return {"Authorization": f"Bearer {res.get_json()['data']['access_token']}"}
