from __future__ import annotations

import pytest
import requests

from app.onboarding import assets as assets_mod
from app.onboarding.assets import AssetStore, AssetStoreError, HttpAssetStore, LogAssetStore, collect_asset_keys
from app.onboarding.context import build_asset_store
from fakes import form_payload


class _Resp:
    def __init__(self, status_code: int, body=None, text: str = ""):
        self.status_code = status_code
        self._body = body
        self.text = text

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


def _capture(monkeypatch, resp):
    calls = []

    def _post(url, **kwargs):
        calls.append({"url": url, **kwargs})
        if isinstance(resp, Exception):
            raise resp
        return resp

    monkeypatch.setattr(assets_mod.requests, "post", _post)
    return calls


def _store() -> HttpAssetStore:
    return HttpAssetStore(api_url="https://files.example.test/api", api_key="k-123", timeout_seconds=4)


def test_collects_keys_from_own_form():
    doc = {"indiaFormData": form_payload(), "canadaFormData": None}
    assert collect_asset_keys(doc) == ["onboardings/in/pan.pdf"]


def test_asset_store_is_abstract():
    with pytest.raises(TypeError):
        AssetStore()


def test_http_store_posts_keys(monkeypatch):
    calls = _capture(monkeypatch, _Resp(200, {"ok": True}))

    _store().delete_objects(["a.pdf", "", "b.pdf"])

    assert len(calls) == 1
    assert calls[0]["url"] == "https://files.example.test/api"
    assert calls[0]["json"] == {"action": "delete", "keys": ["a.pdf", "b.pdf"]}
    assert calls[0]["headers"] == {"X-Api-Key": "k-123"}
    assert calls[0]["timeout"] == 4


def test_http_store_skips_empty_delete(monkeypatch):
    calls = _capture(monkeypatch, _Resp(200, {"ok": True}))
    _store().delete_objects([])
    assert calls == []


@pytest.mark.parametrize(
    "resp",
    [
        _Resp(503, text="unavailable"),
        _Resp(200, {"ok": False, "error": {"message": "bucket locked"}}),
        requests.ConnectionError("refused"),
    ],
)
def test_http_store_failures_raise(monkeypatch, resp):
    _capture(monkeypatch, resp)
    with pytest.raises(AssetStoreError):
        _store().delete_objects(["a.pdf"])


def test_store_selected_from_config(cfg, monkeypatch):
    assert isinstance(build_asset_store(cfg), LogAssetStore)

    monkeypatch.setenv("ASSET_STORE_MODE", "http")
    monkeypatch.setenv("ASSET_API_URL", "https://files.example.test/api")
    from app.config import get_config

    assert isinstance(build_asset_store(get_config()), HttpAssetStore)
