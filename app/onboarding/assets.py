from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Iterable

import requests

from app.onboarding.types import FORM_DATA_FIELDS

log = logging.getLogger("app.onboarding.assets")

_ASSET_KEY_FIELDS = ("s3Key", "key")


def collect_asset_keys(onboarding: dict[str, Any]) -> list[str]:
    """Storage keys of every file asset referenced by the form payloads."""
    keys: list[str] = []

    def _walk(node: Any) -> None:
        if isinstance(node, dict):
            for field in _ASSET_KEY_FIELDS:
                value = node.get(field)
                if isinstance(value, str) and value.strip():
                    keys.append(value.strip())
                    break
            for value in node.values():
                _walk(value)
        elif isinstance(node, list):
            for item in node:
                _walk(item)

    for field in FORM_DATA_FIELDS.values():
        _walk(onboarding.get(field))
    return sorted(set(keys))



class AssetStoreError(RuntimeError):
    pass


class AssetStore(ABC):
    """File storage used by onboarding documents. Upload and finalize live elsewhere."""

    def delete_objects(self, keys: Iterable[str]) -> None:
        keys = [k for k in keys if k]
        if keys:
            self.delete_many(keys)

    @abstractmethod
    def delete_many(self, keys: list[str]) -> None:
        """Remove every object in ``keys``; raises ``AssetStoreError`` on failure."""


class HttpAssetStore(AssetStore):
    """Deletes objects through the storage service's JSON API (one request per call)."""

    def __init__(self, *, api_url: str, api_key: str = "", timeout_seconds: int = 10):
        self._api_url = api_url
        self._api_key = api_key
        self._timeout = timeout_seconds

    def delete_many(self, keys: list[str]) -> None:
        headers: dict[str, str] = {}
        if self._api_key:
            headers["X-Api-Key"] = self._api_key
        try:
            resp = requests.post(
                self._api_url, json={"action": "delete", "keys": keys}, headers=headers, timeout=self._timeout
            )
        except requests.RequestException as e:
            raise AssetStoreError(f"Asset storage unreachable: {type(e).__name__}") from e

        if resp.status_code >= 400:
            snippet = str(resp.text or "").strip()[:500]
            raise AssetStoreError(f"Asset delete failed (HTTP {resp.status_code}): {snippet or 'no response body'}")

        try:
            parsed = resp.json()
        except ValueError:
            parsed = None
        if isinstance(parsed, dict) and parsed.get("ok") is False:
            err = parsed.get("error") if isinstance(parsed.get("error"), dict) else {}
            raise AssetStoreError(str((err or {}).get("message") or "Asset delete failed"))
        log.info("Deleted %s asset object(s)", len(keys))


class LogAssetStore(AssetStore):
    """Development store: reports what would be deleted."""

    def delete_many(self, keys: list[str]) -> None:
        log.info("Asset store (log mode): %s object(s) would be deleted", len(keys))
