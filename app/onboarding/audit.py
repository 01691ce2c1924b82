from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any

from pymongo import ASCENDING, DESCENDING

from app.onboarding.repository import to_object_id
from app.onboarding.types import Actor, AuditAction

log = logging.getLogger("app.onboarding.audit")


class AuditRecorder:
    """Append-only onboarding history.

    ``append`` is called only after the primary action has fully succeeded
    and never raises: a failed write is logged and the entry is lost.
    """

    def __init__(self, db, clock):
        self.collection = db.onboarding_audit_logs
        self._clock = clock

    def ensure_indexes(self) -> None:
        self.collection.create_index(
            [("onboardingId", ASCENDING), ("createdAt", DESCENDING)], name="audit_onboardingId_createdAt"
        )
        self.collection.create_index([("action", ASCENDING)], name="audit_action")

    def append(
        self,
        *,
        onboarding_id: Any,
        action: AuditAction,
        actor: Actor,
        message: str = "",
        metadata: dict[str, Any] | None = None,
        at: datetime | None = None,
    ) -> bool:
        entry = {
            "onboardingId": to_object_id(onboarding_id),
            "action": action.value,
            "actor": actor.to_doc(),
            "message": message,
            "metadata": _plain(metadata or {}),
            "createdAt": at or self._clock.now(),
        }
        try:
            self.collection.insert_one(entry)
        except Exception:
            log.exception("Failed to write onboarding audit entry onboarding_id=%s action=%s", onboarding_id, action.value)
            return False
        return True

    def list_for(self, onboarding_id: Any, *, limit: int = 200) -> list[dict[str, Any]]:
        oid = to_object_id(onboarding_id)
        if oid is None:
            return []
        cursor = self.collection.find({"onboardingId": oid}).sort([("createdAt", DESCENDING), ("_id", DESCENDING)])
        return list(cursor.limit(limit))

    def purge_for(self, onboarding_id: Any) -> int:
        oid = to_object_id(onboarding_id)
        if oid is None:
            return 0
        return self.collection.delete_many({"onboardingId": oid}).deleted_count


def _plain(value: Any) -> Any:
    # Enum members are stored by value.
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    return value
