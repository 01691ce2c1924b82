from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

from app.onboarding.audit import AuditRecorder
from app.onboarding.types import Actor, AuditAction

log = logging.getLogger("app.onboarding.compensation")

T = TypeVar("T")


def attempt_with_compensation(
    mutate: Callable[[], T],
    side_effect: Callable[[T], Any],
    compensate: Callable[[T], Any],
    *,
    label: str = "action",
) -> T:
    """Run ``mutate`` then ``side_effect``; undo the mutation if the side effect fails.

    Compensation failures are logged and swallowed. The side effect's original
    exception is always re-raised.
    """
    result = mutate()
    try:
        side_effect(result)
    except Exception:
        log.warning("Side effect failed for %s; compensating", label)
        try:
            compensate(result)
        except Exception:
            log.exception("Compensation failed for %s", label)
        raise
    return result


@dataclass(frozen=True)
class AuditEntry:
    onboarding_id: Any
    action: AuditAction
    actor: Actor
    message: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


class TransactionalActionRunner:
    """Mutation + external effect + audit, in that order."""

    def __init__(self, audit: AuditRecorder):
        self._audit = audit

    def run(
        self,
        *,
        mutate: Callable[[], T],
        side_effect: Callable[[T], Any],
        compensate: Callable[[T], Any],
        audit: Callable[[T], AuditEntry | None] | None = None,
        label: str = "action",
    ) -> T:
        result = attempt_with_compensation(mutate, side_effect, compensate, label=label)
        if audit is not None:
            entry = audit(result)
            if entry is not None:
                self.record(entry)
        return result

    def record(self, entry: AuditEntry) -> bool:
        return self._audit.append(
            onboarding_id=entry.onboarding_id,
            action=entry.action,
            actor=entry.actor,
            message=entry.message,
            metadata=entry.metadata,
        )
