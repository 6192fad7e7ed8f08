"""Audit trail for document mutations.

Entries are written to the ``audit_log`` table inside the caller's session,
so an audit row commits or rolls back together with the change it records.
Each entry is categorised for retention:

* **MUTATION** -- kept forever (create, update, post, void, reverse)
* **READ_ACCESS** -- report views and other sensitive reads
* **SYSTEM** -- bootstrap and housekeeping events
"""
from __future__ import annotations

import enum
import uuid
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from ledger.models.audit import AuditLog


class AuditEventCategory(str, enum.Enum):
    MUTATION = "mutation"
    READ_ACCESS = "read_access"
    SYSTEM = "system"


_MUTATION_KEYWORDS = {
    "create",
    "update",
    "delete",
    "post",
    "reverse",
    "void",
    "deactivate",
    "lock",
}

_SYSTEM_PREFIXES = (
    "system.",
    "bootstrap.",
)

_READ_KEYWORDS = ("view", "read", "list", "audit", "report")


def classify_action(action: str) -> AuditEventCategory:
    """Map an action string to a retention category."""
    action_lower = action.lower()

    for prefix in _SYSTEM_PREFIXES:
        if action_lower.startswith(prefix):
            return AuditEventCategory.SYSTEM

    parts = action_lower.replace(".", "_").split("_")
    for part in parts:
        if part in _MUTATION_KEYWORDS:
            return AuditEventCategory.MUTATION

    if any(kw in action_lower for kw in _READ_KEYWORDS):
        return AuditEventCategory.READ_ACCESS

    # Unknown actions are kept forever
    return AuditEventCategory.MUTATION


class AuditSink(Protocol):
    async def log(
        self,
        org_id: uuid.UUID,
        actor_user_id: uuid.UUID | None,
        entity_type: str,
        entity_id: str,
        action: str,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
    ) -> None: ...


class AuditTrail:
    """Writes :class:`AuditLog` rows through the request's session."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def log(
        self,
        org_id: uuid.UUID,
        actor_user_id: uuid.UUID | None,
        entity_type: str,
        entity_id: str,
        action: str,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
    ) -> None:
        entry = AuditLog(
            org_id=org_id,
            actor_user_id=actor_user_id,
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action,
            before=before,
            after=after,
            event_category=classify_action(action).value,
        )
        self.db.add(entry)
        await self.db.flush()
