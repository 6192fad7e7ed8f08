"""Idempotency mediator.

Deduplicates mutating requests that carry a client-supplied token.  The
stored key is scoped by operation and actor, so one client token cannot be
replayed against a different operation or by a different user:

    <operation>:<actor_id>:<token>

First execution stores ``{key, request_hash, response, status_code}`` in the
same transaction as the operation's own writes.  A replay with the same
payload hash returns the cached response verbatim without executing again;
a replay with a different payload is a conflict.
"""
from __future__ import annotations

import dataclasses
import hashlib
import json
import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from ledger.errors import ConflictError
from ledger.stores.base import IdempotencyKeyExists, IdempotencyRecord, IdempotencyStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------


def _canonical_default(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        # 10.5 and 10.50 are the same request
        return str(obj.normalize())
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, uuid.UUID):
        return str(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: Any) -> str:
    """Deterministic JSON: sorted keys, no whitespace."""
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_canonical_default,
    )


def hash_request(payload: Any) -> str:
    """SHA-256 hex digest of the canonical JSON form of *payload*."""
    canonical = canonicalize_json(payload if payload is not None else {})
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def to_jsonable(response: dict[str, Any]) -> dict[str, Any]:
    """Round-trip *response* through JSON so first and replayed responses match."""
    return json.loads(json.dumps(response, default=str))


def build_scope_key(token: str | None, operation: str, actor_id: uuid.UUID | str) -> str | None:
    """Scope a client token to one operation and one actor.

    Returns ``None`` when the client sent no token: no deduplication.
    """
    if token is None:
        return None
    token = token.strip()
    if not token:
        return None
    return f"{operation}:{actor_id}:{token}"


# ---------------------------------------------------------------------------
# Mediator
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class IdempotencyDecision:
    """Outcome of :meth:`IdempotencyMediator.resolve`."""

    org_id: uuid.UUID
    key: str | None
    request_hash: str | None
    cached: IdempotencyRecord | None = None

    @property
    def proceed(self) -> bool:
        return self.cached is None


@dataclasses.dataclass(frozen=True)
class IdempotentResult:
    response: dict[str, Any]
    status_code: int
    replayed: bool = False


class IdempotencyMediator:
    def __init__(self, store: IdempotencyStore) -> None:
        self.store = store

    @staticmethod
    def _assert_same_payload(record: IdempotencyRecord, request_hash: str | None) -> None:
        if record.request_hash != request_hash:
            raise ConflictError(
                "Idempotency key already used with a different payload",
                code="IDEMPOTENCY_KEY_REUSED",
                hint="Send a new Idempotency-Key for a different request.",
            )

    async def resolve(
        self,
        org_id: uuid.UUID,
        token: str | None,
        operation: str,
        actor_id: uuid.UUID,
        payload: Any,
    ) -> IdempotencyDecision:
        key = build_scope_key(token, operation, actor_id)
        if key is None:
            return IdempotencyDecision(org_id=org_id, key=None, request_hash=None)

        request_hash = hash_request(payload)
        existing = await self.store.get(org_id, key)
        if existing is not None:
            self._assert_same_payload(existing, request_hash)
            return IdempotencyDecision(
                org_id=org_id, key=key, request_hash=request_hash, cached=existing
            )
        return IdempotencyDecision(org_id=org_id, key=key, request_hash=request_hash)

    async def record(
        self,
        decision: IdempotencyDecision,
        response: dict[str, Any],
        status_code: int,
    ) -> None:
        if decision.key is None or decision.request_hash is None:
            return
        await self.store.insert(IdempotencyRecord(
            org_id=decision.org_id,
            key=decision.key,
            request_hash=decision.request_hash,
            response=response,
            status_code=status_code,
        ))

    async def run(
        self,
        org_id: uuid.UUID,
        token: str | None,
        operation: str,
        actor_id: uuid.UUID,
        payload: Any,
        execute: Callable[[], Awaitable[dict[str, Any]]],
        status_code: int = 201,
    ) -> IdempotentResult:
        """Resolve, execute at most once, and record the outcome.

        A concurrent request with the same key may commit between our read
        and our writes.  The loser then trips over the winner's document (a
        conflict from ``execute``) or the winner's key row (on ``record``);
        either way its writes are discarded and the winner's response is
        replayed.
        """
        decision = await self.resolve(org_id, token, operation, actor_id, payload)
        if decision.cached is not None:
            logger.info(f"Replaying cached response for {decision.key} (org {org_id})")
            return IdempotentResult(
                response=decision.cached.response,
                status_code=decision.cached.status_code,
                replayed=True,
            )

        if decision.key is None:
            response = to_jsonable(await execute())
            return IdempotentResult(response=response, status_code=status_code)

        try:
            response = to_jsonable(await execute())
        except ConflictError:
            await self.store.discard_pending()
            winner = await self._winner(decision)
            if winner is None:
                raise
            return winner

        try:
            await self.record(decision, response, status_code)
        except IdempotencyKeyExists:
            winner = await self._winner(decision)
            if winner is None:
                raise
            return winner
        return IdempotentResult(response=response, status_code=status_code)

    async def _winner(self, decision: IdempotencyDecision) -> IdempotentResult | None:
        """The stored response of a concurrent request that committed first."""
        record = await self.store.get(decision.org_id, decision.key)
        if record is None:
            return None
        self._assert_same_payload(record, decision.request_hash)
        logger.info(
            f"Lost idempotency race for {decision.key} (org {decision.org_id}); "
            "replaying winner"
        )
        return IdempotentResult(
            response=record.response,
            status_code=record.status_code,
            replayed=True,
        )
