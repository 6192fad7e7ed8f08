"""Narrow persistence interfaces the ledger core depends on.

The core never touches ORM objects.  It reads and writes plain records
through these protocols, so tests can hand it in-memory implementations and
production hands it the SQLAlchemy ones in ``ledger.stores.sql``.
"""
from __future__ import annotations

import dataclasses
import datetime
import uuid
from decimal import Decimal
from typing import Any, Protocol


class IdempotencyKeyExists(Exception):
    """Raised by an idempotency store when ``(org_id, key)`` is already taken.

    By the time it is raised the caller's pending writes have been discarded.
    """

    def __init__(self, org_id: uuid.UUID, key: str) -> None:
        super().__init__(f"Idempotency key {key!r} already stored for org {org_id}")
        self.org_id = org_id
        self.key = key


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class OrgRecord:
    id: uuid.UUID
    name: str
    base_currency: str
    lock_date: datetime.date | None = None


@dataclasses.dataclass(frozen=True)
class AccountRecord:
    id: uuid.UUID
    org_id: uuid.UUID
    code: str
    name: str
    type: str
    normal_balance: str
    subtype: str | None = None
    parent_account_id: uuid.UUID | None = None
    is_system: bool = False
    is_reconcilable: bool = False
    is_active: bool = True
    tax_code_id: uuid.UUID | None = None
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "code": self.code,
            "name": self.name,
            "type": self.type,
            "subtype": self.subtype,
            "normal_balance": self.normal_balance,
            "parent_account_id": str(self.parent_account_id) if self.parent_account_id else None,
            "is_system": self.is_system,
            "is_reconcilable": self.is_reconcilable,
            "is_active": self.is_active,
            "tax_code_id": str(self.tax_code_id) if self.tax_code_id else None,
            "description": self.description,
        }


@dataclasses.dataclass(frozen=True)
class GLHeaderRecord:
    id: uuid.UUID
    org_id: uuid.UUID
    source_type: str
    source_id: str
    posting_date: datetime.date
    currency: str
    total_debit: Decimal
    total_credit: Decimal
    exchange_rate: Decimal = Decimal("1")
    memo: str | None = None
    reverses_header_id: uuid.UUID | None = None
    created_by_user_id: uuid.UUID | None = None


@dataclasses.dataclass(frozen=True)
class GLLineRecord:
    id: uuid.UUID
    org_id: uuid.UUID
    header_id: uuid.UUID
    line_no: int
    account_id: uuid.UUID
    debit: Decimal
    credit: Decimal
    description: str | None = None
    customer_id: uuid.UUID | None = None
    vendor_id: uuid.UUID | None = None


@dataclasses.dataclass(frozen=True)
class HeaderTotals:
    """A header's stored totals next to the live sums of its lines."""

    header_id: uuid.UUID
    source_type: str
    source_id: str
    posting_date: datetime.date | None
    total_debit: Decimal
    total_credit: Decimal
    line_debit: Decimal
    line_credit: Decimal


@dataclasses.dataclass(frozen=True)
class IdempotencyRecord:
    org_id: uuid.UUID
    key: str
    request_hash: str
    response: dict[str, Any]
    status_code: int


@dataclasses.dataclass(frozen=True)
class MembershipRecord:
    id: uuid.UUID
    org_id: uuid.UUID
    user_id: uuid.UUID
    role_id: uuid.UUID
    is_active: bool = True
    deleted_at: datetime.datetime | None = None


# ---------------------------------------------------------------------------
# Store protocols
# ---------------------------------------------------------------------------


class AccountStore(Protocol):
    async def get(self, org_id: uuid.UUID, account_id: uuid.UUID) -> AccountRecord | None: ...

    async def get_many(
        self, org_id: uuid.UUID, account_ids: set[uuid.UUID]
    ) -> dict[uuid.UUID, AccountRecord]: ...

    async def get_by_code(self, org_id: uuid.UUID, code: str) -> AccountRecord | None: ...

    async def list_accounts(self, org_id: uuid.UUID) -> list[AccountRecord]: ...

    async def insert(self, account: AccountRecord) -> AccountRecord: ...

    async def update(self, account: AccountRecord) -> AccountRecord: ...

    async def count_children(self, org_id: uuid.UUID, account_id: uuid.UUID) -> int: ...

    async def count_references(
        self, org_id: uuid.UUID, account_id: uuid.UUID
    ) -> dict[str, int]: ...


class LedgerStore(Protocol):
    async def get_organization(self, org_id: uuid.UUID) -> OrgRecord | None: ...

    async def get_header(
        self, org_id: uuid.UUID, header_id: uuid.UUID
    ) -> GLHeaderRecord | None: ...

    async def get_lines(
        self, org_id: uuid.UUID, header_id: uuid.UUID
    ) -> list[GLLineRecord]: ...

    async def find_header_by_source(
        self, org_id: uuid.UUID, source_type: str, source_id: str
    ) -> GLHeaderRecord | None: ...

    async def find_reversal(
        self, org_id: uuid.UUID, header_id: uuid.UUID
    ) -> GLHeaderRecord | None: ...

    async def insert_posting(
        self, header: GLHeaderRecord, lines: list[GLLineRecord]
    ) -> None: ...

    async def header_totals(self, org_id: uuid.UUID) -> list[HeaderTotals]: ...

    async def malformed_lines(self, org_id: uuid.UUID) -> list[GLLineRecord]: ...


class IdempotencyStore(Protocol):
    async def get(self, org_id: uuid.UUID, key: str) -> IdempotencyRecord | None: ...

    async def insert(self, record: IdempotencyRecord) -> None: ...

    async def discard_pending(self) -> None:
        """Drop the current request's uncommitted writes."""
        ...


class MembershipStore(Protocol):
    async def get_membership(self, membership_id: uuid.UUID) -> MembershipRecord | None: ...

    async def get_role_permissions(self, role_id: uuid.UUID) -> set[str]: ...
