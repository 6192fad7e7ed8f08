"""Posting engine.

Turns a set of debit/credit lines from a source document into one balanced,
immutable GL posting.  Header and lines are written together through the
ledger store and never modified afterwards; corrections are reversals.
"""
from __future__ import annotations

import dataclasses
import datetime
import logging
import uuid
from collections.abc import Sequence
from decimal import Decimal
from typing import Any

from ledger.config import settings
from ledger.context import CallerIdentity
from ledger.errors import ConflictError, NotFoundError, ValidationError
from ledger.models.gl import GLSourceType
from ledger.money import (
    MoneyValue,
    ZERO,
    assert_money_eq,
    assert_non_negative,
    gt,
    round2,
    sum_money,
    to_string2,
)
from ledger.services.idempotency import IdempotencyMediator, IdempotentResult
from ledger.stores.base import (
    AccountStore,
    GLHeaderRecord,
    GLLineRecord,
    LedgerStore,
    OrgRecord,
)

logger = logging.getLogger(__name__)

REVERSAL_SOURCE_PREFIX = "REVERSAL:"


@dataclasses.dataclass(frozen=True)
class LineDraft:
    account_id: uuid.UUID
    debit: MoneyValue = ZERO
    credit: MoneyValue = ZERO
    description: str | None = None
    customer_id: uuid.UUID | None = None
    vendor_id: uuid.UUID | None = None
    line_no: int | None = None


@dataclasses.dataclass(frozen=True)
class PostingRequest:
    source_type: str
    source_id: str
    posting_date: datetime.date
    lines: Sequence[LineDraft]
    memo: str | None = None
    currency: str | None = None
    exchange_rate: MoneyValue = Decimal("1")

    def payload(self) -> dict[str, Any]:
        """The request as plain data, for idempotency hashing."""
        return {
            "source_type": self.source_type,
            "source_id": self.source_id,
            "posting_date": self.posting_date,
            "memo": self.memo,
            "currency": self.currency,
            "exchange_rate": Decimal(str(self.exchange_rate)),
            "lines": [
                {
                    "account_id": line.account_id,
                    "debit": round2(line.debit),
                    "credit": round2(line.credit),
                    "description": line.description,
                    "customer_id": line.customer_id,
                    "vendor_id": line.vendor_id,
                }
                for line in self.lines
            ],
        }


@dataclasses.dataclass(frozen=True)
class GLTotals:
    total_debit: Decimal
    total_credit: Decimal


@dataclasses.dataclass(frozen=True)
class PostingResult:
    header: GLHeaderRecord
    lines: list[GLLineRecord]

    def to_dict(self) -> dict[str, Any]:
        header = self.header
        return {
            "header_id": str(header.id),
            "source_type": header.source_type,
            "source_id": header.source_id,
            "posting_date": header.posting_date.isoformat(),
            "currency": header.currency,
            "exchange_rate": str(header.exchange_rate),
            "memo": header.memo,
            "total_debit": to_string2(header.total_debit),
            "total_credit": to_string2(header.total_credit),
            "reverses_header_id": (
                str(header.reverses_header_id) if header.reverses_header_id else None
            ),
            "line_ids": [str(line.id) for line in self.lines],
            "lines": [
                {
                    "id": str(line.id),
                    "line_no": line.line_no,
                    "account_id": str(line.account_id),
                    "debit": to_string2(line.debit),
                    "credit": to_string2(line.credit),
                    "description": line.description,
                    "customer_id": str(line.customer_id) if line.customer_id else None,
                    "vendor_id": str(line.vendor_id) if line.vendor_id else None,
                }
                for line in self.lines
            ],
        }


# ---------------------------------------------------------------------------
# Line and date rules
# ---------------------------------------------------------------------------


def assert_gl_lines_valid(lines: Sequence[LineDraft]) -> GLTotals:
    """Check every line carries exactly one side and the set balances.

    Line numbers in messages are the caller's ``line_no`` when given,
    otherwise the 1-based position.
    """
    if not lines:
        raise ValidationError("GL lines are required", hint="Add at least two lines.")

    debits: list[Decimal] = []
    credits: list[Decimal] = []
    for index, line in enumerate(lines, start=1):
        line_no = line.line_no or index
        debit = assert_non_negative(line.debit, f"Line {line_no} debit")
        credit = assert_non_negative(line.credit, f"Line {line_no} credit")
        has_debit = gt(debit, 0)
        has_credit = gt(credit, 0)
        if has_debit == has_credit:
            raise ValidationError(
                f"Line {line_no} must include either a debit or credit amount.",
                hint="Set one side to zero.",
                details={"line_no": line_no},
            )
        debits.append(debit)
        credits.append(credit)

    totals = GLTotals(total_debit=sum_money(debits), total_credit=sum_money(credits))
    assert_money_eq(totals.total_debit, totals.total_credit, "GL totals")
    return totals


def is_date_locked(lock_date: datetime.date | None, doc_date: datetime.date) -> bool:
    return lock_date is not None and doc_date <= lock_date


def ensure_not_locked(
    lock_date: datetime.date | None, doc_date: datetime.date, action: str = "post"
) -> None:
    if is_date_locked(lock_date, doc_date):
        raise ValidationError(
            f"Cannot {action} a document dated on or before the lock date.",
            code="LOCK_DATE_VIOLATION",
            hint="Change the document date or ask an owner to move the lock date.",
            details={
                "lock_date": lock_date.isoformat(),
                "document_date": doc_date.isoformat(),
            },
        )


def parse_source_type(value: str) -> str:
    try:
        return GLSourceType(value).value
    except ValueError:
        raise ValidationError(
            f"Unknown source type {value!r}",
            hint=f"Use one of: {', '.join(t.value for t in GLSourceType)}.",
        ) from None


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class PostingEngine:
    def __init__(
        self,
        ledger: LedgerStore,
        accounts: AccountStore,
        mediator: IdempotencyMediator,
    ) -> None:
        self.ledger = ledger
        self.accounts = accounts
        self.mediator = mediator

    async def organization(self, org_id: uuid.UUID) -> OrgRecord:
        org = await self.ledger.get_organization(org_id)
        if org is None:
            raise NotFoundError("Organization not found")
        return org

    async def assert_accounts_postable(
        self, org_id: uuid.UUID, lines: Sequence[LineDraft]
    ) -> None:
        wanted = {line.account_id for line in lines}
        found = await self.accounts.get_many(org_id, wanted)
        missing = sorted(str(account_id) for account_id in wanted - found.keys())
        if missing:
            raise NotFoundError(
                "GL account not found",
                hint="Lines must reference accounts in this organization.",
                details={"account_ids": missing},
            )
        inactive = sorted(a.code for a in found.values() if not a.is_active)
        if inactive:
            raise ValidationError(
                "Cannot post to an inactive account",
                details={"account_codes": inactive},
            )

    async def commit(
        self,
        org_id: uuid.UUID,
        actor_id: uuid.UUID | None,
        request: PostingRequest,
        reverses_header_id: uuid.UUID | None = None,
    ) -> PostingResult:
        """Validate and write one posting inside the caller's transaction."""
        org = await self.organization(org_id)
        source_type = parse_source_type(request.source_type)
        source_id = str(request.source_id).strip()
        if not source_id:
            raise ValidationError("Source id is required")

        totals = assert_gl_lines_valid(request.lines)
        ensure_not_locked(org.lock_date, request.posting_date, "post")
        await self.assert_accounts_postable(org_id, request.lines)

        existing = await self.ledger.find_header_by_source(org_id, source_type, source_id)
        if existing is not None:
            raise ConflictError(
                "GL header already exists for this source",
                hint="This document may already be posted.",
                details={"header_id": str(existing.id)},
            )

        header = GLHeaderRecord(
            id=uuid.uuid4(),
            org_id=org_id,
            source_type=source_type,
            source_id=source_id,
            posting_date=request.posting_date,
            currency=(request.currency or org.base_currency or settings.DEFAULT_BASE_CURRENCY).upper(),
            exchange_rate=Decimal(str(request.exchange_rate)),
            total_debit=totals.total_debit,
            total_credit=totals.total_credit,
            memo=request.memo,
            reverses_header_id=reverses_header_id,
            created_by_user_id=actor_id,
        )
        lines = [
            GLLineRecord(
                id=uuid.uuid4(),
                org_id=org_id,
                header_id=header.id,
                line_no=line_no,
                account_id=draft.account_id,
                debit=round2(draft.debit),
                credit=round2(draft.credit),
                description=draft.description,
                customer_id=draft.customer_id,
                vendor_id=draft.vendor_id,
            )
            for line_no, draft in enumerate(request.lines, start=1)
        ]
        await self.ledger.insert_posting(header, lines)
        logger.info(
            f"Posted GL header {header.id} for {source_type}:{source_id} "
            f"({to_string2(totals.total_debit)})"
        )
        return PostingResult(header=header, lines=lines)

    async def post(
        self,
        identity: CallerIdentity,
        request: PostingRequest,
        idempotency_key: str | None = None,
    ) -> IdempotentResult:
        org_id = identity.require_org()

        async def execute() -> dict[str, Any]:
            result = await self.commit(org_id, identity.user_id, request)
            return result.to_dict()

        return await self.mediator.run(
            org_id,
            idempotency_key,
            "postings.create",
            identity.user_id,
            request.payload(),
            execute,
            status_code=201,
        )

    async def get_posting(
        self, org_id: uuid.UUID, header_id: uuid.UUID
    ) -> PostingResult:
        header = await self.ledger.get_header(org_id, header_id)
        if header is None:
            raise NotFoundError("GL header not found")
        lines = await self.ledger.get_lines(org_id, header_id)
        return PostingResult(header=header, lines=lines)

    async def reverse_header(
        self,
        org_id: uuid.UUID,
        actor_id: uuid.UUID | None,
        header_id: uuid.UUID,
        reversal_date: datetime.date | None = None,
        memo: str | None = None,
    ) -> PostingResult:
        """Write the mirror of *header_id*, or return the existing reversal."""
        original = await self.get_posting(org_id, header_id)

        existing = await self.ledger.find_reversal(org_id, header_id)
        if existing is not None:
            lines = await self.ledger.get_lines(org_id, existing.id)
            return PostingResult(header=existing, lines=lines)

        if original.header.reverses_header_id is not None:
            raise ConflictError(
                "A reversal cannot itself be reversed",
                hint="Post a new document instead.",
            )
        if not original.lines:
            raise ValidationError("GL header has no lines to reverse")

        request = PostingRequest(
            source_type=original.header.source_type,
            source_id=f"{REVERSAL_SOURCE_PREFIX}{original.header.id}",
            posting_date=reversal_date or datetime.date.today(),
            memo=memo or f"Reversal of {original.header.source_type}:{original.header.source_id}",
            currency=original.header.currency,
            exchange_rate=original.header.exchange_rate,
            lines=[
                LineDraft(
                    account_id=line.account_id,
                    debit=line.credit,
                    credit=line.debit,
                    description=line.description,
                    customer_id=line.customer_id,
                    vendor_id=line.vendor_id,
                )
                for line in original.lines
            ],
        )
        return await self.commit(org_id, actor_id, request, reverses_header_id=original.header.id)

    async def reverse(
        self,
        identity: CallerIdentity,
        header_id: uuid.UUID,
        reversal_date: datetime.date | None = None,
        memo: str | None = None,
        idempotency_key: str | None = None,
    ) -> IdempotentResult:
        org_id = identity.require_org()

        async def execute() -> dict[str, Any]:
            result = await self.reverse_header(
                org_id, identity.user_id, header_id, reversal_date, memo
            )
            return result.to_dict()

        return await self.mediator.run(
            org_id,
            idempotency_key,
            "postings.reverse",
            identity.user_id,
            {"header_id": header_id, "reversal_date": reversal_date, "memo": memo},
            execute,
            status_code=201,
        )
