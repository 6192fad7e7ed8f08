"""General Ledger routes: postings, reversals and the integrity audit."""
from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, Header, Query
from pydantic import BaseModel, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.context import CallerIdentity
from ledger.database import get_db
from ledger.middleware.auth import get_core, require_operation
from ledger.routes.responses import idempotent_response
from ledger.services.core import LedgerCore
from ledger.services.posting import LineDraft, PostingRequest

router = APIRouter(prefix="/api/gl", tags=["general-ledger"])


# ---------------------------------------------------------------------------
# Pydantic Schemas
# ---------------------------------------------------------------------------

class PostingLineIn(BaseModel):
    account_id: uuid.UUID
    debit: Decimal = Decimal("0")
    credit: Decimal = Decimal("0")
    description: str | None = None
    customer_id: uuid.UUID | None = None
    vendor_id: uuid.UUID | None = None


class PostingCreate(BaseModel):
    source_type: str
    source_id: str
    posting_date: date
    memo: str | None = None
    currency: str | None = None
    exchange_rate: Decimal = Decimal("1")
    lines: list[PostingLineIn]

    @field_validator("exchange_rate")
    @classmethod
    def validate_exchange_rate(cls, v):
        if v <= 0:
            raise ValueError("Exchange rate must be positive")
        return v

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v):
        if v is not None and len(v) != 3:
            raise ValueError("Currency must be a 3-letter code")
        return v


class ReversalCreate(BaseModel):
    reversal_date: date | None = None
    memo: str | None = None


# ---------------------------------------------------------------------------
# Postings
# ---------------------------------------------------------------------------

@router.post("/postings", status_code=201)
async def create_posting(
    body: PostingCreate,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    db: AsyncSession = Depends(get_db),
    core: LedgerCore = Depends(get_core),
    identity: CallerIdentity = Depends(require_operation("postings.create")),
):
    request = PostingRequest(
        source_type=body.source_type,
        source_id=body.source_id,
        posting_date=body.posting_date,
        memo=body.memo,
        currency=body.currency,
        exchange_rate=body.exchange_rate,
        lines=[
            LineDraft(
                account_id=line.account_id,
                debit=line.debit,
                credit=line.credit,
                description=line.description,
                customer_id=line.customer_id,
                vendor_id=line.vendor_id,
            )
            for line in body.lines
        ],
    )
    result = await core.engine.post(identity, request, idempotency_key)
    await db.commit()
    return idempotent_response(result)


@router.get("/postings/{header_id}")
async def get_posting(
    header_id: uuid.UUID,
    core: LedgerCore = Depends(get_core),
    identity: CallerIdentity = Depends(require_operation("postings.read")),
):
    result = await core.engine.get_posting(identity.require_org(), header_id)
    return result.to_dict()


@router.post("/postings/{header_id}/reverse", status_code=201)
async def reverse_posting(
    header_id: uuid.UUID,
    body: ReversalCreate | None = None,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    db: AsyncSession = Depends(get_db),
    core: LedgerCore = Depends(get_core),
    identity: CallerIdentity = Depends(require_operation("postings.reverse")),
):
    body = body or ReversalCreate()
    result = await core.engine.reverse(
        identity,
        header_id,
        reversal_date=body.reversal_date,
        memo=body.memo,
        idempotency_key=idempotency_key,
    )
    await db.commit()
    return idempotent_response(result)


# ---------------------------------------------------------------------------
# Integrity audit
# ---------------------------------------------------------------------------

@router.get("/integrity")
async def ledger_integrity(
    limit: int | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
    core: LedgerCore = Depends(get_core),
    identity: CallerIdentity = Depends(require_operation("ledger.integrity")),
):
    org_id = identity.require_org()
    report = await core.auditor.audit(org_id, limit)
    await core.audit.log(
        org_id, identity.user_id, "ledger", str(org_id), "integrity.view",
        after={
            "headerIssues": report.header_issue_count,
            "lineIssues": report.line_issue_count,
        },
    )
    await db.commit()
    return report.to_dict()
