"""Manual journal routes."""
from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.context import CallerIdentity
from ledger.database import get_db
from ledger.middleware.auth import get_core, require_operation
from ledger.routes.responses import idempotent_response
from ledger.services.core import LedgerCore
from ledger.services.journal_service import JournalService

router = APIRouter(prefix="/api/journals", tags=["journals"])


class JournalLineIn(BaseModel):
    account_id: uuid.UUID
    debit: Decimal = Decimal("0")
    credit: Decimal = Decimal("0")
    description: str | None = None
    customer_id: uuid.UUID | None = None
    vendor_id: uuid.UUID | None = None


class JournalCreate(BaseModel):
    journal_date: date
    memo: str | None = None
    lines: list[JournalLineIn]


class JournalVoid(BaseModel):
    void_date: date | None = None


@router.post("", status_code=201)
async def create_journal(
    body: JournalCreate,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    db: AsyncSession = Depends(get_db),
    core: LedgerCore = Depends(get_core),
    identity: CallerIdentity = Depends(require_operation("journals.create")),
):
    service = JournalService(db, core)
    result = await service.create_journal(identity, body.model_dump(), idempotency_key)
    await db.commit()
    return idempotent_response(result)


@router.get("/{journal_id}")
async def get_journal(
    journal_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    core: LedgerCore = Depends(get_core),
    identity: CallerIdentity = Depends(require_operation("journals.read")),
):
    return await JournalService(db, core).get_journal(identity, journal_id)


@router.post("/{journal_id}/post")
async def post_journal(
    journal_id: uuid.UUID,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    db: AsyncSession = Depends(get_db),
    core: LedgerCore = Depends(get_core),
    identity: CallerIdentity = Depends(require_operation("journals.post")),
):
    service = JournalService(db, core)
    result = await service.post_journal(identity, journal_id, idempotency_key)
    await db.commit()
    return idempotent_response(result)


@router.post("/{journal_id}/void")
async def void_journal(
    journal_id: uuid.UUID,
    body: JournalVoid | None = None,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    db: AsyncSession = Depends(get_db),
    core: LedgerCore = Depends(get_core),
    identity: CallerIdentity = Depends(require_operation("journals.void")),
):
    body = body or JournalVoid()
    service = JournalService(db, core)
    result = await service.void_journal(
        identity, journal_id, void_date=body.void_date, idempotency_key=idempotency_key
    )
    await db.commit()
    return idempotent_response(result)
