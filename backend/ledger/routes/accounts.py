"""Chart of accounts routes."""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.context import CallerIdentity
from ledger.database import get_db
from ledger.middleware.auth import get_core, require_operation
from ledger.routes.responses import idempotent_response
from ledger.services.core import LedgerCore

router = APIRouter(prefix="/api/accounts", tags=["chart-of-accounts"])


class AccountCreate(BaseModel):
    code: str
    name: str
    type: str
    subtype: str | None = None
    normal_balance: str | None = None
    parent_account_id: uuid.UUID | None = None
    is_reconcilable: bool | None = None
    tax_code_id: uuid.UUID | None = None
    description: str | None = None


class AccountUpdate(BaseModel):
    code: str | None = None
    name: str | None = None
    type: str | None = None
    subtype: str | None = None
    normal_balance: str | None = None
    parent_account_id: uuid.UUID | None = None
    is_reconcilable: bool | None = None
    is_active: bool | None = None
    tax_code_id: uuid.UUID | None = None
    description: str | None = None


@router.get("")
async def list_accounts(
    core: LedgerCore = Depends(get_core),
    identity: CallerIdentity = Depends(require_operation("accounts.list")),
):
    accounts = await core.accounts.list_accounts(identity)
    return [account.to_dict() for account in accounts]


@router.get("/{account_id}")
async def get_account(
    account_id: uuid.UUID,
    core: LedgerCore = Depends(get_core),
    identity: CallerIdentity = Depends(require_operation("accounts.read")),
):
    account = await core.accounts.get_account(identity, account_id)
    return account.to_dict()


@router.post("", status_code=201)
async def create_account(
    body: AccountCreate,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    db: AsyncSession = Depends(get_db),
    core: LedgerCore = Depends(get_core),
    identity: CallerIdentity = Depends(require_operation("accounts.create")),
):
    result = await core.accounts.create_account(identity, body.model_dump(), idempotency_key)
    await db.commit()
    return idempotent_response(result)


@router.patch("/{account_id}")
async def update_account(
    account_id: uuid.UUID,
    body: AccountUpdate,
    db: AsyncSession = Depends(get_db),
    core: LedgerCore = Depends(get_core),
    identity: CallerIdentity = Depends(require_operation("accounts.update")),
):
    # Only fields the client sent count as changes
    account = await core.accounts.update_account(
        identity, account_id, body.model_dump(exclude_unset=True)
    )
    await db.commit()
    return account.to_dict()
