"""Organization routes: bootstrap, current organization and lock date."""
from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.context import CallerIdentity
from ledger.database import get_db
from ledger.middleware.auth import get_core, require_operation
from ledger.services.core import LedgerCore
from ledger.services.org_service import OrgService

router = APIRouter(prefix="/api/orgs", tags=["organizations"])


class OrgCreate(BaseModel):
    name: str
    base_currency: str | None = None


class OrgSettingsUpdate(BaseModel):
    lock_date: date | None = None


@router.post("", status_code=201)
async def create_organization(
    body: OrgCreate,
    db: AsyncSession = Depends(get_db),
    core: LedgerCore = Depends(get_core),
    identity: CallerIdentity = Depends(require_operation("orgs.create")),
):
    service = OrgService(db, core.audit)
    created = await service.create_organization(identity, body.name, body.base_currency)
    await db.commit()
    return created


@router.get("/current")
async def get_current_organization(
    db: AsyncSession = Depends(get_db),
    core: LedgerCore = Depends(get_core),
    identity: CallerIdentity = Depends(require_operation("orgs.read_current")),
):
    organization = await OrgService(db, core.audit).get_current_organization(identity)
    return {"organization": organization}


@router.patch("/current/settings")
async def update_organization_settings(
    body: OrgSettingsUpdate,
    db: AsyncSession = Depends(get_db),
    core: LedgerCore = Depends(get_core),
    identity: CallerIdentity = Depends(require_operation("orgs.update_settings")),
):
    organization = await OrgService(db, core.audit).update_lock_date(identity, body.lock_date)
    await db.commit()
    return organization
