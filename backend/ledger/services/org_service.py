"""Organization bootstrap and settings.

Creating an organization seeds everything the ledger needs before the first
posting: a settings row, the system chart of accounts with its default
links, the default roles, and an owner membership for the creator.
"""
from __future__ import annotations

import datetime
import logging
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.config import settings
from ledger.context import CallerIdentity
from ledger.errors import NotFoundError, ValidationError
from ledger.models.gl import Account
from ledger.models.org import Organization, OrgSettings
from ledger.models.user import Membership, Role, RolePermission
from ledger.rbac import DEFAULT_ROLE_PERMISSIONS, OWNER_ROLE
from ledger.services.audit_service import AuditSink
from ledger.services.chart_of_accounts import default_reconcilable, resolve_normal_balance

logger = logging.getLogger(__name__)

# (code, name, type, subtype)
DEFAULT_ACCOUNTS: tuple[tuple[str, str, str, str | None], ...] = (
    ("1000", "Cash", "ASSET", "CASH"),
    ("1010", "Bank", "ASSET", "BANK"),
    ("1020", "Undeposited Funds", "ASSET", "CASH"),
    ("1100", "Accounts Receivable", "ASSET", "AR"),
    ("1200", "VAT Receivable", "ASSET", "VAT_RECEIVABLE"),
    ("1300", "Vendor Prepayments", "ASSET", "VENDOR_PREPAYMENTS"),
    ("1400", "Inventory Asset", "ASSET", None),
    ("1500", "Fixed Assets", "ASSET", None),
    ("2000", "Accounts Payable", "LIABILITY", "AP"),
    ("2100", "VAT Payable", "LIABILITY", "VAT_PAYABLE"),
    ("2200", "Customer Advances", "LIABILITY", "CUSTOMER_ADVANCES"),
    ("3000", "Owner's Equity", "EQUITY", "EQUITY"),
    ("3900", "Opening Balance Adjustment", "EQUITY", "EQUITY"),
    ("4000", "Sales Revenue", "INCOME", "SALES"),
    ("5000", "General Expenses", "EXPENSE", "EXPENSE"),
    ("5100", "Cost of Goods Sold", "EXPENSE", None),
)

# OrgSettings column → seeded account code
DEFAULT_ACCOUNT_LINKS: dict[str, str] = {
    "default_ar_account_id": "1100",
    "default_ap_account_id": "2000",
    "default_vat_receivable_account_id": "1200",
    "default_vat_payable_account_id": "2100",
    "default_sales_account_id": "4000",
    "default_expense_account_id": "5000",
}


def _org_dict(org: Organization, org_settings: OrgSettings | None) -> dict[str, Any]:
    return {
        "id": str(org.id),
        "name": org.name,
        "base_currency": org.base_currency,
        "lock_date": (
            org_settings.lock_date.isoformat()
            if org_settings and org_settings.lock_date
            else None
        ),
    }


class OrgService:
    def __init__(self, db: AsyncSession, audit: AuditSink) -> None:
        self.db = db
        self.audit = audit

    async def create_organization(
        self,
        identity: CallerIdentity,
        name: str,
        base_currency: str | None = None,
    ) -> dict[str, Any]:
        name = name.strip()
        if not name:
            raise ValidationError("Organization name is required")
        currency = (base_currency or settings.DEFAULT_BASE_CURRENCY).strip().upper()
        if len(currency) != 3 or not currency.isalpha():
            raise ValidationError(
                "Base currency must be a 3-letter code",
                details={"base_currency": currency},
            )

        org = Organization(
            id=uuid.uuid4(),
            name=name,
            base_currency=currency,
            created_by_user_id=identity.user_id,
        )
        self.db.add(org)
        await self.db.flush()

        # Chart of accounts
        accounts_by_code: dict[str, Account] = {}
        for code, account_name, account_type, subtype in DEFAULT_ACCOUNTS:
            account = Account(
                id=uuid.uuid4(),
                org_id=org.id,
                code=code,
                name=account_name,
                type=account_type,
                subtype=subtype,
                normal_balance=resolve_normal_balance(account_type),
                is_system=True,
                is_reconcilable=default_reconcilable(subtype),
                is_active=True,
            )
            accounts_by_code[code] = account
            self.db.add(account)
        await self.db.flush()

        org_settings = OrgSettings(org_id=org.id)
        for column, code in DEFAULT_ACCOUNT_LINKS.items():
            setattr(org_settings, column, accounts_by_code[code].id)
        self.db.add(org_settings)

        # Roles and grants
        roles: dict[str, Role] = {}
        for role_name in DEFAULT_ROLE_PERMISSIONS:
            role = Role(id=uuid.uuid4(), org_id=org.id, name=role_name, is_system=True)
            roles[role_name] = role
            self.db.add(role)
        await self.db.flush()
        for role_name, permissions in DEFAULT_ROLE_PERMISSIONS.items():
            self.db.add_all([
                RolePermission(role_id=roles[role_name].id, permission_code=code)
                for code in sorted(permissions)
            ])

        owner = roles[OWNER_ROLE]
        membership = Membership(
            id=uuid.uuid4(),
            org_id=org.id,
            user_id=identity.user_id,
            role_id=owner.id,
            is_active=True,
        )
        self.db.add(membership)
        await self.db.flush()

        await self.audit.log(
            org.id, identity.user_id, "organization", str(org.id), "create",
            after={"name": org.name, "base_currency": org.base_currency},
        )
        await self.audit.log(
            org.id, identity.user_id, "organization", str(org.id), "bootstrap.seed",
            after={
                "accounts": sorted(accounts_by_code),
                "roles": sorted(roles),
            },
        )
        logger.info(f"Organization {org.name!r} ({org.id}) bootstrapped by {identity.user_id}")

        return {
            "organization": _org_dict(org, org_settings),
            "membership": {
                "id": str(membership.id),
                "role_id": str(owner.id),
                "role": OWNER_ROLE,
            },
        }

    async def _load(self, org_id: uuid.UUID) -> tuple[Organization, OrgSettings | None]:
        result = await self.db.execute(
            select(Organization, OrgSettings)
            .outerjoin(OrgSettings, OrgSettings.org_id == Organization.id)
            .where(Organization.id == org_id)
        )
        row = result.one_or_none()
        if row is None:
            raise NotFoundError("Organization not found")
        return row[0], row[1]

    async def get_current_organization(
        self, identity: CallerIdentity
    ) -> dict[str, Any] | None:
        """The caller's bound organization, or ``None`` before bootstrap."""
        if identity.org_id is None:
            return None
        org, org_settings = await self._load(identity.org_id)
        return _org_dict(org, org_settings)

    async def update_lock_date(
        self, identity: CallerIdentity, lock_date: datetime.date | None
    ) -> dict[str, Any]:
        org_id = identity.require_org()
        org, org_settings = await self._load(org_id)
        if org_settings is None:
            org_settings = OrgSettings(org_id=org_id)
            self.db.add(org_settings)

        before = {"lock_date": org_settings.lock_date.isoformat() if org_settings.lock_date else None}
        org_settings.lock_date = lock_date
        await self.db.flush()
        await self.audit.log(
            org_id, identity.user_id, "org_settings", str(org_id), "update",
            before=before,
            after={"lock_date": lock_date.isoformat() if lock_date else None},
        )
        return _org_dict(org, org_settings)
