"""SQLAlchemy implementations of the ledger store protocols.

Every store works inside the caller's ``AsyncSession`` and only flushes;
committing is the request boundary's job, so a posting's header, lines and
idempotency record land in one transaction.
"""
from __future__ import annotations

import uuid

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.errors import ConflictError
from ledger.models.catalog import BankAccount, Item
from ledger.models.gl import Account, GLHeader, GLLine
from ledger.models.idempotency import IdempotencyKey
from ledger.models.journal import JournalLine
from ledger.models.org import DEFAULT_ACCOUNT_COLUMNS, Organization, OrgSettings
from ledger.models.user import Membership, RolePermission
from ledger.stores.base import (
    AccountRecord,
    GLHeaderRecord,
    GLLineRecord,
    HeaderTotals,
    IdempotencyKeyExists,
    IdempotencyRecord,
    MembershipRecord,
    OrgRecord,
)

# Every column that can point at an account, labelled for the in-use report
_ACCOUNT_REFERENCES = (
    ("gl_lines", GLLine, GLLine.account_id),
    ("journal_lines", JournalLine, JournalLine.account_id),
    ("items.income_account", Item, Item.income_account_id),
    ("items.expense_account", Item, Item.expense_account_id),
    ("items.inventory_account", Item, Item.inventory_account_id),
    ("bank_accounts", BankAccount, BankAccount.gl_account_id),
)


def _account_record(row: Account) -> AccountRecord:
    return AccountRecord(
        id=row.id,
        org_id=row.org_id,
        code=row.code,
        name=row.name,
        type=row.type,
        subtype=row.subtype,
        normal_balance=row.normal_balance,
        parent_account_id=row.parent_account_id,
        is_system=row.is_system,
        is_reconcilable=row.is_reconcilable,
        is_active=row.is_active,
        tax_code_id=row.tax_code_id,
        description=row.description,
    )


def _header_record(row: GLHeader) -> GLHeaderRecord:
    return GLHeaderRecord(
        id=row.id,
        org_id=row.org_id,
        source_type=row.source_type,
        source_id=row.source_id,
        posting_date=row.posting_date,
        currency=row.currency,
        exchange_rate=row.exchange_rate,
        total_debit=row.total_debit,
        total_credit=row.total_credit,
        memo=row.memo,
        reverses_header_id=row.reverses_header_id,
        created_by_user_id=row.created_by_user_id,
    )


def _line_record(row: GLLine) -> GLLineRecord:
    return GLLineRecord(
        id=row.id,
        org_id=row.org_id,
        header_id=row.header_id,
        line_no=row.line_no,
        account_id=row.account_id,
        debit=row.debit,
        credit=row.credit,
        description=row.description,
        customer_id=row.customer_id,
        vendor_id=row.vendor_id,
    )


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


class SqlAccountStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _get_row(self, org_id: uuid.UUID, account_id: uuid.UUID) -> Account | None:
        result = await self.db.execute(
            select(Account).where(Account.id == account_id, Account.org_id == org_id)
        )
        return result.scalar_one_or_none()

    async def get(self, org_id: uuid.UUID, account_id: uuid.UUID) -> AccountRecord | None:
        row = await self._get_row(org_id, account_id)
        return _account_record(row) if row else None

    async def get_many(
        self, org_id: uuid.UUID, account_ids: set[uuid.UUID]
    ) -> dict[uuid.UUID, AccountRecord]:
        if not account_ids:
            return {}
        result = await self.db.execute(
            select(Account).where(Account.org_id == org_id, Account.id.in_(account_ids))
        )
        return {row.id: _account_record(row) for row in result.scalars().all()}

    async def get_by_code(self, org_id: uuid.UUID, code: str) -> AccountRecord | None:
        result = await self.db.execute(
            select(Account).where(Account.org_id == org_id, Account.code == code)
        )
        row = result.scalar_one_or_none()
        return _account_record(row) if row else None

    async def list_accounts(self, org_id: uuid.UUID) -> list[AccountRecord]:
        result = await self.db.execute(
            select(Account).where(Account.org_id == org_id).order_by(Account.code)
        )
        return [_account_record(row) for row in result.scalars().all()]

    async def insert(self, account: AccountRecord) -> AccountRecord:
        row = Account(
            id=account.id,
            org_id=account.org_id,
            code=account.code,
            name=account.name,
            type=account.type,
            subtype=account.subtype,
            normal_balance=account.normal_balance,
            parent_account_id=account.parent_account_id,
            is_system=account.is_system,
            is_reconcilable=account.is_reconcilable,
            is_active=account.is_active,
            tax_code_id=account.tax_code_id,
            description=account.description,
        )
        self.db.add(row)
        try:
            await self.db.flush()
        except IntegrityError as exc:
            raise ConflictError(
                "Account code already exists",
                details={"code": account.code},
            ) from exc
        return _account_record(row)

    async def update(self, account: AccountRecord) -> AccountRecord:
        row = await self._get_row(account.org_id, account.id)
        if row is None:
            raise LookupError(f"Account {account.id} vanished during update")
        row.code = account.code
        row.name = account.name
        row.type = account.type
        row.subtype = account.subtype
        row.normal_balance = account.normal_balance
        row.parent_account_id = account.parent_account_id
        row.is_reconcilable = account.is_reconcilable
        row.is_active = account.is_active
        row.tax_code_id = account.tax_code_id
        row.description = account.description
        try:
            await self.db.flush()
        except IntegrityError as exc:
            raise ConflictError(
                "Account code already exists",
                details={"code": account.code},
            ) from exc
        return _account_record(row)

    async def count_children(self, org_id: uuid.UUID, account_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count(Account.id)).where(
                Account.org_id == org_id,
                Account.parent_account_id == account_id,
            )
        )
        return result.scalar_one()

    async def count_references(
        self, org_id: uuid.UUID, account_id: uuid.UUID
    ) -> dict[str, int]:
        counts: dict[str, int] = {}
        for label, model, column in _ACCOUNT_REFERENCES:
            result = await self.db.execute(
                select(func.count())
                .select_from(model)
                .where(model.org_id == org_id, column == account_id)
            )
            counts[label] = result.scalar_one()

        result = await self.db.execute(
            select(func.count())
            .select_from(OrgSettings)
            .where(
                OrgSettings.org_id == org_id,
                or_(*(getattr(OrgSettings, name) == account_id for name in DEFAULT_ACCOUNT_COLUMNS)),
            )
        )
        counts["org_defaults"] = result.scalar_one()
        return counts


# ---------------------------------------------------------------------------
# Ledger (headers + lines)
# ---------------------------------------------------------------------------


class SqlLedgerStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_organization(self, org_id: uuid.UUID) -> OrgRecord | None:
        result = await self.db.execute(
            select(Organization, OrgSettings.lock_date)
            .outerjoin(OrgSettings, OrgSettings.org_id == Organization.id)
            .where(Organization.id == org_id)
        )
        row = result.one_or_none()
        if row is None:
            return None
        org, lock_date = row
        return OrgRecord(
            id=org.id,
            name=org.name,
            base_currency=org.base_currency,
            lock_date=lock_date,
        )

    async def get_header(
        self, org_id: uuid.UUID, header_id: uuid.UUID
    ) -> GLHeaderRecord | None:
        result = await self.db.execute(
            select(GLHeader).where(GLHeader.id == header_id, GLHeader.org_id == org_id)
        )
        row = result.scalar_one_or_none()
        return _header_record(row) if row else None

    async def get_lines(
        self, org_id: uuid.UUID, header_id: uuid.UUID
    ) -> list[GLLineRecord]:
        result = await self.db.execute(
            select(GLLine)
            .where(GLLine.header_id == header_id, GLLine.org_id == org_id)
            .order_by(GLLine.line_no)
        )
        return [_line_record(row) for row in result.scalars().all()]

    async def find_header_by_source(
        self, org_id: uuid.UUID, source_type: str, source_id: str
    ) -> GLHeaderRecord | None:
        result = await self.db.execute(
            select(GLHeader).where(
                GLHeader.org_id == org_id,
                GLHeader.source_type == source_type,
                GLHeader.source_id == source_id,
            )
        )
        row = result.scalar_one_or_none()
        return _header_record(row) if row else None

    async def find_reversal(
        self, org_id: uuid.UUID, header_id: uuid.UUID
    ) -> GLHeaderRecord | None:
        result = await self.db.execute(
            select(GLHeader).where(
                GLHeader.org_id == org_id,
                GLHeader.reverses_header_id == header_id,
            )
        )
        row = result.scalar_one_or_none()
        return _header_record(row) if row else None

    async def insert_posting(
        self, header: GLHeaderRecord, lines: list[GLLineRecord]
    ) -> None:
        self.db.add(GLHeader(
            id=header.id,
            org_id=header.org_id,
            source_type=header.source_type,
            source_id=header.source_id,
            posting_date=header.posting_date,
            currency=header.currency,
            exchange_rate=header.exchange_rate,
            total_debit=header.total_debit,
            total_credit=header.total_credit,
            memo=header.memo,
            reverses_header_id=header.reverses_header_id,
            created_by_user_id=header.created_by_user_id,
        ))
        # Header first so the lines' foreign key resolves
        try:
            await self.db.flush()
        except IntegrityError as exc:
            raise ConflictError(
                "GL header already exists for this source",
                hint="This document may already be posted.",
                details={"source_type": header.source_type, "source_id": header.source_id},
            ) from exc

        self.db.add_all([
            GLLine(
                id=line.id,
                org_id=line.org_id,
                header_id=line.header_id,
                line_no=line.line_no,
                account_id=line.account_id,
                debit=line.debit,
                credit=line.credit,
                description=line.description,
                customer_id=line.customer_id,
                vendor_id=line.vendor_id,
            )
            for line in lines
        ])
        await self.db.flush()

    async def header_totals(self, org_id: uuid.UUID) -> list[HeaderTotals]:
        line_debit = func.coalesce(func.sum(GLLine.debit), 0).label("line_debit")
        line_credit = func.coalesce(func.sum(GLLine.credit), 0).label("line_credit")
        stmt = (
            select(
                GLHeader.id,
                GLHeader.source_type,
                GLHeader.source_id,
                GLHeader.posting_date,
                GLHeader.total_debit,
                GLHeader.total_credit,
                line_debit,
                line_credit,
            )
            .outerjoin(GLLine, GLLine.header_id == GLHeader.id)
            .where(GLHeader.org_id == org_id)
            .group_by(
                GLHeader.id,
                GLHeader.source_type,
                GLHeader.source_id,
                GLHeader.posting_date,
                GLHeader.total_debit,
                GLHeader.total_credit,
            )
            .order_by(GLHeader.posting_date.desc())
        )
        result = await self.db.execute(stmt)
        return [
            HeaderTotals(
                header_id=row.id,
                source_type=row.source_type,
                source_id=row.source_id,
                posting_date=row.posting_date,
                total_debit=row.total_debit,
                total_credit=row.total_credit,
                line_debit=row.line_debit,
                line_credit=row.line_credit,
            )
            for row in result.all()
        ]

    async def malformed_lines(self, org_id: uuid.UUID) -> list[GLLineRecord]:
        stmt = (
            select(GLLine)
            .where(
                GLLine.org_id == org_id,
                or_(
                    and_(GLLine.debit > 0, GLLine.credit > 0),
                    and_(GLLine.debit == 0, GLLine.credit == 0),
                ),
            )
            .order_by(GLLine.created_at.desc())
        )
        result = await self.db.execute(stmt)
        return [_line_record(row) for row in result.scalars().all()]


# ---------------------------------------------------------------------------
# Idempotency
# ---------------------------------------------------------------------------


class SqlIdempotencyStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, org_id: uuid.UUID, key: str) -> IdempotencyRecord | None:
        result = await self.db.execute(
            select(IdempotencyKey).where(
                IdempotencyKey.org_id == org_id,
                IdempotencyKey.key == key,
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return IdempotencyRecord(
            org_id=row.org_id,
            key=row.key,
            request_hash=row.request_hash,
            response=row.response,
            status_code=row.status_code,
        )

    async def insert(self, record: IdempotencyRecord) -> None:
        self.db.add(IdempotencyKey(
            org_id=record.org_id,
            key=record.key,
            request_hash=record.request_hash,
            response=record.response,
            status_code=record.status_code,
        ))
        try:
            await self.db.flush()
        except IntegrityError as exc:
            # Lost the race: drop this request's writes, the winner's stand
            await self.db.rollback()
            raise IdempotencyKeyExists(record.org_id, record.key) from exc

    async def discard_pending(self) -> None:
        await self.db.rollback()


# ---------------------------------------------------------------------------
# Memberships
# ---------------------------------------------------------------------------


class SqlMembershipStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_membership(self, membership_id: uuid.UUID) -> MembershipRecord | None:
        result = await self.db.execute(
            select(Membership).where(Membership.id == membership_id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return MembershipRecord(
            id=row.id,
            org_id=row.org_id,
            user_id=row.user_id,
            role_id=row.role_id,
            is_active=row.is_active,
            deleted_at=row.deleted_at,
        )

    async def get_role_permissions(self, role_id: uuid.UUID) -> set[str]:
        result = await self.db.execute(
            select(RolePermission.permission_code).where(RolePermission.role_id == role_id)
        )
        return set(result.scalars().all())
