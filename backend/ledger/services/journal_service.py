"""Manual journal documents.

A journal is drafted with free-form lines, posted to the GL through the
posting engine (source ``JOURNAL``), and voided by reversing that posting.
Every transition is idempotent when the caller supplies a key.
"""
from __future__ import annotations

import datetime
import logging
import uuid
from collections.abc import Mapping, Sequence
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.context import CallerIdentity
from ledger.errors import ConflictError, NotFoundError
from ledger.models.gl import GLSourceType
from ledger.models.journal import Journal, JournalLine, JournalStatus
from ledger.money import round2, to_string2
from ledger.services.core import LedgerCore
from ledger.services.idempotency import IdempotentResult
from ledger.services.posting import (
    LineDraft,
    PostingRequest,
    assert_gl_lines_valid,
    ensure_not_locked,
)

logger = logging.getLogger(__name__)


def _journal_dict(journal: Journal, lines: Sequence[JournalLine]) -> dict[str, Any]:
    return {
        "id": str(journal.id),
        "journal_date": journal.journal_date.isoformat(),
        "memo": journal.memo,
        "status": journal.status,
        "gl_header_id": str(journal.gl_header_id) if journal.gl_header_id else None,
        "reversal_header_id": (
            str(journal.reversal_header_id) if journal.reversal_header_id else None
        ),
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
            for line in lines
        ],
    }


def _drafts(lines: Sequence[Mapping[str, Any]]) -> list[LineDraft]:
    return [
        LineDraft(
            account_id=line["account_id"],
            debit=line.get("debit") or 0,
            credit=line.get("credit") or 0,
            description=line.get("description"),
            customer_id=line.get("customer_id"),
            vendor_id=line.get("vendor_id"),
            line_no=index,
        )
        for index, line in enumerate(lines, start=1)
    ]


class JournalService:
    def __init__(self, db: AsyncSession, core: LedgerCore) -> None:
        self.db = db
        self.core = core

    async def _load(
        self, org_id: uuid.UUID, journal_id: uuid.UUID
    ) -> tuple[Journal, list[JournalLine]]:
        result = await self.db.execute(
            select(Journal).where(Journal.id == journal_id, Journal.org_id == org_id)
        )
        journal = result.scalar_one_or_none()
        if journal is None:
            raise NotFoundError("Journal not found")
        result = await self.db.execute(
            select(JournalLine)
            .where(JournalLine.journal_id == journal.id)
            .order_by(JournalLine.line_no)
        )
        return journal, list(result.scalars().all())

    async def get_journal(
        self, identity: CallerIdentity, journal_id: uuid.UUID
    ) -> dict[str, Any]:
        journal, lines = await self._load(identity.require_org(), journal_id)
        return _journal_dict(journal, lines)

    async def create_journal(
        self,
        identity: CallerIdentity,
        data: Mapping[str, Any],
        idempotency_key: str | None = None,
    ) -> IdempotentResult:
        org_id = identity.require_org()

        async def execute() -> dict[str, Any]:
            journal_date: datetime.date = data["journal_date"]
            drafts = _drafts(data.get("lines") or [])
            assert_gl_lines_valid(drafts)
            org = await self.core.engine.organization(org_id)
            ensure_not_locked(org.lock_date, journal_date, "create")
            await self.core.engine.assert_accounts_postable(org_id, drafts)

            journal = Journal(
                id=uuid.uuid4(),
                org_id=org_id,
                journal_date=journal_date,
                memo=data.get("memo"),
                status=JournalStatus.DRAFT.value,
                created_by_user_id=identity.user_id,
            )
            self.db.add(journal)
            await self.db.flush()
            lines = [
                JournalLine(
                    id=uuid.uuid4(),
                    org_id=org_id,
                    journal_id=journal.id,
                    line_no=draft.line_no,
                    account_id=draft.account_id,
                    debit=round2(draft.debit),
                    credit=round2(draft.credit),
                    description=draft.description,
                    customer_id=draft.customer_id,
                    vendor_id=draft.vendor_id,
                )
                for draft in drafts
            ]
            self.db.add_all(lines)
            await self.db.flush()

            body = _journal_dict(journal, lines)
            await self.core.audit.log(
                org_id, identity.user_id, "journal", str(journal.id), "create", after=body
            )
            return body

        return await self.core.mediator.run(
            org_id,
            idempotency_key,
            "journals.create",
            identity.user_id,
            dict(data),
            execute,
            status_code=201,
        )

    async def post_journal(
        self,
        identity: CallerIdentity,
        journal_id: uuid.UUID,
        idempotency_key: str | None = None,
    ) -> IdempotentResult:
        org_id = identity.require_org()

        async def execute() -> dict[str, Any]:
            journal, lines = await self._load(org_id, journal_id)
            if journal.status != JournalStatus.DRAFT.value:
                raise ConflictError(
                    f"Only draft journals can be posted (status is {journal.status})",
                    code="INVALID_STATUS",
                )
            request = PostingRequest(
                source_type=GLSourceType.JOURNAL.value,
                source_id=str(journal.id),
                posting_date=journal.journal_date,
                memo=journal.memo,
                lines=[
                    LineDraft(
                        account_id=line.account_id,
                        debit=line.debit,
                        credit=line.credit,
                        description=line.description,
                        customer_id=line.customer_id,
                        vendor_id=line.vendor_id,
                        line_no=line.line_no,
                    )
                    for line in lines
                ],
            )
            before = _journal_dict(journal, lines)
            result = await self.core.engine.commit(org_id, identity.user_id, request)

            journal.status = JournalStatus.POSTED.value
            journal.gl_header_id = result.header.id
            await self.db.flush()

            body = _journal_dict(journal, lines)
            await self.core.audit.log(
                org_id, identity.user_id, "journal", str(journal.id), "post",
                before=before, after=body,
            )
            logger.info(f"Journal {journal.id} posted as GL header {result.header.id}")
            return {"journal": body, "gl": result.to_dict()}

        return await self.core.mediator.run(
            org_id,
            idempotency_key,
            "journals.post",
            identity.user_id,
            {"journal_id": journal_id},
            execute,
            status_code=200,
        )

    async def void_journal(
        self,
        identity: CallerIdentity,
        journal_id: uuid.UUID,
        void_date: datetime.date | None = None,
        idempotency_key: str | None = None,
    ) -> IdempotentResult:
        org_id = identity.require_org()

        async def execute() -> dict[str, Any]:
            journal, lines = await self._load(org_id, journal_id)
            if journal.status != JournalStatus.POSTED.value or journal.gl_header_id is None:
                raise ConflictError(
                    f"Only posted journals can be voided (status is {journal.status})",
                    code="INVALID_STATUS",
                )
            before = _journal_dict(journal, lines)
            result = await self.core.engine.reverse_header(
                org_id,
                identity.user_id,
                journal.gl_header_id,
                reversal_date=void_date,
                memo=f"Void of journal {journal.id}",
            )

            journal.status = JournalStatus.VOID.value
            journal.reversal_header_id = result.header.id
            await self.db.flush()

            body = _journal_dict(journal, lines)
            await self.core.audit.log(
                org_id, identity.user_id, "journal", str(journal.id), "void",
                before=before, after=body,
            )
            return {"journal": body, "gl": result.to_dict()}

        return await self.core.mediator.run(
            org_id,
            idempotency_key,
            "journals.void",
            identity.user_id,
            {"journal_id": journal_id, "void_date": void_date},
            execute,
            status_code=200,
        )
