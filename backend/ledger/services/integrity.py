"""Read-only ledger integrity audit.

Recomputes each header's line sums and compares them with the stored totals,
and looks for lines that carry both sides or neither.  Findings are reported,
never raised: a broken ledger is exactly what this is for.
"""
from __future__ import annotations

import dataclasses
import logging
import uuid
from typing import Any

from ledger.config import settings
from ledger.errors import NotFoundError
from ledger.money import eq, gt, is_zero, to_string2
from ledger.stores.base import GLLineRecord, HeaderTotals, LedgerStore

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class HeaderIssue:
    header_id: uuid.UUID
    source_type: str
    source_id: str
    posting_date: Any
    total_debit: Any
    total_credit: Any
    line_debit: Any
    line_credit: Any

    def to_dict(self) -> dict[str, Any]:
        return {
            "headerId": str(self.header_id),
            "sourceType": self.source_type,
            "sourceId": self.source_id,
            "postingDate": self.posting_date.isoformat() if self.posting_date else None,
            "totalDebit": to_string2(self.total_debit),
            "totalCredit": to_string2(self.total_credit),
            "lineDebit": to_string2(self.line_debit),
            "lineCredit": to_string2(self.line_credit),
        }


@dataclasses.dataclass(frozen=True)
class LineIssue:
    line_id: uuid.UUID
    header_id: uuid.UUID
    debit: Any
    credit: Any

    def to_dict(self) -> dict[str, Any]:
        return {
            "lineId": str(self.line_id),
            "headerId": str(self.header_id),
            "debit": to_string2(self.debit),
            "credit": to_string2(self.credit),
        }


@dataclasses.dataclass(frozen=True)
class IntegrityReport:
    header_issue_count: int
    line_issue_count: int
    headers: list[HeaderIssue]
    lines: list[LineIssue]

    @property
    def ok(self) -> bool:
        return self.header_issue_count == 0 and self.line_issue_count == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "totals": {
                "headerIssues": self.header_issue_count,
                "lineIssues": self.line_issue_count,
            },
            "issues": {
                "headers": [issue.to_dict() for issue in self.headers],
                "lines": [issue.to_dict() for issue in self.lines],
            },
        }


def header_is_drifted(totals: HeaderTotals) -> bool:
    return (
        not eq(totals.line_debit, totals.total_debit)
        or not eq(totals.line_credit, totals.total_credit)
        or not eq(totals.total_debit, totals.total_credit)
    )


def line_is_malformed(line: GLLineRecord) -> bool:
    both = gt(line.debit, 0) and gt(line.credit, 0)
    neither = is_zero(line.debit) and is_zero(line.credit)
    return both or neither


def clamp_limit(limit: int | None) -> int:
    if limit is None:
        return settings.INTEGRITY_AUDIT_DEFAULT_LIMIT
    return max(1, min(limit, settings.INTEGRITY_AUDIT_MAX_LIMIT))


class LedgerIntegrityAuditor:
    def __init__(self, ledger: LedgerStore) -> None:
        self.ledger = ledger

    async def audit(self, org_id: uuid.UUID, limit: int | None = None) -> IntegrityReport:
        """Audit one organization's ledger.

        Totals count every issue found; the issue lists hold at most
        ``limit`` entries each, newest first.
        """
        limit = clamp_limit(limit)
        if await self.ledger.get_organization(org_id) is None:
            raise NotFoundError("Organization not found")

        header_issues = [
            HeaderIssue(
                header_id=totals.header_id,
                source_type=totals.source_type,
                source_id=totals.source_id,
                posting_date=totals.posting_date,
                total_debit=totals.total_debit,
                total_credit=totals.total_credit,
                line_debit=totals.line_debit,
                line_credit=totals.line_credit,
            )
            for totals in await self.ledger.header_totals(org_id)
            if header_is_drifted(totals)
        ]
        line_issues = [
            LineIssue(
                line_id=line.id,
                header_id=line.header_id,
                debit=line.debit,
                credit=line.credit,
            )
            for line in await self.ledger.malformed_lines(org_id)
            if line_is_malformed(line)
        ]

        report = IntegrityReport(
            header_issue_count=len(header_issues),
            line_issue_count=len(line_issues),
            headers=header_issues[:limit],
            lines=line_issues[:limit],
        )
        if not report.ok:
            logger.error(
                f"Ledger integrity issues detected for org {org_id}: "
                f"{report.header_issue_count} header issue(s), "
                f"{report.line_issue_count} line issue(s)"
            )
        return report
