"""Wires the ledger core components to one set of stores."""
from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from ledger.services.audit_service import AuditSink, AuditTrail
from ledger.services.authorization import AuthorizationGate
from ledger.services.chart_of_accounts import AccountService
from ledger.services.idempotency import IdempotencyMediator
from ledger.services.integrity import LedgerIntegrityAuditor
from ledger.services.posting import PostingEngine
from ledger.stores.base import AccountStore, IdempotencyStore, LedgerStore, MembershipStore
from ledger.stores.sql import (
    SqlAccountStore,
    SqlIdempotencyStore,
    SqlLedgerStore,
    SqlMembershipStore,
)


class LedgerCore:
    def __init__(
        self,
        accounts: AccountStore,
        ledger: LedgerStore,
        idempotency: IdempotencyStore,
        memberships: MembershipStore,
        audit: AuditSink,
    ) -> None:
        self.mediator = IdempotencyMediator(idempotency)
        self.accounts = AccountService(accounts, self.mediator, audit)
        self.validator = self.accounts.validator
        self.engine = PostingEngine(ledger, accounts, self.mediator)
        self.auditor = LedgerIntegrityAuditor(ledger)
        self.gate = AuthorizationGate(memberships)
        self.audit = audit

    @classmethod
    def for_session(cls, db: AsyncSession) -> LedgerCore:
        return cls(
            accounts=SqlAccountStore(db),
            ledger=SqlLedgerStore(db),
            idempotency=SqlIdempotencyStore(db),
            memberships=SqlMembershipStore(db),
            audit=AuditTrail(db),
        )
