from ledger.stores.base import (
    AccountRecord,
    AccountStore,
    GLHeaderRecord,
    GLLineRecord,
    HeaderTotals,
    IdempotencyKeyExists,
    IdempotencyRecord,
    IdempotencyStore,
    LedgerStore,
    MembershipRecord,
    MembershipStore,
    OrgRecord,
)

__all__ = [
    "AccountRecord",
    "AccountStore",
    "GLHeaderRecord",
    "GLLineRecord",
    "HeaderTotals",
    "IdempotencyKeyExists",
    "IdempotencyRecord",
    "IdempotencyStore",
    "LedgerStore",
    "MembershipRecord",
    "MembershipStore",
    "OrgRecord",
]
