from ledger.models.audit import AuditLog
from ledger.models.catalog import BankAccount, Item
from ledger.models.gl import Account, GLHeader, GLLine
from ledger.models.idempotency import IdempotencyKey
from ledger.models.journal import Journal, JournalLine
from ledger.models.org import Organization, OrgSettings
from ledger.models.user import Membership, Role, RolePermission, User

__all__ = [
    # Tenancy
    "Organization",
    "OrgSettings",
    # Identity & access
    "User",
    "Role",
    "RolePermission",
    "Membership",
    # General Ledger
    "Account",
    "GLHeader",
    "GLLine",
    "IdempotencyKey",
    # Documents & catalog
    "Journal",
    "JournalLine",
    "Item",
    "BankAccount",
    # Audit
    "AuditLog",
]
