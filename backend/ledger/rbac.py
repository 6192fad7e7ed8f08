"""
RBAC Permission Registry

Defines the permission codes, the default roles seeded into every new
organization, and the operation → required-permission table consulted by
the authorization gate.  Operations are looked up here explicitly; handlers
do not carry permission metadata of their own.

Permission string format: {module}.{resource}.{action}
"""
from __future__ import annotations

# ---------------------------------------------------------------------------
# All permission strings used across the system
# ---------------------------------------------------------------------------

ALL_PERMISSIONS: list[str] = sorted([
    # Organization
    "org.settings.view",
    "org.settings.update",
    # Chart of accounts
    "gl.accounts.view",
    "gl.accounts.create",
    "gl.accounts.update",
    # GL postings
    "gl.postings.view",
    "gl.postings.create",
    "gl.postings.reverse",
    "gl.integrity.view",
    # Manual journals
    "gl.journals.view",
    "gl.journals.create",
    "gl.journals.post",
    "gl.journals.void",
])


# ---------------------------------------------------------------------------
# Default roles seeded per organization (role name → permissions)
# ---------------------------------------------------------------------------

DEFAULT_ROLE_PERMISSIONS: dict[str, set[str]] = {
    # ── Owner ────────────────────────────────────────────────────────────
    # Full access to everything in the organization.
    "owner": set(ALL_PERMISSIONS),

    # ── Accountant ───────────────────────────────────────────────────────
    # Maintains the chart of accounts and posts to the ledger.
    # Cannot change organization settings.
    "accountant": {
        "org.settings.view",
        "gl.accounts.view", "gl.accounts.create", "gl.accounts.update",
        "gl.postings.view", "gl.postings.create", "gl.postings.reverse",
        "gl.integrity.view",
        "gl.journals.view", "gl.journals.create",
        "gl.journals.post", "gl.journals.void",
    },

    # ── Viewer ───────────────────────────────────────────────────────────
    # Read-only.
    "viewer": {
        "org.settings.view",
        "gl.accounts.view",
        "gl.postings.view",
        "gl.journals.view",
    },
}

OWNER_ROLE = "owner"


# ---------------------------------------------------------------------------
# Operation → required permissions (all-or-nothing)
# ---------------------------------------------------------------------------

OPERATION_PERMISSIONS: dict[str, frozenset[str]] = {
    "orgs.create": frozenset({"org.settings.update"}),
    "orgs.read_current": frozenset({"org.settings.view"}),
    "orgs.update_settings": frozenset({"org.settings.update"}),
    "accounts.list": frozenset({"gl.accounts.view"}),
    "accounts.read": frozenset({"gl.accounts.view"}),
    "accounts.create": frozenset({"gl.accounts.create"}),
    "accounts.update": frozenset({"gl.accounts.update"}),
    "postings.read": frozenset({"gl.postings.view"}),
    "postings.create": frozenset({"gl.postings.create"}),
    "postings.reverse": frozenset({"gl.postings.view", "gl.postings.reverse"}),
    "ledger.integrity": frozenset({"gl.integrity.view"}),
    "journals.read": frozenset({"gl.journals.view"}),
    "journals.create": frozenset({"gl.journals.create"}),
    "journals.post": frozenset({"gl.journals.view", "gl.journals.post"}),
    "journals.void": frozenset({"gl.journals.view", "gl.journals.void"}),
}

# Operations a caller may perform before any organization or role is bound
BOOTSTRAP_OPERATIONS: frozenset[str] = frozenset({"orgs.create", "orgs.read_current"})


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def required_permissions(operation: str) -> frozenset[str]:
    """Return the permission set an operation requires.

    Raises ``KeyError`` for an unregistered operation so a missing table
    entry fails loudly instead of silently allowing access.
    """
    return OPERATION_PERMISSIONS[operation]
