"""Authorization gate.

Every operation is checked against the live membership, never against the
token alone: a role change or a removed membership takes effect on the next
request even if the caller still holds an old token.
"""
from __future__ import annotations

from collections.abc import Iterable

from ledger.context import CallerIdentity
from ledger.errors import AuthorizationError
from ledger.rbac import BOOTSTRAP_OPERATIONS, required_permissions
from ledger.stores.base import MembershipStore


class AuthorizationGate:
    def __init__(self, memberships: MembershipStore) -> None:
        self.memberships = memberships

    async def authorize(self, identity: CallerIdentity, operation: str) -> None:
        """Allow or deny *operation* for *identity*.

        Creating the first organization and reading the current one are
        allowed to a caller that has no organization and no role yet.
        """
        try:
            required = required_permissions(operation)
        except KeyError:
            raise AuthorizationError(
                f"Unknown operation {operation!r}", code="UNKNOWN_OPERATION"
            ) from None

        if operation in BOOTSTRAP_OPERATIONS and not identity.has_org_context:
            return
        await self.check(identity, required)

    async def check(self, identity: CallerIdentity, required: Iterable[str]) -> None:
        needed = set(required)
        if not needed:
            return
        if identity.org_id is None or identity.role_id is None or identity.membership_id is None:
            raise AuthorizationError(
                "Missing membership context",
                hint="Sign in to an organization first.",
            )

        membership = await self.memberships.get_membership(identity.membership_id)
        if (
            membership is None
            or not membership.is_active
            or membership.deleted_at is not None
            or membership.user_id != identity.user_id
            or membership.org_id != identity.org_id
            or membership.role_id != identity.role_id
        ):
            raise AuthorizationError(
                "Membership is inactive or invalid",
                code="INVALID_MEMBERSHIP",
                hint="Sign in again.",
            )

        granted = await self.memberships.get_role_permissions(membership.role_id)
        missing = sorted(needed - granted)
        if missing:
            raise AuthorizationError(
                "Insufficient permissions",
                details={"missing": missing},
            )
