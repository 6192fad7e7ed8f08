"""Explicit caller context passed into every core call."""
from __future__ import annotations

import dataclasses
import uuid

from ledger.errors import NotFoundError


@dataclasses.dataclass(frozen=True)
class CallerIdentity:
    """A resolved caller: who they are and which membership they act through.

    ``org_id``/``role_id``/``membership_id`` are claims from the bearer token;
    the authorization gate re-checks them against the live membership.
    """

    user_id: uuid.UUID
    org_id: uuid.UUID | None = None
    role_id: uuid.UUID | None = None
    membership_id: uuid.UUID | None = None

    @property
    def has_org_context(self) -> bool:
        return self.org_id is not None or self.role_id is not None

    def require_org(self) -> uuid.UUID:
        if self.org_id is None:
            raise NotFoundError("Organization not found", hint="Select an organization first.")
        return self.org_id
