"""Users, per-organization roles, and memberships."""
from __future__ import annotations

import datetime
import uuid

from sqlalchemy import Boolean, ForeignKey, String, UniqueConstraint, Uuid, false, true
from sqlalchemy.orm import Mapped, mapped_column

from ledger.database import Base
from ledger.models.base import CreatedAtMixin, UUIDPrimaryKeyMixin


class User(UUIDPrimaryKeyMixin, CreatedAtMixin, Base):
    """A login identity.  Credentials live with the external auth service."""
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=true(), default=True
    )

    def __repr__(self) -> str:
        return f"<User {self.email!r}>"


class Role(UUIDPrimaryKeyMixin, CreatedAtMixin, Base):
    """A named bundle of permission codes, owned by one organization."""
    __tablename__ = "roles"
    __table_args__ = (UniqueConstraint("org_id", "name"),)

    org_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("organizations.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_system: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=false(), default=False
    )

    def __repr__(self) -> str:
        return f"<Role {self.name!r} org={self.org_id}>"


class RolePermission(UUIDPrimaryKeyMixin, Base):
    """A single permission code granted to a role."""
    __tablename__ = "role_permissions"
    __table_args__ = (UniqueConstraint("role_id", "permission_code"),)

    role_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("roles.id", ondelete="CASCADE"),
        nullable=False,
    )
    permission_code: Mapped[str] = mapped_column(String(100), nullable=False)

    def __repr__(self) -> str:
        return f"<RolePermission {self.permission_code!r} role={self.role_id}>"


class Membership(UUIDPrimaryKeyMixin, CreatedAtMixin, Base):
    """Binding of a user to an organization with a role.

    Revocable independently of the user's login session: the authorization
    gate re-reads this row on every guarded mutation.
    """
    __tablename__ = "memberships"
    __table_args__ = (UniqueConstraint("org_id", "user_id"),)

    org_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("organizations.id"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    role_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("roles.id"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=true(), default=True
    )
    deleted_at: Mapped[datetime.datetime | None] = mapped_column()

    def __repr__(self) -> str:
        return f"<Membership user={self.user_id} org={self.org_id} active={self.is_active}>"
