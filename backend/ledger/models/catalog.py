"""Catalog records that link to GL accounts (items and bank accounts).

They matter to the core only because their account links make an account
"in use".
"""
from __future__ import annotations

import uuid

from sqlalchemy import Boolean, ForeignKey, String, Uuid, true
from sqlalchemy.orm import Mapped, mapped_column

from ledger.database import Base
from ledger.models.base import CreatedAtMixin, UUIDPrimaryKeyMixin


class Item(UUIDPrimaryKeyMixin, CreatedAtMixin, Base):
    __tablename__ = "items"

    org_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("organizations.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    income_account_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("accounts.id")
    )
    expense_account_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("accounts.id")
    )
    inventory_account_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("accounts.id")
    )

    def __repr__(self) -> str:
        return f"<Item {self.name!r}>"


class BankAccount(UUIDPrimaryKeyMixin, CreatedAtMixin, Base):
    __tablename__ = "bank_accounts"

    org_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("organizations.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    gl_account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("accounts.id"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=true(), default=True
    )

    def __repr__(self) -> str:
        return f"<BankAccount {self.name!r}>"
