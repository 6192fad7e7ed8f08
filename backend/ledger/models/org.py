"""Organization (tenant) models."""
from __future__ import annotations

import datetime
import uuid

from sqlalchemy import Date, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ledger.database import Base
from ledger.models.base import CreatedAtMixin, UUIDPrimaryKeyMixin


class Organization(UUIDPrimaryKeyMixin, CreatedAtMixin, Base):
    """A tenant.  Every ledger record is owned by exactly one organization."""
    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    base_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    created_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id")
    )

    def __repr__(self) -> str:
        return f"<Organization {self.name!r}>"


class OrgSettings(UUIDPrimaryKeyMixin, Base):
    """Per-organization posting policy and default-account links."""
    __tablename__ = "org_settings"

    org_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("organizations.id"),
        unique=True,
        nullable=False,
    )
    lock_date: Mapped[datetime.date | None] = mapped_column(Date)
    default_ar_account_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("accounts.id")
    )
    default_ap_account_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("accounts.id")
    )
    default_vat_receivable_account_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("accounts.id")
    )
    default_vat_payable_account_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("accounts.id")
    )
    default_sales_account_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("accounts.id")
    )
    default_expense_account_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("accounts.id")
    )

    def __repr__(self) -> str:
        return f"<OrgSettings org={self.org_id} lock_date={self.lock_date}>"


# Columns on OrgSettings that point at an account; all count as "in use"
DEFAULT_ACCOUNT_COLUMNS: tuple[str, ...] = (
    "default_ar_account_id",
    "default_ap_account_id",
    "default_vat_receivable_account_id",
    "default_vat_payable_account_id",
    "default_sales_account_id",
    "default_expense_account_id",
)
