"""Manual journal documents (a consumer of the posting engine)."""
from __future__ import annotations

import datetime
import decimal
import enum
import uuid

from sqlalchemy import (
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledger.database import Base
from ledger.models.base import CreatedAtMixin, UUIDPrimaryKeyMixin


class JournalStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    POSTED = "POSTED"
    VOID = "VOID"


class Journal(UUIDPrimaryKeyMixin, CreatedAtMixin, Base):
    """A manual journal entry, drafted then posted to the GL."""
    __tablename__ = "journals"

    org_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("organizations.id"), nullable=False
    )
    journal_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    memo: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=JournalStatus.DRAFT.value
    )
    gl_header_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("gl_headers.id")
    )
    reversal_header_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("gl_headers.id")
    )
    created_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id")
    )

    def __repr__(self) -> str:
        return f"<Journal {self.id} status={self.status!r}>"


class JournalLine(UUIDPrimaryKeyMixin, Base):
    """Draft debit or credit line of a manual journal."""
    __tablename__ = "journal_lines"
    __table_args__ = (UniqueConstraint("journal_id", "line_no"),)

    org_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("organizations.id"), nullable=False
    )
    journal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("journals.id", ondelete="CASCADE"),
        nullable=False,
    )
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("accounts.id"), nullable=False
    )
    debit: Mapped[decimal.Decimal] = mapped_column(
        Numeric(18, 2), nullable=False, default=decimal.Decimal("0")
    )
    credit: Mapped[decimal.Decimal] = mapped_column(
        Numeric(18, 2), nullable=False, default=decimal.Decimal("0")
    )
    description: Mapped[str | None] = mapped_column(Text)
    customer_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True))
    vendor_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True))

    def __repr__(self) -> str:
        return (
            f"<JournalLine #{self.line_no} "
            f"debit={self.debit} credit={self.credit}>"
        )
