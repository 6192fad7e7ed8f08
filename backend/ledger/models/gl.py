"""General Ledger models: chart of accounts, GL headers, and GL lines."""
from __future__ import annotations

import datetime
import decimal
import enum
import uuid

from sqlalchemy import (
    DDL,
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    event,
    false,
    func,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledger.database import Base
from ledger.models.base import CreatedAtMixin, UUIDPrimaryKeyMixin


class AccountType(str, enum.Enum):
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class AccountSubtype(str, enum.Enum):
    BANK = "BANK"
    CASH = "CASH"
    AR = "AR"
    AP = "AP"
    VAT_RECEIVABLE = "VAT_RECEIVABLE"
    VAT_PAYABLE = "VAT_PAYABLE"
    SALES = "SALES"
    EXPENSE = "EXPENSE"
    EQUITY = "EQUITY"
    CUSTOMER_ADVANCES = "CUSTOMER_ADVANCES"
    VENDOR_PREPAYMENTS = "VENDOR_PREPAYMENTS"


class NormalBalance(str, enum.Enum):
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


class GLSourceType(str, enum.Enum):
    INVOICE = "INVOICE"
    BILL = "BILL"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    VENDOR_PAYMENT = "VENDOR_PAYMENT"
    JOURNAL = "JOURNAL"
    PDC = "PDC"
    CREDIT_NOTE = "CREDIT_NOTE"
    DEBIT_NOTE = "DEBIT_NOTE"
    EXPENSE = "EXPENSE"
    OPENING_BALANCE = "OPENING_BALANCE"


class Account(UUIDPrimaryKeyMixin, CreatedAtMixin, Base):
    """Chart of Accounts entry, unique by code within its organization."""
    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("org_id", "code"),
        Index("ix_accounts_org_parent", "org_id", "parent_account_id"),
    )

    org_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("organizations.id"), nullable=False
    )
    code: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    subtype: Mapped[str | None] = mapped_column(String(30))
    normal_balance: Mapped[str] = mapped_column(String(10), nullable=False)
    parent_account_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("accounts.id")
    )
    is_system: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=false(), default=False
    )
    is_reconcilable: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=false(), default=False
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=true(), default=True
    )
    tax_code_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True))
    description: Mapped[str | None] = mapped_column(Text)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Account {self.code!r} {self.name!r}>"


class GLHeader(UUIDPrimaryKeyMixin, CreatedAtMixin, Base):
    """One balanced posting produced by a source document.

    Immutable once written.  A reversal is a new header pointing back
    through ``reverses_header_id``.
    """
    __tablename__ = "gl_headers"
    __table_args__ = (
        UniqueConstraint("org_id", "source_type", "source_id"),
        Index("ix_gl_headers_org_posting_date", "org_id", "posting_date"),
    )

    org_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("organizations.id"), nullable=False
    )
    source_type: Mapped[str] = mapped_column(String(30), nullable=False)
    source_id: Mapped[str] = mapped_column(String(100), nullable=False)
    posting_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    exchange_rate: Mapped[decimal.Decimal] = mapped_column(
        Numeric(18, 6), nullable=False, default=decimal.Decimal("1")
    )
    total_debit: Mapped[decimal.Decimal] = mapped_column(
        Numeric(18, 2), nullable=False
    )
    total_credit: Mapped[decimal.Decimal] = mapped_column(
        Numeric(18, 2), nullable=False
    )
    memo: Mapped[str | None] = mapped_column(Text)
    reverses_header_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("gl_headers.id"), unique=True
    )
    created_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id")
    )

    def __repr__(self) -> str:
        return (
            f"<GLHeader {self.source_type}:{self.source_id} "
            f"debit={self.total_debit} credit={self.total_credit}>"
        )


class GLLine(UUIDPrimaryKeyMixin, CreatedAtMixin, Base):
    """Individual debit or credit line within a GL header."""
    __tablename__ = "gl_lines"
    __table_args__ = (
        UniqueConstraint("header_id", "line_no"),
        Index("ix_gl_lines_org_account", "org_id", "account_id"),
    )

    org_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("organizations.id"), nullable=False
    )
    header_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("gl_headers.id"), nullable=False
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
            f"<GLLine #{self.line_no} "
            f"debit={self.debit} credit={self.credit}>"
        )


# ---------------------------------------------------------------------------
# PostgreSQL backstop: header totals must match lines at commit time.
# Deferred so header + lines can be inserted in any order inside one
# transaction.
# ---------------------------------------------------------------------------

_GL_BALANCE_FUNCTION = DDL("""
CREATE OR REPLACE FUNCTION enforce_gl_header_balance() RETURNS trigger AS $$
DECLARE
  v_header_id uuid;
  v_total_debit numeric;
  v_total_credit numeric;
  v_line_debit numeric;
  v_line_credit numeric;
BEGIN
  IF TG_TABLE_NAME = 'gl_lines' THEN
    IF TG_OP = 'DELETE' THEN
      RETURN NULL;
    END IF;
    v_header_id := NEW.header_id;
  ELSE
    v_header_id := NEW.id;
  END IF;

  SELECT h.total_debit, h.total_credit
    INTO v_total_debit, v_total_credit
    FROM gl_headers h
   WHERE h.id = v_header_id;

  IF NOT FOUND THEN
    RETURN NULL;
  END IF;

  SELECT COALESCE(SUM(l.debit), 0), COALESCE(SUM(l.credit), 0)
    INTO v_line_debit, v_line_credit
    FROM gl_lines l
   WHERE l.header_id = v_header_id;

  IF v_line_debit <> v_total_debit
     OR v_line_credit <> v_total_credit
     OR v_total_debit <> v_total_credit
  THEN
    RAISE EXCEPTION 'GL integrity violation for header %: header totals (%,%) lines (%,%)',
      v_header_id, v_total_debit, v_total_credit, v_line_debit, v_line_credit
      USING ERRCODE = '23514';
  END IF;

  RETURN NULL;
END;
$$ LANGUAGE plpgsql;
""")

_GL_LINE_TRIGGER = DDL("""
CREATE CONSTRAINT TRIGGER gl_integrity_on_gl_lines
AFTER INSERT OR UPDATE OR DELETE ON gl_lines
DEFERRABLE INITIALLY DEFERRED
FOR EACH ROW EXECUTE FUNCTION enforce_gl_header_balance();
""")

_GL_HEADER_TRIGGER = DDL("""
CREATE CONSTRAINT TRIGGER gl_integrity_on_gl_headers
AFTER INSERT OR UPDATE OF total_debit, total_credit ON gl_headers
DEFERRABLE INITIALLY DEFERRED
FOR EACH ROW EXECUTE FUNCTION enforce_gl_header_balance();
""")

event.listen(
    GLLine.__table__,
    "after_create",
    _GL_BALANCE_FUNCTION.execute_if(dialect="postgresql"),
)
event.listen(
    GLLine.__table__,
    "after_create",
    _GL_LINE_TRIGGER.execute_if(dialect="postgresql"),
)
event.listen(
    GLLine.__table__,
    "after_create",
    _GL_HEADER_TRIGGER.execute_if(dialect="postgresql"),
)
