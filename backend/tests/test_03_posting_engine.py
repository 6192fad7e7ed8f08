"""
Tests 46-75: Posting engine

Line validation, the balance law, lock dates, account checks, source
uniqueness, and reversals, all against in-memory stores.
"""
import datetime
import uuid
from decimal import Decimal

import pytest

from ledger.context import CallerIdentity
from ledger.errors import ConflictError, NotFoundError, ValidationError
from ledger.services.posting import (
    LineDraft,
    PostingRequest,
    assert_gl_lines_valid,
    ensure_not_locked,
    is_date_locked,
)

POSTING_DATE = datetime.date(2026, 3, 15)


def identity_for(world):
    return CallerIdentity(user_id=uuid.uuid4(), org_id=world.org_id)


@pytest.fixture
def chart(world):
    return {
        "cash": world.add_account("1000", "ASSET", subtype="CASH"),
        "ar": world.add_account("1100", "ASSET", subtype="AR"),
        "vat": world.add_account("2100", "LIABILITY", subtype="VAT_PAYABLE"),
        "sales": world.add_account("4000", "INCOME", subtype="SALES"),
    }


def invoice_request(chart, source_id="INV-001", posting_date=POSTING_DATE):
    """AR 130.50 = Sales 100.00 + VAT 30.50."""
    return PostingRequest(
        source_type="INVOICE",
        source_id=source_id,
        posting_date=posting_date,
        lines=[
            LineDraft(account_id=chart["ar"].id, debit="130.50"),
            LineDraft(account_id=chart["sales"].id, credit="100.00"),
            LineDraft(account_id=chart["vat"].id, credit="30.50"),
        ],
    )


# ===================================================================
# Line validation
# ===================================================================
class TestLineValidation:

    def test_46_invoice_example_balances(self):
        """Debit 130.50 against credits 100.00 + 30.50."""
        totals = assert_gl_lines_valid([
            LineDraft(account_id=uuid.uuid4(), debit="130.50"),
            LineDraft(account_id=uuid.uuid4(), credit="100.00"),
            LineDraft(account_id=uuid.uuid4(), credit="30.50"),
        ])
        assert totals.total_debit == Decimal("130.50")
        assert totals.total_credit == Decimal("130.50")

    def test_47_empty_lines_rejected(self):
        with pytest.raises(ValidationError) as exc:
            assert_gl_lines_valid([])
        assert exc.value.message == "GL lines are required"

    def test_48_both_zero_rejected(self):
        """A line with neither side set names its 1-based position."""
        with pytest.raises(ValidationError) as exc:
            assert_gl_lines_valid([
                LineDraft(account_id=uuid.uuid4(), debit=0, credit=0),
                LineDraft(account_id=uuid.uuid4(), credit="10.00"),
            ])
        assert exc.value.message == "Line 1 must include either a debit or credit amount."
        assert exc.value.hint == "Set one side to zero."

    def test_49_both_sides_rejected(self):
        with pytest.raises(ValidationError) as exc:
            assert_gl_lines_valid([
                LineDraft(account_id=uuid.uuid4(), debit="10.00"),
                LineDraft(account_id=uuid.uuid4(), debit="5.00", credit="15.00"),
            ])
        assert exc.value.message == "Line 2 must include either a debit or credit amount."

    def test_50_explicit_line_no_used_in_message(self):
        with pytest.raises(ValidationError) as exc:
            assert_gl_lines_valid([LineDraft(account_id=uuid.uuid4(), line_no=7)])
        assert exc.value.message.startswith("Line 7 ")

    def test_51_negative_amount_rejected(self):
        with pytest.raises(ValidationError) as exc:
            assert_gl_lines_valid([
                LineDraft(account_id=uuid.uuid4(), debit="-10.00"),
                LineDraft(account_id=uuid.uuid4(), credit="10.00"),
            ])
        assert exc.value.message == "Line 1 debit cannot be negative"

    def test_52_unbalanced_rejected(self):
        with pytest.raises(ValidationError) as exc:
            assert_gl_lines_valid([
                LineDraft(account_id=uuid.uuid4(), debit="100.00"),
                LineDraft(account_id=uuid.uuid4(), credit="99.99"),
            ])
        assert exc.value.message == "GL totals must balance"

    def test_53_sub_cent_amount_counts_as_zero(self):
        """0.004 rounds to zero, so the line carries neither side."""
        with pytest.raises(ValidationError):
            assert_gl_lines_valid([
                LineDraft(account_id=uuid.uuid4(), debit="0.004"),
                LineDraft(account_id=uuid.uuid4(), credit="0.004"),
            ])


# ===================================================================
# Lock date
# ===================================================================
class TestLockDate:

    def test_54_on_lock_date_is_locked(self):
        lock = datetime.date(2026, 1, 31)
        assert is_date_locked(lock, lock)
        assert is_date_locked(lock, datetime.date(2026, 1, 1))
        assert not is_date_locked(lock, datetime.date(2026, 2, 1))
        assert not is_date_locked(None, datetime.date(2000, 1, 1))

    def test_55_violation_code_and_message(self):
        with pytest.raises(ValidationError) as exc:
            ensure_not_locked(datetime.date(2026, 1, 31), datetime.date(2026, 1, 31), "post")
        assert exc.value.code == "LOCK_DATE_VIOLATION"
        assert exc.value.message == "Cannot post a document dated on or before the lock date."

    async def test_56_engine_rejects_locked_posting(self, world, chart):
        world.set_lock_date(datetime.date(2026, 3, 31))
        with pytest.raises(ValidationError) as exc:
            await world.core.engine.post(identity_for(world), invoice_request(chart))
        assert exc.value.code == "LOCK_DATE_VIOLATION"
        assert world.ledger.headers == {}


# ===================================================================
# Posting
# ===================================================================
class TestPost:

    async def test_57_post_writes_header_and_numbered_lines(self, world, chart):
        result = await world.core.engine.post(identity_for(world), invoice_request(chart))
        body = result.response
        assert result.status_code == 201
        assert body["total_debit"] == "130.50"
        assert body["total_credit"] == "130.50"
        assert len(body["line_ids"]) == 3

        header = world.ledger.headers[uuid.UUID(body["header_id"])]
        lines = await world.ledger.get_lines(world.org_id, header.id)
        assert [l.line_no for l in lines] == [1, 2, 3]
        assert header.currency == "USD"
        assert header.total_debit == sum(l.debit for l in lines)

    async def test_58_unknown_org_is_not_found(self, world, chart):
        stranger = CallerIdentity(user_id=uuid.uuid4(), org_id=uuid.uuid4())
        with pytest.raises(NotFoundError):
            await world.core.engine.post(stranger, invoice_request(chart))

    async def test_59_unknown_account_is_not_found(self, world, chart):
        request = PostingRequest(
            source_type="JOURNAL",
            source_id="J-1",
            posting_date=POSTING_DATE,
            lines=[
                LineDraft(account_id=chart["cash"].id, debit="10.00"),
                LineDraft(account_id=uuid.uuid4(), credit="10.00"),
            ],
        )
        with pytest.raises(NotFoundError):
            await world.core.engine.post(identity_for(world), request)
        assert world.ledger.headers == {}

    async def test_60_account_from_other_org_is_not_found(self, world, chart):
        foreign = world.add_account("1000", "ASSET", org_id=uuid.uuid4())
        request = PostingRequest(
            source_type="JOURNAL",
            source_id="J-2",
            posting_date=POSTING_DATE,
            lines=[
                LineDraft(account_id=chart["cash"].id, debit="10.00"),
                LineDraft(account_id=foreign.id, credit="10.00"),
            ],
        )
        with pytest.raises(NotFoundError):
            await world.core.engine.post(identity_for(world), request)

    async def test_61_inactive_account_rejected(self, world, chart):
        closed = world.add_account("1900", "ASSET", is_active=False)
        request = PostingRequest(
            source_type="JOURNAL",
            source_id="J-3",
            posting_date=POSTING_DATE,
            lines=[
                LineDraft(account_id=closed.id, debit="10.00"),
                LineDraft(account_id=chart["cash"].id, credit="10.00"),
            ],
        )
        with pytest.raises(ValidationError) as exc:
            await world.core.engine.post(identity_for(world), request)
        assert exc.value.details == {"account_codes": ["1900"]}

    async def test_62_duplicate_source_conflicts(self, world, chart):
        ident = identity_for(world)
        await world.core.engine.post(ident, invoice_request(chart))
        with pytest.raises(ConflictError) as exc:
            await world.core.engine.post(ident, invoice_request(chart))
        assert exc.value.message == "GL header already exists for this source"
        assert exc.value.hint == "This document may already be posted."
        assert len(world.ledger.headers) == 1

    async def test_63_unbalanced_posting_writes_nothing(self, world, chart):
        request = PostingRequest(
            source_type="INVOICE",
            source_id="INV-BAD",
            posting_date=POSTING_DATE,
            lines=[
                LineDraft(account_id=chart["ar"].id, debit="100.00"),
                LineDraft(account_id=chart["sales"].id, credit="90.00"),
            ],
        )
        with pytest.raises(ValidationError):
            await world.core.engine.post(identity_for(world), request)
        assert world.ledger.headers == {}
        assert world.ledger.lines == []

    async def test_64_unknown_source_type_rejected(self, world, chart):
        request = invoice_request(chart)
        request = PostingRequest(
            source_type="RECEIPT_VOUCHER",
            source_id=request.source_id,
            posting_date=request.posting_date,
            lines=request.lines,
        )
        with pytest.raises(ValidationError):
            await world.core.engine.post(identity_for(world), request)

    async def test_65_idempotent_replay(self, world, chart):
        """Same key and payload returns the first response; nothing new is written."""
        ident = identity_for(world)
        first = await world.core.engine.post(ident, invoice_request(chart), "post-1")
        second = await world.core.engine.post(ident, invoice_request(chart), "post-1")
        assert second.replayed
        assert second.response == first.response
        assert second.status_code == 201
        assert len(world.ledger.headers) == 1

    async def test_66_engine_writes_no_audit_entries(self, world, chart):
        await world.core.engine.post(identity_for(world), invoice_request(chart))
        assert world.audit.entries == []


# ===================================================================
# Reversal
# ===================================================================
class TestReverse:

    async def test_67_reversal_swaps_sides(self, world, chart):
        ident = identity_for(world)
        posted = await world.core.engine.post(ident, invoice_request(chart))
        header_id = uuid.UUID(posted.response["header_id"])

        result = await world.core.engine.reverse(ident, header_id, reversal_date=datetime.date(2026, 4, 1))
        body = result.response
        assert body["source_id"] == f"REVERSAL:{header_id}"
        assert body["source_type"] == "INVOICE"
        assert body["reverses_header_id"] == str(header_id)
        assert body["total_debit"] == "130.50"

        original_lines = await world.ledger.get_lines(world.org_id, header_id)
        reversal_lines = await world.ledger.get_lines(world.org_id, uuid.UUID(body["header_id"]))
        for original, mirror in zip(original_lines, reversal_lines):
            assert mirror.account_id == original.account_id
            assert mirror.debit == original.credit
            assert mirror.credit == original.debit

    async def test_68_original_is_not_mutated(self, world, chart):
        ident = identity_for(world)
        posted = await world.core.engine.post(ident, invoice_request(chart))
        header_id = uuid.UUID(posted.response["header_id"])
        before = world.ledger.headers[header_id]
        await world.core.engine.reverse(ident, header_id, reversal_date=datetime.date(2026, 4, 1))
        assert world.ledger.headers[header_id] == before

    async def test_69_second_reverse_returns_existing(self, world, chart):
        ident = identity_for(world)
        posted = await world.core.engine.post(ident, invoice_request(chart))
        header_id = uuid.UUID(posted.response["header_id"])
        first = await world.core.engine.reverse(ident, header_id, reversal_date=datetime.date(2026, 4, 1))
        second = await world.core.engine.reverse(ident, header_id, reversal_date=datetime.date(2026, 4, 2))
        assert second.response["header_id"] == first.response["header_id"]
        assert len(world.ledger.headers) == 2

    async def test_70_reversal_cannot_be_reversed(self, world, chart):
        ident = identity_for(world)
        posted = await world.core.engine.post(ident, invoice_request(chart))
        reversal = await world.core.engine.reverse(
            ident, uuid.UUID(posted.response["header_id"]), reversal_date=datetime.date(2026, 4, 1)
        )
        with pytest.raises(ConflictError):
            await world.core.engine.reverse(ident, uuid.UUID(reversal.response["header_id"]))

    async def test_71_reverse_missing_header_not_found(self, world):
        with pytest.raises(NotFoundError):
            await world.core.engine.reverse(identity_for(world), uuid.uuid4())

    async def test_72_reversal_respects_lock_date(self, world, chart):
        ident = identity_for(world)
        posted = await world.core.engine.post(ident, invoice_request(chart))
        world.set_lock_date(datetime.date(2026, 3, 31))
        with pytest.raises(ValidationError) as exc:
            await world.core.engine.reverse(
                ident, uuid.UUID(posted.response["header_id"]), reversal_date=datetime.date(2026, 3, 20)
            )
        assert exc.value.code == "LOCK_DATE_VIOLATION"

    async def test_73_get_posting(self, world, chart):
        ident = identity_for(world)
        posted = await world.core.engine.post(ident, invoice_request(chart))
        result = await world.core.engine.get_posting(world.org_id, uuid.UUID(posted.response["header_id"]))
        assert [line["debit"] for line in result.to_dict()["lines"]] == ["130.50", "0.00", "0.00"]

    async def test_74_get_posting_other_org_not_found(self, world, chart):
        posted = await world.core.engine.post(identity_for(world), invoice_request(chart))
        with pytest.raises(NotFoundError):
            await world.core.engine.get_posting(uuid.uuid4(), uuid.UUID(posted.response["header_id"]))

    async def test_75_currency_and_rate_stored(self, world, chart):
        request = invoice_request(chart)
        request = PostingRequest(
            source_type=request.source_type,
            source_id="INV-EUR",
            posting_date=request.posting_date,
            lines=request.lines,
            currency="eur",
            exchange_rate=Decimal("1.085"),
        )
        result = await world.core.engine.post(identity_for(world), request)
        assert result.response["currency"] == "EUR"
        assert Decimal(result.response["exchange_rate"]) == Decimal("1.085")
