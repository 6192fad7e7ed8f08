"""
Tests 1-15 and 156: Money arithmetic

Two-decimal rounding, half-away-from-zero behaviour, comparison after
rounding, and the non-negative / balance assertions.
"""
from decimal import Decimal

import pytest

from ledger.errors import ValidationError
from ledger.money import (
    add,
    assert_money_eq,
    assert_non_negative,
    dec,
    eq,
    gt,
    gte,
    is_zero,
    lt,
    lte,
    round2,
    sub,
    sum_money,
    to_string2,
)


class TestRounding:

    def test_01_round_half_up(self):
        """Halves round away from zero."""
        assert round2("1.005") == Decimal("1.01")
        assert round2("2.675") == Decimal("2.68")
        assert round2("-1.005") == Decimal("-1.01")

    def test_02_round_keeps_two_places(self):
        """Integers and short decimals gain trailing zeros."""
        assert str(round2(5)) == "5.00"
        assert str(round2("0.1")) == "0.10"

    def test_03_floats_go_through_str(self):
        """0.1 + 0.2 is exactly 0.30, not a binary approximation."""
        assert dec(0.1) == Decimal("0.1")
        assert round2(add(0.1, 0.2)) == Decimal("0.30")

    def test_04_to_string2(self):
        """String form always has exactly two fractional digits."""
        assert to_string2("130.5") == "130.50"
        assert to_string2(0) == "0.00"
        assert to_string2(None) == "0.00"
        assert to_string2("99.999") == "100.00"

    def test_05_sum_money_is_rounded(self):
        """The sum of 100.00 + 30.50 is 130.50."""
        assert sum_money(["100.00", "30.50"]) == Decimal("130.50")
        assert to_string2(sum_money(["100.00", "30.50"])) == "130.50"
        assert sum_money([]) == Decimal("0.00")
        assert sum_money(["0.333", "0.333", "0.333"]) == Decimal("1.00")

    def test_06_add_and_sub(self):
        assert add("1.10", "2.20") == Decimal("3.30")
        assert sub("5", "0.01") == Decimal("4.99")


class TestComparison:

    def test_07_eq_compares_rounded_values(self):
        """Values that round to the same cent are equal."""
        assert eq("10.004", "10.00")
        assert not eq("10.005", "10.00")

    def test_08_ordering(self):
        assert gt("0.01", 0)
        assert not gt("0.004", 0)
        assert gte("1.00", "1")
        assert lt("0.99", 1)
        assert lte("1.004", "1.00")

    def test_09_is_zero(self):
        assert is_zero(0)
        assert is_zero("0.004")
        assert is_zero(None)
        assert not is_zero("0.005")


class TestAssertions:

    def test_10_non_negative_returns_rounded_value(self):
        assert assert_non_negative("12.345", "Amount") == Decimal("12.35")
        assert assert_non_negative(0, "Amount") == Decimal("0.00")

    def test_11_negative_rejected(self):
        """Negative amounts fail with the field name in the message."""
        with pytest.raises(ValidationError) as exc:
            assert_non_negative("-0.01", "Line 2 debit")
        assert exc.value.message == "Line 2 debit cannot be negative"
        assert exc.value.code == "VALIDATION_ERROR"

    def test_12_tiny_negative_rounds_to_zero(self):
        """-0.004 rounds to zero and is accepted."""
        assert is_zero(assert_non_negative("-0.004", "Amount"))

    def test_13_balanced_totals_pass(self):
        assert_money_eq("130.50", "130.5", "GL totals")

    def test_14_unbalanced_totals_fail(self):
        """Unequal totals report both rounded sides."""
        with pytest.raises(ValidationError) as exc:
            assert_money_eq("100.00", "99.99", "GL totals")
        assert exc.value.message == "GL totals must balance"
        assert exc.value.details == {"debit": "100.00", "credit": "99.99"}

    def test_15_rounding_differences_below_a_cent_balance(self):
        """Totals that differ only past the second decimal are balanced."""
        assert_money_eq("10.001", "10.004")

    @pytest.mark.parametrize("value", ["abc", "", "12,50", "NaN", float("inf")])
    def test_156_non_numeric_amount_is_validation_error(self, value):
        """Garbage amounts are reported as validation errors, not decimal exceptions."""
        with pytest.raises(ValidationError):
            round2(value)
