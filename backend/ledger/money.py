"""Fixed-precision money arithmetic.

All amounts are ``Decimal`` values rounded to two places with
``ROUND_HALF_UP`` (halves round away from zero).  Totals are always compared
after rounding.
"""
from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from ledger.errors import ValidationError

MoneyValue = Decimal | int | float | str

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def dec(value: MoneyValue | None = 0) -> Decimal:
    """Coerce *value* to ``Decimal``; floats go through ``str`` to avoid binary drift."""
    if value is None:
        return Decimal(0)
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        value = str(value)
    try:
        result = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(
            "Amount is not a valid number", details={"value": str(value)}
        ) from None
    if not result.is_finite():
        raise ValidationError("Amount must be finite", details={"value": str(value)})
    return result


def round2(value: MoneyValue | None) -> Decimal:
    rounded = dec(value).quantize(CENT, rounding=ROUND_HALF_UP)
    # no "-0.00"
    return ZERO if rounded.is_zero() else rounded


def add(a: MoneyValue, b: MoneyValue) -> Decimal:
    return dec(a) + dec(b)


def sub(a: MoneyValue, b: MoneyValue) -> Decimal:
    return dec(a) - dec(b)


def sum_money(values: Iterable[MoneyValue | None]) -> Decimal:
    """Rounded sum of *values*."""
    total = Decimal(0)
    for value in values:
        total += dec(value)
    return round2(total)


def to_string2(value: MoneyValue | None) -> str:
    return f"{round2(value):.2f}"


def eq(a: MoneyValue, b: MoneyValue) -> bool:
    return round2(a) == round2(b)


def gt(a: MoneyValue, b: MoneyValue) -> bool:
    return round2(a) > round2(b)


def gte(a: MoneyValue, b: MoneyValue) -> bool:
    return round2(a) >= round2(b)


def lt(a: MoneyValue, b: MoneyValue) -> bool:
    return round2(a) < round2(b)


def lte(a: MoneyValue, b: MoneyValue) -> bool:
    return round2(a) <= round2(b)


def is_zero(value: MoneyValue | None) -> bool:
    return round2(value) == ZERO


def assert_non_negative(value: MoneyValue | None, field_name: str) -> Decimal:
    """Return the rounded value, or raise if it rounds below zero."""
    rounded = round2(value)
    if rounded < ZERO:
        raise ValidationError(
            f"{field_name} cannot be negative",
            hint="Use zero or a positive amount.",
            details={"value": to_string2(rounded)},
        )
    return rounded


def assert_money_eq(
    debit_total: MoneyValue, credit_total: MoneyValue, context: str = "Totals"
) -> None:
    debit = round2(debit_total)
    credit = round2(credit_total)
    if debit != credit:
        raise ValidationError(
            f"{context} must balance",
            hint="Check debit and credit totals.",
            details={"debit": to_string2(debit), "credit": to_string2(credit)},
        )
