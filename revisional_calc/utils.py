"""Utility functions for the restitution calculator.

This module provides helpers for parsing user input into Python data types and
for handling dates, including adding months to a due date, generating the
monthly due-date sequence of a schedule and converting between monthly and
annual effective rates.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext
import calendar
from typing import Any, Tuple

getcontext().prec = 28  # increase decimal precision to avoid rounding errors

CENT = Decimal("0.01")
ONE = Decimal("1")
ZERO = Decimal("0")


def parse_date(value: Any) -> date:
    """Parse a ``YYYY-MM-DD`` string into a ``date`` object.

    ``date`` instances are returned unchanged so callers can pass either.

    Raises
    ------
    ValueError
        If the value is not a valid calendar date.
    """
    if isinstance(value, date):
        return value
    try:
        parts = str(value).strip().split("-")
        if len(parts) != 3:
            raise ValueError
        year, month, day = (int(p) for p in parts)
        return date(year, month, day)
    except Exception as exc:
        raise ValueError(f"Invalid date string: {value}") from exc


def add_months(dt: date, months: int) -> date:
    """Return a new date a number of months after ``dt``.

    The day of the month is clamped to the last valid day if needed (e.g.,
    adding one month to Jan 31 yields Feb 28 or 29).
    """
    year = dt.year + (dt.month - 1 + months) // 12
    month = (dt.month - 1 + months) % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def due_date(first_due: date, installment: int) -> date:
    """Due date of ``installment`` (1-based) for a schedule starting at ``first_due``."""
    return add_months(first_due, installment - 1)


def term_end(first_due: date, installments: int) -> date:
    """Last day of the half-open term ``[first_due, first_due + n months)``."""
    return add_months(first_due, installments) - timedelta(days=1)


def month_key(dt: date) -> Tuple[int, int]:
    return dt.year, dt.month


def decimal_from_str(value: Any) -> Decimal:
    """Convert a numeric string (or number) into a ``Decimal``.

    Handles the formats found in Brazilian contracts as well as plain
    decimals: ``"302.400,50"``, ``"62,54"``, ``"R$ 1.000,00"``,
    ``"302,400.50"`` and ``"0.005654145387"``. Floats are converted through
    their ``repr`` so ``0.1`` becomes ``Decimal("0.1")``. It raises
    ``ValueError`` if conversion fails.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid numeric value: {value}")
    if isinstance(value, (int, float)):
        return Decimal(repr(value)) if isinstance(value, float) else Decimal(value)
    try:
        cleaned = str(value).strip().replace("R$", "").replace(" ", "")
        if "," in cleaned:
            if "." in cleaned and cleaned.rfind(".") > cleaned.rfind(","):
                # US style thousands separator
                cleaned = cleaned.replace(",", "")
            else:
                cleaned = cleaned.replace(".", "").replace(",", ".")
        result = Decimal(cleaned)
        if not result.is_finite():
            raise ValueError
        return result
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid numeric value: {value}") from exc


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def monthly_to_annual(monthly_rate: Decimal) -> Decimal:
    """Effective annual rate for a monthly rate: ``(1 + i_m)^12 - 1``."""
    return (ONE + monthly_rate) ** 12 - ONE


def annual_to_monthly(annual_rate: Decimal) -> Decimal:
    """Effective monthly rate for an annual rate: ``(1 + i_a)^(1/12) - 1``.

    A contractual 7 % a.a. gives ``0.005654145387...`` a.m., which is why
    rates are carried with the full decimal context rather than rounded.
    """
    if annual_rate <= -1:
        raise ValueError(f"Annual rate must be greater than -100%: {annual_rate}")
    return (ONE + annual_rate) ** (ONE / Decimal(12)) - ONE
