from datetime import date
from decimal import Decimal

import pytest

from revisional_calc.utils import (
    add_months,
    annual_to_monthly,
    decimal_from_str,
    due_date,
    monthly_to_annual,
    parse_date,
    quantize_money,
    term_end,
)


def test_add_months_clamps_to_month_end():
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)
    assert add_months(date(2018, 6, 21), 12) == date(2019, 6, 21)


def test_due_dates_are_monthly_from_first_due():
    assert due_date(date(2018, 6, 21), 1) == date(2018, 6, 21)
    assert due_date(date(2024, 11, 10), 3) == date(2025, 1, 10)


def test_term_end_is_last_day_before_n_months():
    assert term_end(date(2018, 6, 21), 360) == date(2048, 6, 20)
    assert term_end(date(2024, 1, 10), 12) == date(2025, 1, 9)


def test_parse_date():
    assert parse_date("2018-06-21") == date(2018, 6, 21)
    assert parse_date(date(2020, 1, 1)) == date(2020, 1, 1)
    with pytest.raises(ValueError):
        parse_date("2018-02-30")
    with pytest.raises(ValueError):
        parse_date("21/06/2018")


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("302.400,50", Decimal("302400.50")),
        ("62,54", Decimal("62.54")),
        ("R$ 1.000,00", Decimal("1000.00")),
        ("302,400.50", Decimal("302400.50")),
        ("0.005654145387", Decimal("0.005654145387")),
        (0.1, Decimal("0.1")),
        (840, Decimal("840")),
    ],
)
def test_decimal_from_str(raw, expected):
    assert decimal_from_str(raw) == expected


@pytest.mark.parametrize("raw", ["abc", "", "NaN", "Infinity", True])
def test_decimal_from_str_rejects_garbage(raw):
    with pytest.raises(ValueError):
        decimal_from_str(raw)


def test_quantize_money_rounds_half_up():
    assert quantize_money(Decimal("2715.005")) == Decimal("2715.01")
    assert quantize_money(Decimal("1709.8135")) == Decimal("1709.81")


def test_rate_conversions():
    assert annual_to_monthly(Decimal("0.07")).quantize(Decimal("0.000000001")) == Decimal("0.005654145")
    assert monthly_to_annual(Decimal("0.01")).quantize(Decimal("0.000001")) == Decimal("0.126825")
    with pytest.raises(ValueError):
        annual_to_monthly(Decimal("-1"))


def test_seven_percent_a_year_as_a_monthly_rate():
    monthly = annual_to_monthly(Decimal("0.07"))
    assert monthly.quantize(Decimal("1e-12")) == Decimal("0.005654145387")
    assert monthly_to_annual(monthly).quantize(Decimal("1e-12")) == Decimal("0.070000000000")
    assert monthly_to_annual(Decimal("0.005654145387")).quantize(Decimal("1e-11")) == Decimal("0.06999999999")
