"""Output helpers for the restitution calculator.

This module renders amounts the way the reports show them (Brazilian
currency and percentage notation) and prints schedules, comparisons and
summaries in a tabular text format using only built-in printing and string
formatting.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable

from .data_models import ComparativeLine, Comparison, Compensation, InstallmentLine, Scenario
from .utils import quantize_money

_BR_SEPARATORS = str.maketrans({",": ".", ".": ","})


def format_currency(value: Decimal, include_symbol: bool = True) -> str:
    """Format ``value`` as Brazilian currency, e.g. ``"R$ 302.400,00"``."""
    amount = quantize_money(Decimal(value))
    body = f"{abs(amount):,.2f}".translate(_BR_SEPARATORS)
    sign = "-" if amount < 0 else ""
    return f"{sign}R$ {body}" if include_symbol else f"{sign}{body}"


def format_percent(value: Decimal, places: int = 4) -> str:
    """Format a fraction as a percentage: ``0.005654145387`` -> ``"0,5654%"``."""
    exponent = Decimal(1).scaleb(-places)
    percent = (Decimal(value) * 100).quantize(exponent, rounding=ROUND_HALF_UP)
    return f"{percent:,.{places}f}".translate(_BR_SEPARATORS) + "%"


def format_pp(value: Decimal, places: int = 4) -> str:
    """Format a spread already expressed in percentage points."""
    exponent = Decimal(1).scaleb(-places)
    points = Decimal(value).quantize(exponent, rounding=ROUND_HALF_UP)
    return f"{points:,.{places}f}".translate(_BR_SEPARATORS) + " p.p."


def print_summary(summary: Dict[str, Any]) -> None:
    """Print a quick-analysis summary in a human-readable format."""
    formatted = summary["formatted"]
    print("Summary")
    print("-" * 72)
    print(f"Contract rate (a.m.)   : {formatted['contractRateMonthly']}")
    print(f"Contract rate (a.a.)   : {formatted['contractRateAnnual']}")
    print(f"Market rate (a.m.)     : {formatted['marketRateMonthly']}")
    print(f"Market rate (a.a.)     : {formatted['marketRateAnnual']}")
    print(f"Rate spread            : {formatted['rateSpreadPercentagePoints']}")
    print(f"Horizon (months)       : {summary['horizonMonths']}")
    print(f"Total paid (charged)   : {formatted['totalPaidCharged']}")
    print(f"Total due (market)     : {formatted['totalDueAtMarketRate']}")
    print(f"Restitution            : {formatted['totalRestitution']}")
    print(f"Credit ({summary['restitutionMode']:6s})        : {formatted['totalCredit']}")
    print(f"Full-term restitution  : {formatted['fullTermRestitution']}")
    print(f"Closed form ({summary['amortizationSystem']:5s})    : {formatted['closedFormReduction']}")
    if summary.get("negativeBalanceInstallments"):
        print(f"Negative balance from  : installment {summary['negativeBalanceInstallments'][0]}")
    print("-" * 72)


def print_schedule(lines: Iterable[InstallmentLine]) -> None:
    """Print an amortization schedule as a simple table."""
    headers = [
        "No",
        "Due",
        "Rate",
        "Opening",
        "Interest",
        "Amort",
        "Charges",
        "Total",
        "TR",
        "Closing",
    ]
    print("\t".join(headers))
    for line in lines:
        row = [
            str(line.installment),
            line.due_date.isoformat(),
            format_percent(line.rate),
            f"{line.opening_balance + line.balance_adjustment:.2f}",
            f"{line.interest:.2f}",
            f"{line.amortization + line.extra_amortization:.2f}",
            f"{line.charges_total:.2f}",
            f"{line.total_due:.2f}",
            f"{line.correction_factor:.6f}",
            f"{line.closing_balance:.2f}",
        ]
        print("\t".join(row))


def print_comparison(comparison: Comparison) -> None:
    """Print the charged vs. due comparison with the running restitution."""
    print("Comparison")
    print("=" * 72)
    print(f"{'No':>4s} {'Due':10s} {'Charged':>15s} {'Due':>15s} {'Difference':>12s} {'Cumulative':>15s}")
    for line in comparison.lines:
        print(_comparison_row(line))
    print("=" * 72)
    print(f"Contract rate : {format_percent(comparison.contract_rate)}")
    print(f"Market rate   : {format_percent(comparison.market_rate)}")
    print(f"Spread        : {format_pp(comparison.rate_spread_pp)}")
    print(f"Restitution   : {format_currency(comparison.total_restitution)}")
    print(f"Credit        : {format_currency(comparison.total_credit)} ({comparison.restitution_mode.value})")


def _comparison_row(line: ComparativeLine) -> str:
    return (
        f"{line.installment:>4d} {line.due_date.isoformat():10s} "
        f"{line.charged_total:>15.2f} {line.due_total:>15.2f} "
        f"{line.difference:>12.2f} {line.cumulative_restitution:>15.2f}"
    )


def print_scenario_totals(scenario: Scenario) -> None:
    totals = scenario.totals
    print(f"Scenario           : {scenario.kind.value}")
    print(f"Principal          : {format_currency(totals.principal)}")
    print(f"Total interest     : {format_currency(totals.total_interest)}")
    print(f"Total charges      : {format_currency(totals.total_charges)}")
    print(f"Total paid         : {format_currency(totals.total_paid)}")


def print_compensation(compensation: Compensation) -> None:
    """Print the month-by-month offset of overcharges against the debt."""
    print(f"Compensation ({compensation.mode.value})")
    print("=" * 72)
    print(f"{'No':>4s} {'Due':10s} {'Paid':>12s} {'Credit':>10s} {'Interest':>10s} {'Balance':>14s}")
    for line in compensation.lines:
        marker = " payoff" if line.early_payoff else ""
        print(
            f"{line.installment:>4d} {line.due_date.isoformat():10s} {line.amount_paid:>12.2f} "
            f"{line.credit:>10.2f} {line.interest:>10.2f} {line.balance:>14.2f}{marker}"
        )
    print("=" * 72)
    print(f"Total credit  : {format_currency(compensation.total_credit)}")
    if compensation.payoff_installment is None:
        print(f"Balance left  : {format_currency(compensation.final_balance)}")
    else:
        print(f"Paid off at   : installment {compensation.payoff_installment}")
        print(f"Owed back     : {format_currency(-compensation.final_balance)}")
