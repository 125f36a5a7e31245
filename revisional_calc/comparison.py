"""Charged vs. due comparison.

The comparison is a nominal one: monetary correction is already embedded in
both schedules' balances, so differences are summed as they are, without
discounting or further correction.

:func:`compensate` goes one step further and offsets each month's overcharge
against the debt as it happens, crediting it once or twice depending on the
restitution mode, to find out whether (and when) the loan would already be
paid off.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Optional

from .data_models import (
    ComparativeLine,
    Comparison,
    Compensation,
    CompensationLine,
    RestitutionMode,
    Scenario,
)
from .errors import ValidationError
from .utils import ZERO

logger = logging.getLogger(__name__)

PERCENT = Decimal("100")


def rate_spread_pp(charged: Scenario, due: Scenario) -> Decimal:
    """Contract rate minus market rate in period 1, in percentage points."""
    if not charged.lines or not due.lines:
        return ZERO
    return (charged.lines[0].rate - due.lines[0].rate) * PERCENT


def _check_aligned(charged: Scenario, due: Scenario) -> None:
    if len(charged.lines) != len(due.lines):
        raise ValidationError(
            "Charged and due schedules have different lengths",
            code="SCHEDULE_MISMATCH",
            details={"charged_length": len(charged.lines), "due_length": len(due.lines)},
        )
    for charged_line, due_line in zip(charged.lines, due.lines):
        if charged_line.due_date != due_line.due_date or charged_line.installment != due_line.installment:
            raise ValidationError(
                f"Schedules diverge at installment {charged_line.installment}",
                code="SCHEDULE_MISMATCH",
                details={
                    "installment": charged_line.installment,
                    "charged_due_date": charged_line.due_date,
                    "due_due_date": due_line.due_date,
                },
            )


def compare(
    charged: Scenario,
    due: Scenario,
    mode: RestitutionMode = RestitutionMode.SIMPLE,
) -> Comparison:
    """Zip the two schedules and accumulate the restitution period by period.

    The running cumulative is signed, so months where the due schedule is
    dearer net off against earlier overcharges. The per-line ``credit`` only
    counts overcharges, multiplied according to ``mode``.
    """
    _check_aligned(charged, due)
    lines: List[ComparativeLine] = []
    cumulative = ZERO
    total_credit = ZERO
    for charged_line, due_line in zip(charged.lines, due.lines):
        difference = charged_line.total_due - due_line.total_due
        cumulative += difference
        credit = max(ZERO, difference) * mode.multiplier
        total_credit += credit
        lines.append(
            ComparativeLine(
                installment=charged_line.installment,
                due_date=charged_line.due_date,
                charged_total=charged_line.total_due,
                due_total=due_line.total_due,
                difference=difference,
                cumulative_restitution=cumulative,
                credit=credit,
            )
        )
    return Comparison(
        lines=lines,
        contract_rate=charged.lines[0].rate if charged.lines else ZERO,
        market_rate=due.lines[0].rate if due.lines else ZERO,
        rate_spread_pp=rate_spread_pp(charged, due),
        total_charged=charged.totals.total_paid,
        total_due=due.totals.total_paid,
        total_restitution=cumulative,
        restitution_mode=mode,
        total_credit=total_credit,
    )


def compensate(
    charged: Scenario,
    due: Scenario,
    mode: RestitutionMode = RestitutionMode.SIMPLE,
) -> Compensation:
    """Offset every overcharge against the debt in the month it was paid.

    The debt starts at the principal and accrues interest at the due
    schedule's rate for each period. What the borrower actually paid, less
    that interest and the period's charges, amortizes it; the overcharge
    credit is amortized on top. Once the balance reaches zero no further
    interest accrues and the balance keeps going negative.

    Parameters
    ----------
    charged: Scenario
        What the lender billed; its ``total_due`` is taken as paid.
    due: Scenario
        What should have been billed, over the same installments.
    mode: RestitutionMode
        ``simple`` credits each overcharge once, ``double`` twice.
    """
    _check_aligned(charged, due)
    balance = charged.parameters.principal
    lines: List[CompensationLine] = []
    total_credit = ZERO
    payoff: Optional[int] = None
    in_credit = False
    for charged_line, due_line in zip(charged.lines, due.lines):
        paid = charged_line.total_due
        credit = max(ZERO, paid - due_line.total_due) * mode.multiplier
        interest = balance * due_line.rate if balance > 0 else ZERO
        amortization = max(ZERO, paid - interest - due_line.charges_total)
        compensated = amortization + credit
        previous = balance
        balance = previous - compensated
        total_credit += credit

        early_payoff = previous > 0 >= balance
        creditor_balance = ZERO
        if balance < 0 and not in_credit:
            creditor_balance = -balance
            in_credit = True
        if early_payoff and payoff is None:
            payoff = charged_line.installment
            logger.info("overcharge credits pay the loan off at installment %d", payoff)

        lines.append(
            CompensationLine(
                installment=charged_line.installment,
                due_date=charged_line.due_date,
                amount_paid=paid,
                amount_due=due_line.total_due,
                credit=credit,
                interest=interest,
                amortization=amortization,
                compensated_amortization=compensated,
                balance=balance,
                creditor_balance=creditor_balance,
                early_payoff=early_payoff,
            )
        )
    return Compensation(
        mode=mode,
        lines=lines,
        total_credit=total_credit,
        payoff_installment=payoff,
        final_balance=balance,
    )
