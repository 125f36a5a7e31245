"""Core calculation engine for the restitution calculator.

This module implements the constant-amortization (SAC) schedule with
monetary correction, multiple contractual rate bands and ancillary charges.
The same state machine produces both the "charged" scenario (contract rate
bands plus charges) and the "due" scenario (a flat market rate, no charges).
Results are returned as ``Scenario`` objects holding ``InstallmentLine``
entries and aggregate totals.

For installment ``k`` with opening balance ``B``::

    interest     = (B + adjustment) * rate(due_k)
    amortization = principal / n
    total_due    = round2(amortization + interest + charges_k)
    closing      = (B + adjustment - amortization - extra_k + shortfall_k) * TR(due_k)

Installment 1 is never corrected. Only ``total_due`` is rounded; balances
keep the full 28-digit context from one period to the next.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, getcontext
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from .data_models import (
    InstallmentLine,
    LoanParameters,
    PaymentEvent,
    RateBand,
    Scenario,
    ScenarioKind,
    ScenarioTotals,
    ScheduleStart,
)
from .resolvers import AncillaryChargeResolver, MonetaryCorrectionApplier, RateBandResolver
from .utils import ONE, ZERO, due_date, quantize_money
from .validators import validate_all, validate_market_rate

getcontext().prec = 28  # increase precision for financial calculations

logger = logging.getLogger(__name__)

OPEN_END = date(9999, 12, 31)


def constant_amortization(principal: Decimal, installments: int, installment: int) -> Decimal:
    """Return the SAC amortization of ``installment``.

    Every installment repays ``principal / n``; the last one repays whatever
    the previous ``n - 1`` left so the amortization column sums to the
    principal exactly.
    """
    base = principal / Decimal(installments)
    if installment == installments:
        return principal - base * Decimal(installments - 1)
    return base


def summarize_lines(principal: Decimal, lines: Iterable[InstallmentLine]) -> ScenarioTotals:
    total_amortization = ZERO
    total_interest = ZERO
    total_charges = ZERO
    total_paid = ZERO
    for line in lines:
        total_amortization += line.amortization
        total_interest += line.interest
        total_charges += line.charges_total
        total_paid += line.total_due
    return ScenarioTotals(
        principal=principal,
        total_amortization=total_amortization,
        total_interest=total_interest,
        total_charges=total_charges,
        total_paid=total_paid,
    )


def compute_schedule(
    params: LoanParameters,
    kind: ScenarioKind = ScenarioKind.CHARGED,
    start: Optional[ScheduleStart] = None,
    payments: Optional[Mapping[int, PaymentEvent]] = None,
    carried: Sequence[InstallmentLine] = (),
) -> Scenario:
    """Compute the SAC schedule for ``params``.

    Parameters
    ----------
    params: LoanParameters
        Validated before anything is computed; invalid input never yields a
        partial schedule.
    kind: ScenarioKind
        Label of the resulting scenario.
    start: ScheduleStart, optional
        Overridden initial state. By default the run starts at installment 1
        with the full principal outstanding.
    payments: Mapping[int, PaymentEvent], optional
        Real payment events keyed by installment. Their extra amortization
        and unpaid shortfall move that installment's closing balance before
        correction.
    carried: Sequence[InstallmentLine]
        Lines kept verbatim ahead of the computed ones (reconciliation).

    Returns
    -------
    Scenario
        One line per installment from ``start`` up to the horizon, preceded
        by ``carried``, with totals over all lines.
    """
    validate_all(params)
    start = start or ScheduleStart(installment=1, balance=params.principal)
    payments = payments or {}

    rates = RateBandResolver(params.rate_bands)
    corrections = MonetaryCorrectionApplier(params.correction_series)
    charges = AncillaryChargeResolver(params.ancillary_charges, params.charge_mode)

    n = params.total_installments
    horizon = params.schedule_length
    balance = start.balance
    adjustment = start.balance_adjustment
    lines: List[InstallmentLine] = list(carried)

    for k in range(start.installment, horizon + 1):
        current_date = due_date(params.first_due_date, k)
        rate = rates.resolve(current_date)
        adjusted = balance + adjustment
        interest = adjusted * rate
        amortization = constant_amortization(params.principal, n, k)
        installment_amount = amortization + interest
        period_charges = charges.charges_for(k, current_date)
        charges_total = sum(period_charges.values(), ZERO)
        total_due = quantize_money(installment_amount + charges_total)
        extra, shortfall = ZERO, ZERO
        event = payments.get(k)
        if event is not None:
            extra = event.extra_amortization
            shortfall = event.shortfall(total_due)
        factor = ONE if k == 1 else corrections.factor_for(current_date)
        closing = (adjusted - amortization - extra + shortfall) * factor

        lines.append(
            InstallmentLine(
                installment=k,
                due_date=current_date,
                rate=rate,
                opening_balance=balance,
                balance_adjustment=adjustment,
                interest=interest,
                amortization=amortization,
                installment_amount=installment_amount,
                charges=period_charges,
                charges_total=charges_total,
                total_due=total_due,
                extra_amortization=extra,
                capitalized_shortfall=shortfall,
                correction_factor=factor,
                closing_balance=closing,
            )
        )
        balance = closing
        adjustment = ZERO

    scenario = Scenario(
        kind=kind,
        parameters=params,
        lines=lines,
        totals=summarize_lines(params.principal, lines),
    )
    negative = scenario.negative_balance_installments
    if negative:
        logger.warning(
            "%s schedule reaches a negative balance at installment %d (%d lines affected)",
            kind.value,
            negative[0],
            len(negative),
        )
    logger.debug(
        "%s schedule: %d lines, total paid %s, total interest %s",
        kind.value,
        len(lines),
        scenario.totals.total_paid,
        quantize_money(scenario.totals.total_interest),
    )
    return scenario


def build_charged_scenario(params: LoanParameters) -> Scenario:
    """What the lender billed: contract rate bands plus ancillary charges."""
    return compute_schedule(params, kind=ScenarioKind.CHARGED)


def due_parameters(params: LoanParameters, market_rate: Decimal) -> LoanParameters:
    """Parameters of the due scenario: one flat market-rate band and no charges."""
    return LoanParameters(
        principal=params.principal,
        total_installments=params.total_installments,
        first_due_date=params.first_due_date,
        rate_bands=[RateBand(start=params.first_due_date, end=OPEN_END, monthly_rate=market_rate)],
        correction_series=list(params.correction_series),
        ancillary_charges=[],
        horizon=params.horizon,
        charge_mode=params.charge_mode,
    )


def build_due_scenario(params: LoanParameters, market_rate: Decimal) -> Scenario:
    """What would be owed at the market rate, sharing the same correction series."""
    validate_market_rate(market_rate)
    return compute_schedule(due_parameters(params, market_rate), kind=ScenarioKind.DUE)


def build_scenarios(params: LoanParameters, market_rate: Decimal) -> Tuple[Scenario, Scenario]:
    """Validate everything up front, then build the charged and due scenarios."""
    validate_all(params, market_rate)
    return build_charged_scenario(params), build_due_scenario(params, market_rate)
