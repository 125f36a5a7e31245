"""Data models for the restitution calculator.

This module defines dataclasses representing the different entities used by the
calculator: contractual rate bands, monetary-correction points, ancillary
charges, the overall loan parameters, individual schedule lines, whole
scenarios, the comparison between two scenarios and the payment events used to
reconcile a schedule with real payment history. Using dataclasses makes it easy
to construct, inspect and serialize these structures.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

# Canonical ancillary charge components.
MIP = "mip"  # life and disability insurance premium
DFI = "dfi"  # property damage insurance premium
TCA = "tca"  # administrative fee
LATE_FEE = "late_fee"
DEFAULT_INTEREST = "default_interest"


class ChargeMode(str, Enum):
    """How ancillary charges supplied in a request are spread over the schedule."""

    SINGLE_OCCURRENCE = "single"
    RECURRING = "recurring"


class PaymentStatus(str, Enum):
    PAID = "paid"
    OPEN = "open"
    PARTIAL = "partial"
    LATE = "late"


class ScenarioKind(str, Enum):
    CHARGED = "charged"
    DUE = "due"


class RestitutionMode(str, Enum):
    """How overcharges are credited back against the balance."""

    SIMPLE = "simple"
    DOUBLE = "double"

    @property
    def multiplier(self) -> int:
        return 2 if self is RestitutionMode.DOUBLE else 1


@dataclass(frozen=True)
class RateBand:
    """A contiguous date range over which one contractual rate applies.

    Attributes
    ----------
    start: date
        First day covered by the band.
    end: date
        Last day covered by the band (inclusive). The next band, if any, must
        start exactly one day later.
    monthly_rate: Decimal
        Effective monthly rate as a fraction, e.g. ``Decimal("0.0056")`` for
        0.56 % a.m.
    """

    start: date
    end: date
    monthly_rate: Decimal

    def contains(self, dt: date) -> bool:
        return self.start <= dt <= self.end


@dataclass(frozen=True)
class CorrectionPoint:
    """One month of a monetary-correction index (TR or equivalent).

    ``factor`` is multiplicative: ``Decimal("1.001195")`` means +0.1195 %.
    """

    date: date
    factor: Decimal


@dataclass(frozen=True)
class AncillaryCharge:
    """Charges billed alongside an installment.

    Attributes
    ----------
    date: date
        Effective date of the charge.
    components: Dict[str, Decimal]
        Named amounts, usually ``mip`` and ``dfi`` (insurance premiums) and
        ``tca`` (administrative fee).
    """

    date: date
    components: Dict[str, Decimal] = field(default_factory=dict)

    @property
    def total(self) -> Decimal:
        return sum(self.components.values(), Decimal("0"))


@dataclass
class LoanParameters:
    """Inputs of one schedule run.

    The principal is the financed amount. ``horizon`` limits how many
    installments are generated for a quick analysis; it never changes the
    constant amortization, which is always ``principal / total_installments``.
    """

    principal: Decimal
    total_installments: int
    first_due_date: date
    rate_bands: List[RateBand]
    correction_series: List[CorrectionPoint] = field(default_factory=list)
    ancillary_charges: List[AncillaryCharge] = field(default_factory=list)
    horizon: Optional[int] = None
    charge_mode: ChargeMode = ChargeMode.SINGLE_OCCURRENCE

    @property
    def schedule_length(self) -> int:
        return self.horizon if self.horizon is not None else self.total_installments


@dataclass(frozen=True)
class InstallmentLine:
    """A line of an amortization schedule.

    ``opening_balance`` always equals the previous line's ``closing_balance``.
    ``balance_adjustment`` is non-zero only on the line where a
    reconciliation folded earlier payment history into the balance; interest
    accrues on ``opening_balance + balance_adjustment``. ``total_due`` is the
    only value rounded to cents; everything else keeps full precision.
    """

    installment: int
    due_date: date
    rate: Decimal
    opening_balance: Decimal
    balance_adjustment: Decimal
    interest: Decimal
    amortization: Decimal
    installment_amount: Decimal
    charges: Dict[str, Decimal]
    charges_total: Decimal
    total_due: Decimal
    extra_amortization: Decimal
    capitalized_shortfall: Decimal
    correction_factor: Decimal
    closing_balance: Decimal

    @property
    def overpaid(self) -> bool:
        return self.closing_balance < 0


@dataclass(frozen=True)
class ScenarioTotals:
    principal: Decimal
    total_amortization: Decimal
    total_interest: Decimal
    total_charges: Decimal
    total_paid: Decimal


@dataclass
class Scenario:
    """An ordered schedule plus its aggregate totals.

    ``parameters`` are the exact inputs the lines were generated from (for the
    due scenario, a single flat band and no charges), which lets the
    reconciliation step re-run the schedule without any other context.
    """

    kind: ScenarioKind
    parameters: LoanParameters
    lines: List[InstallmentLine]
    totals: ScenarioTotals

    @property
    def negative_balance_installments(self) -> List[int]:
        return [line.installment for line in self.lines if line.overpaid]


@dataclass(frozen=True)
class ComparativeLine:
    installment: int
    due_date: date
    charged_total: Decimal
    due_total: Decimal
    difference: Decimal
    cumulative_restitution: Decimal
    credit: Decimal = Decimal("0")


@dataclass
class Comparison:
    """Period-by-period comparison of the charged and due scenarios.

    ``total_restitution`` is the signed sum of the differences;
    ``total_credit`` only counts overcharges, scaled by ``restitution_mode``.
    """

    lines: List[ComparativeLine]
    contract_rate: Decimal
    market_rate: Decimal
    rate_spread_pp: Decimal
    total_charged: Decimal
    total_due: Decimal
    total_restitution: Decimal
    restitution_mode: RestitutionMode = RestitutionMode.SIMPLE
    total_credit: Decimal = Decimal("0")


@dataclass(frozen=True)
class CompensationLine:
    """One period of the month-by-month offset of overcharges against the debt.

    ``balance`` is signed: once the credits outrun the debt it goes negative
    and ``creditor_balance`` records what the lender owes on the line where
    that first happens.
    """

    installment: int
    due_date: date
    amount_paid: Decimal
    amount_due: Decimal
    credit: Decimal
    interest: Decimal
    amortization: Decimal
    compensated_amortization: Decimal
    balance: Decimal
    creditor_balance: Decimal
    early_payoff: bool


@dataclass
class Compensation:
    mode: RestitutionMode
    lines: List[CompensationLine]
    total_credit: Decimal
    payoff_installment: Optional[int]
    final_balance: Decimal


@dataclass(frozen=True)
class PaymentEvent:
    """What actually happened to one installment.

    Attributes
    ----------
    installment: int
        Installment number the payment refers to (1-based).
    payment_date: Optional[date]
        When the money arrived; ``None`` for installments still open. Kept
        for the record and echoed back in reconciliation output; balances
        never depend on it.
    amount_paid: Decimal
        Amount actually paid towards the installment.
    extra_amortization: Decimal
        Additional principal paid on top of the installment.
    status: PaymentStatus
        ``paid`` means settled in full; ``open``, ``partial`` and ``late``
        leave any unpaid amount to be capitalized into the balance. Late
        payments carry no penalty of their own; bill those through the
        ``late_fee`` and ``default_interest`` ancillary charges.
    """

    installment: int
    payment_date: Optional[date]
    amount_paid: Decimal
    extra_amortization: Decimal = Decimal("0")
    status: PaymentStatus = PaymentStatus.PAID

    @property
    def diverges(self) -> bool:
        return self.status is not PaymentStatus.PAID or self.extra_amortization > 0

    def shortfall(self, total_due: Decimal) -> Decimal:
        """Unpaid part of ``total_due``; settled installments never fall short."""
        if self.status is PaymentStatus.PAID:
            return Decimal("0")
        return max(Decimal("0"), total_due - self.amount_paid)


@dataclass(frozen=True)
class ScheduleStart:
    """Overridden initial state for a schedule run (used by reconciliation)."""

    installment: int
    balance: Decimal
    balance_adjustment: Decimal = Decimal("0")
