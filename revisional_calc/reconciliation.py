"""Re-derive a schedule once real payment history is known.

Installments before the cut point are historical fact and are carried over
untouched. Payment events before the cut are folded into one balance
adjustment on the cut line, less whatever the carried lines already hold
from an earlier reconciliation; events from the cut onwards are applied
in-period while the ordinary scheduler runs forward again. The input
schedule is never modified.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Dict, Iterable, Optional

from .data_models import InstallmentLine, PaymentEvent, PaymentStatus, Scenario, ScheduleStart
from .engine import compute_schedule
from .errors import ReconciliationConflictError
from .utils import ZERO

logger = logging.getLogger(__name__)


def _index_events(schedule: Scenario, events: Iterable[PaymentEvent]) -> Dict[int, PaymentEvent]:
    n = schedule.parameters.total_installments
    indexed: Dict[int, PaymentEvent] = {}
    for event in events:
        if not 1 <= event.installment <= n:
            raise ReconciliationConflictError(
                f"Payment event references installment {event.installment} outside 1..{n}",
                code="INSTALLMENT_OUT_OF_RANGE",
                details={"installment": event.installment, "total_installments": n},
            )
        if event.installment in indexed:
            raise ReconciliationConflictError(
                f"More than one payment event for installment {event.installment}",
                code="DUPLICATE_PAYMENT_EVENT",
                details={"installment": event.installment},
            )
        if event.amount_paid < 0 or event.extra_amortization < 0:
            raise ReconciliationConflictError(
                f"Payment amounts for installment {event.installment} must not be negative",
                code="NEGATIVE_PAYMENT",
                details={
                    "installment": event.installment,
                    "amount_paid": event.amount_paid,
                    "extra_amortization": event.extra_amortization,
                },
            )
        indexed[event.installment] = event
    return indexed


def default_cut(events: Dict[int, PaymentEvent]) -> Optional[int]:
    """First diverging installment, pushed past any later settled one.

    Returns ``None`` when the payment history matches the schedule.
    """
    diverging = [k for k, event in events.items() if event.diverges]
    if not diverging:
        return None
    settled = [k for k, event in events.items() if event.status is PaymentStatus.PAID]
    return max([min(diverging)] + settled)


def recalculate(
    schedule: Scenario,
    events: Iterable[PaymentEvent],
    from_installment: Optional[int] = None,
) -> Scenario:
    """Return the revised schedule for ``events``.

    Parameters
    ----------
    schedule: Scenario
        A schedule produced by the engine (charged or due).
    events: Iterable[PaymentEvent]
        Sparse payment history; at most one event per installment.
    from_installment: int, optional
        Cut point. Defaults to the first diverging installment, or the last
        settled one when that comes later.

    Raises
    ------
    ReconciliationConflictError
        When an event is outside ``1..n``, the cut point precedes an
        installment that is already settled, or the cut lies past the last
        line while earlier history still has to be folded somewhere.
    """
    indexed = _index_events(schedule, events)
    length = len(schedule.lines)

    if from_installment is None:
        cut = default_cut({k: event for k, event in indexed.items() if k <= length})
        if cut is None:
            logger.debug("payment history matches the schedule; nothing to recalculate")
            return Scenario(
                kind=schedule.kind,
                parameters=schedule.parameters,
                lines=list(schedule.lines),
                totals=schedule.totals,
            )
        from_installment = cut

    if isinstance(from_installment, bool) or not 1 <= from_installment <= length + 1:
        raise ReconciliationConflictError(
            f"Cut point must be between 1 and {length + 1}",
            code="INVALID_FROM_INSTALLMENT",
            details={"from_installment": from_installment, "schedule_length": length},
        )
    settled_after = sorted(
        k
        for k, event in indexed.items()
        if event.status is PaymentStatus.PAID and from_installment < k <= length
    )
    if settled_after:
        raise ReconciliationConflictError(
            f"Cut point {from_installment} precedes settled installment {settled_after[0]}",
            code="SETTLED_INSTALLMENT",
            details={"from_installment": from_installment, "settled": settled_after},
        )

    carried = schedule.lines[: from_installment - 1]
    balance = carried[-1].closing_balance if carried else schedule.parameters.principal
    adjustment = sum((_unreflected(line, indexed.get(line.installment)) for line in carried), ZERO)
    if from_installment > length and adjustment != ZERO:
        raise ReconciliationConflictError(
            f"Cut point {from_installment} leaves no installment to absorb {adjustment} of payment history",
            code="CUT_PAST_SCHEDULE",
            details={"from_installment": from_installment, "schedule_length": length, "adjustment": adjustment},
        )
    if adjustment != ZERO:
        logger.warning(
            "folding %s of earlier payment history into installment %d",
            adjustment,
            from_installment,
        )

    upcoming = {k: event for k, event in indexed.items() if k >= from_installment}
    revised = compute_schedule(
        schedule.parameters,
        kind=schedule.kind,
        start=ScheduleStart(installment=from_installment, balance=balance, balance_adjustment=adjustment),
        payments=upcoming,
        carried=carried,
    )
    logger.debug(
        "recalculated %s schedule from installment %d: total paid %s -> %s",
        schedule.kind.value,
        from_installment,
        schedule.totals.total_paid,
        revised.totals.total_paid,
    )
    return revised


def payment_balance_delta(events: Iterable[PaymentEvent], schedule: Scenario) -> Decimal:
    """Net change to the debt stock implied by ``events`` that ``schedule`` does not carry yet.

    Positive values mean capitalized shortfalls outweigh extra amortization.
    """
    indexed = _index_events(schedule, events)
    return sum((_unreflected(line, indexed.get(line.installment)) for line in schedule.lines), ZERO)


def _unreflected(line: InstallmentLine, event: Optional[PaymentEvent]) -> Decimal:
    # what the history asks of this line, minus what an earlier reconciliation already put there
    required = ZERO if event is None else event.shortfall(line.total_due) - event.extra_amortization
    reflected = line.capitalized_shortfall - line.extra_amortization + line.balance_adjustment
    return required - reflected
