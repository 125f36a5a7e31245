"""Per-period lookups consulted by the scheduler.

Each resolver is built fresh for one schedule run over immutable copies of
the request's rate bands, correction series and charges.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, Tuple

from .data_models import AncillaryCharge, ChargeMode, CorrectionPoint, RateBand
from .errors import ConfigurationError
from .utils import ONE, month_key


class RateBandResolver:
    """Select the contractual monthly rate that applies on a date."""

    def __init__(self, bands: Iterable[RateBand]) -> None:
        self._bands: Tuple[RateBand, ...] = tuple(sorted(bands, key=lambda b: b.start))

    def resolve(self, dt: date) -> Decimal:
        for band in self._bands:
            if band.contains(dt):
                return band.monthly_rate
        raise ConfigurationError(
            f"No rate band covers {dt.isoformat()}",
            code="RATE_NOT_FOUND",
            details={"date": dt, "bands": [(b.start, b.end) for b in self._bands]},
        )


class MonetaryCorrectionApplier:
    """Correction factor for the calendar month of a date.

    Months without a point are neutral (factor 1).
    """

    def __init__(self, series: Iterable[CorrectionPoint]) -> None:
        self._factors: Dict[Tuple[int, int], Decimal] = {
            month_key(point.date): point.factor for point in series
        }

    def factor_for(self, dt: date) -> Decimal:
        return self._factors.get(month_key(dt), ONE)


class AncillaryChargeResolver:
    """Charges billed with each installment.

    With ``ChargeMode.SINGLE_OCCURRENCE`` every supplied charge is rolled into
    installment 1, which is how average insurance premiums are quoted in these
    contracts. ``ChargeMode.RECURRING`` bills the charge dated in the
    installment's month, falling back to the latest earlier charge.
    """

    def __init__(self, charges: Iterable[AncillaryCharge], mode: ChargeMode = ChargeMode.SINGLE_OCCURRENCE) -> None:
        self._charges: Tuple[AncillaryCharge, ...] = tuple(sorted(charges, key=lambda c: c.date))
        self.mode = ChargeMode(mode)

    def charges_for(self, installment: int, dt: date) -> Dict[str, Decimal]:
        if not self._charges:
            return {}
        if self.mode is ChargeMode.SINGLE_OCCURRENCE:
            if installment != 1:
                return {}
            return _merge(self._charges)
        same_month = [c for c in self._charges if month_key(c.date) == month_key(dt)]
        if same_month:
            return _merge(same_month)
        earlier = [c for c in self._charges if c.date <= dt]
        if not earlier:
            return {}
        return dict(earlier[-1].components)


def _merge(charges: Iterable[AncillaryCharge]) -> Dict[str, Decimal]:
    merged: Dict[str, Decimal] = {}
    for charge in charges:
        for name, amount in charge.components.items():
            merged[name] = merged.get(name, Decimal("0")) + amount
    return merged
