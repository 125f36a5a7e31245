"""Structural checks run before any schedule is generated.

Every function raises on the first problem it finds and returns ``None``
otherwise. Rate-band problems are configuration errors; everything else is a
validation error.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from .data_models import AncillaryCharge, CorrectionPoint, LoanParameters, RateBand
from .errors import ConfigurationError, ValidationError
from .utils import month_key, term_end

MAX_MONTHLY_RATE = Decimal("1")


def validate_parameters(params: LoanParameters) -> None:
    principal = params.principal
    if not isinstance(principal, Decimal) or not principal.is_finite() or principal <= 0:
        raise ValidationError(
            "Principal must be a positive decimal", code="INVALID_PRINCIPAL", details={"principal": principal}
        )
    n = params.total_installments
    if isinstance(n, bool) or not isinstance(n, int) or n < 1:
        raise ValidationError(
            "Total installments must be a positive integer", code="INVALID_TERM", details={"total_installments": n}
        )
    if params.horizon is not None:
        horizon = params.horizon
        if isinstance(horizon, bool) or not isinstance(horizon, int) or not 1 <= horizon <= n:
            raise ValidationError(
                f"Horizon must be between 1 and {n}", code="INVALID_HORIZON", details={"horizon": horizon}
            )
    if not isinstance(params.first_due_date, date):
        raise ValidationError(
            "First due date must be a calendar date",
            code="INVALID_DATE",
            details={"first_due_date": params.first_due_date},
        )


def validate_rate_bands(bands: Sequence[RateBand], first_due: date, installments: int) -> None:
    """Check that ``bands`` tile ``[first_due, first_due + n months)`` exactly.

    Band ends are inclusive, so a band ending on the 20th must be followed by
    one starting on the 21st. The offending range is reported in
    ``details`` as ``start``/``end``.
    """
    if not bands:
        raise ConfigurationError("At least one rate band is required", code="EMPTY_RATE_BANDS")

    for index, band in enumerate(bands):
        if band.end < band.start:
            raise ConfigurationError(
                f"Rate band {index} ends before it starts",
                code="INVALID_RATE_BAND",
                details={"index": index, "start": band.start, "end": band.end},
            )
        if not band.monthly_rate.is_finite() or not 0 <= band.monthly_rate <= MAX_MONTHLY_RATE:
            raise ConfigurationError(
                "Monthly rate must be a fraction between 0 and 1",
                code="INVALID_RATE",
                details={"index": index, "monthly_rate": band.monthly_rate},
            )

    for index in range(1, len(bands)):
        previous, current = bands[index - 1], bands[index]
        if current.start < previous.start:
            raise ConfigurationError(
                "Rate bands must be in chronological order",
                code="RATE_BANDS_UNSORTED",
                details={"index": index, "previous_start": previous.start, "start": current.start},
            )
        if current.start <= previous.end:
            raise ConfigurationError(
                f"Rate bands overlap between {current.start.isoformat()} and "
                f"{min(previous.end, current.end).isoformat()}",
                code="RATE_BAND_OVERLAP",
                details={"index": index, "start": current.start, "end": min(previous.end, current.end)},
            )
        expected = previous.end + timedelta(days=1)
        if current.start > expected:
            gap_end = current.start - timedelta(days=1)
            raise ConfigurationError(
                f"Rate bands leave a gap from {expected.isoformat()} to {gap_end.isoformat()}",
                code="RATE_BAND_GAP",
                details={"index": index, "start": expected, "end": gap_end},
            )

    last_day = term_end(first_due, installments)
    if bands[0].start > first_due:
        raise ConfigurationError(
            f"Rate bands start after the first due date {first_due.isoformat()}",
            code="RATE_BANDS_INCOMPLETE_COVERAGE",
            details={"start": first_due, "end": bands[0].start - timedelta(days=1)},
        )
    if bands[-1].end < last_day:
        raise ConfigurationError(
            f"Rate bands end before the term ends on {last_day.isoformat()}",
            code="RATE_BANDS_INCOMPLETE_COVERAGE",
            details={"start": bands[-1].end + timedelta(days=1), "end": last_day},
        )


def validate_correction_series(series: Sequence[CorrectionPoint]) -> None:
    for index, point in enumerate(series):
        if not point.factor.is_finite() or point.factor < 0:
            raise ValidationError(
                "Correction factors must be non-negative",
                code="NEGATIVE_CORRECTION_FACTOR",
                details={"index": index, "date": point.date, "factor": point.factor},
            )
        if index == 0:
            continue
        previous = series[index - 1]
        if month_key(point.date) == month_key(previous.date):
            raise ValidationError(
                f"More than one correction point for {point.date.strftime('%Y-%m')}",
                code="CORRECTION_DUPLICATE_MONTH",
                details={"index": index, "date": point.date},
            )
        if point.date < previous.date:
            raise ValidationError(
                "Correction points must be in chronological order",
                code="CORRECTION_UNSORTED",
                details={"index": index, "previous_date": previous.date, "date": point.date},
            )


def validate_charges(charges: Iterable[AncillaryCharge], first_due: date) -> None:
    for index, charge in enumerate(charges):
        if charge.date < first_due:
            raise ValidationError(
                f"Charge dated {charge.date.isoformat()} precedes the first due date",
                code="CHARGE_BEFORE_FIRST_DUE",
                details={"index": index, "date": charge.date, "first_due_date": first_due},
            )
        for name, amount in charge.components.items():
            if not amount.is_finite() or amount < 0:
                raise ValidationError(
                    f"Charge component '{name}' must not be negative",
                    code="NEGATIVE_CHARGE",
                    details={"index": index, "component": name, "amount": amount},
                )


def validate_market_rate(rate: Decimal) -> None:
    if not isinstance(rate, Decimal) or not rate.is_finite() or not 0 <= rate <= MAX_MONTHLY_RATE:
        raise ValidationError(
            "Market monthly rate must be a fraction between 0 and 1",
            code="INVALID_MARKET_RATE",
            details={"market_rate": rate},
        )


def validate_all(params: LoanParameters, market_rate: Optional[Decimal] = None) -> None:
    """Run every validator; nothing is scheduled unless this passes."""
    validate_parameters(params)
    validate_rate_bands(params.rate_bands, params.first_due_date, params.total_installments)
    validate_correction_series(params.correction_series)
    validate_charges(params.ancillary_charges, params.first_due_date)
    if market_rate is not None:
        validate_market_rate(market_rate)
