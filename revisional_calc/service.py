"""Plain-data request and response contracts.

Requests arrive as JSON-like mappings with camelCase keys; monetary values,
rates and factors may be strings or numbers and are always converted to
``Decimal``. Responses serialize every decimal as a string and every date as
``YYYY-MM-DD`` so nothing loses precision in transit.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .comparison import compare, compensate
from .config import Settings
from .data_models import (
    AncillaryCharge,
    ChargeMode,
    Comparison,
    Compensation,
    CorrectionPoint,
    InstallmentLine,
    LoanParameters,
    PaymentEvent,
    PaymentStatus,
    RateBand,
    RestitutionMode,
    Scenario,
    ScenarioKind,
)
from .engine import OPEN_END, build_charged_scenario, build_scenarios
from .errors import ValidationError
from .formatter import format_currency, format_percent, format_pp
from .price import SAC, SYSTEMS, estimate_savings
from .reconciliation import payment_balance_delta, recalculate
from .utils import annual_to_monthly, decimal_from_str, monthly_to_annual, parse_date, quantize_money

logger = logging.getLogger(__name__)

WHICH_TABLES = ("charged", "due", "comparative", "compensation")
RATE_QUANTUM = Decimal("1e-12")


def _malformed(message: str, **details: Any) -> ValidationError:
    return ValidationError(message, code="MALFORMED_REQUEST", details=details)


def _require(payload: Mapping[str, Any], key: str) -> Any:
    if key not in payload or payload[key] is None or payload[key] == "":
        raise _malformed(f"Missing required field '{key}'", field=key)
    return payload[key]


def _decimal(value: Any, key: str) -> Decimal:
    try:
        return decimal_from_str(value)
    except ValueError as exc:
        raise _malformed(f"Field '{key}' is not a decimal: {value!r}", field=key) from exc


def _date(value: Any, key: str) -> date:
    try:
        return parse_date(value)
    except ValueError as exc:
        raise ValidationError(
            f"Field '{key}' is not a calendar date: {value!r}", code="INVALID_DATE", details={"field": key}
        ) from exc


def _int(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise _malformed(f"Field '{key}' is not an integer: {value!r}", field=key)
    try:
        number = Decimal(str(value))
    except ArithmeticError as exc:
        raise _malformed(f"Field '{key}' is not an integer: {value!r}", field=key) from exc
    if not number.is_finite() or number != number.to_integral_value():
        raise _malformed(f"Field '{key}' is not an integer: {value!r}", field=key)
    return int(number)


def _list(payload: Mapping[str, Any], key: str) -> List[Any]:
    value = payload.get(key) or []
    if not isinstance(value, list):
        raise _malformed(f"Field '{key}' must be a list", field=key)
    return value


def _objects(payload: Mapping[str, Any], key: str) -> List[Mapping[str, Any]]:
    items = _list(payload, key)
    for index, item in enumerate(items):
        if not isinstance(item, Mapping):
            raise _malformed(f"{key}[{index}] must be an object", field=key)
    return items


def _charge_mode(value: Any, default: ChargeMode) -> ChargeMode:
    if value is None:
        return default
    try:
        return ChargeMode(str(value).lower())
    except ValueError as exc:
        raise _malformed(f"Unknown charge mode {value!r}", field="chargeMode") from exc


def parse_restitution_mode(payload: Mapping[str, Any], settings: Optional[Settings] = None) -> RestitutionMode:
    """``restitutionMode`` from the request, falling back to the configured default."""
    value = payload.get("restitutionMode")
    if value in (None, ""):
        return (settings or Settings()).restitution_mode
    try:
        return RestitutionMode(str(value).lower())
    except ValueError as exc:
        raise _malformed(f"Unknown restitution mode {value!r}", field="restitutionMode") from exc


def _amortization_system(value: Any) -> str:
    system = str(value or SAC).upper()
    if system not in SYSTEMS:
        raise _malformed(f"Unknown amortization system {value!r}", field="amortizationSystem")
    return system


def _annual_rate(value: Any, key: str) -> Decimal:
    """Monthly equivalent of an effective annual rate, kept to 12 places."""
    annual = _decimal(value, key)
    try:
        monthly = annual_to_monthly(annual)
    except ValueError as exc:
        raise _malformed(f"Field '{key}' is not a usable annual rate: {value!r}", field=key) from exc
    return monthly.quantize(RATE_QUANTUM)


def _monthly_rate(payload: Mapping[str, Any], monthly_key: str, annual_key: str) -> Optional[Decimal]:
    # a monthly rate wins when both are given
    if payload.get(monthly_key) not in (None, ""):
        return _decimal(payload[monthly_key], monthly_key)
    if payload.get(annual_key) not in (None, ""):
        return _annual_rate(payload[annual_key], annual_key)
    return None


def _components(raw: Any, key: str) -> Dict[str, Decimal]:
    if not isinstance(raw, Mapping):
        raise _malformed(f"Field '{key}' must be an object", field=key)
    return {str(name): _decimal(amount, f"{key}.{name}") for name, amount in raw.items()}


def parse_loan_request(
    payload: Mapping[str, Any], settings: Optional[Settings] = None
) -> Tuple[LoanParameters, Optional[Decimal]]:
    """Build ``LoanParameters`` and the market rate from a request mapping.

    ``contractMonthlyRate`` may stand in for ``rateBands`` (one flat band from
    the first due date) and ``averageCharges`` for ``ancillaryCharges`` (one
    charge dated on the first due date), as in the quick analysis form.
    Every monthly rate field has an annual counterpart (``contractAnnualRate``,
    ``marketAnnualRate``, a band's ``annualRate``) holding an effective
    annual rate, converted to its monthly equivalent and kept to 12 places.
    """
    settings = settings or Settings()
    if not isinstance(payload, Mapping):
        raise _malformed("Request must be an object")
    principal = _decimal(_require(payload, "principal"), "principal")
    installments = _int(_require(payload, "totalInstallments"), "totalInstallments")
    first_due = _date(_require(payload, "firstDueDate"), "firstDueDate")

    bands = []
    for index, raw in enumerate(_objects(payload, "rateBands")):
        key = f"rateBands[{index}]"
        rate = _monthly_rate(raw, "monthlyRate", "annualRate")
        if rate is None:
            raise _malformed(f"{key} needs 'monthlyRate' or 'annualRate'", field=f"{key}.monthlyRate")
        bands.append(
            RateBand(
                start=_date(_require(raw, "start"), f"{key}.start"),
                end=_date(_require(raw, "end"), f"{key}.end"),
                monthly_rate=rate,
            )
        )
    flat_rate = _monthly_rate(payload, "contractMonthlyRate", "contractAnnualRate")
    if not bands and flat_rate is not None:
        bands.append(RateBand(start=first_due, end=OPEN_END, monthly_rate=flat_rate))

    series = [
        CorrectionPoint(
            date=_date(_require(raw, "date"), f"correctionSeries[{index}].date"),
            factor=_decimal(_require(raw, "factor"), f"correctionSeries[{index}].factor"),
        )
        for index, raw in enumerate(_objects(payload, "correctionSeries"))
    ]

    charges = [
        AncillaryCharge(
            date=_date(raw.get("date") or first_due, f"ancillaryCharges[{index}].date"),
            components=_components(raw.get("components", {}), f"ancillaryCharges[{index}].components"),
        )
        for index, raw in enumerate(_objects(payload, "ancillaryCharges"))
    ]
    if not charges and payload.get("averageCharges"):
        average = _components(payload["averageCharges"], "averageCharges")
        charges.append(AncillaryCharge(date=first_due, components=average))

    horizon = payload.get("horizonMonths")
    market_rate = _monthly_rate(payload, "marketMonthlyRate", "marketAnnualRate")
    params = LoanParameters(
        principal=principal,
        total_installments=installments,
        first_due_date=first_due,
        rate_bands=bands,
        correction_series=series,
        ancillary_charges=charges,
        horizon=None if horizon is None else _int(horizon, "horizonMonths"),
        charge_mode=_charge_mode(payload.get("chargeMode"), settings.charge_mode),
    )
    return params, market_rate


def parse_payment_events(raw_events: List[Any]) -> List[PaymentEvent]:
    events = []
    for index, raw in enumerate(raw_events):
        key = f"paymentEvents[{index}]"
        if not isinstance(raw, Mapping):
            raise _malformed(f"{key} must be an object", field=key)
        status_raw = str(raw.get("status") or PaymentStatus.PAID.value).lower()
        try:
            status = PaymentStatus(status_raw)
        except ValueError as exc:
            raise _malformed(f"{key}.status is not a payment status: {status_raw!r}", field=key) from exc
        payment_date = raw.get("paymentDate")
        events.append(
            PaymentEvent(
                installment=_int(_require(raw, "installment"), f"{key}.installment"),
                payment_date=None if payment_date in (None, "") else _date(payment_date, f"{key}.paymentDate"),
                amount_paid=_decimal(raw.get("amountPaid", "0"), f"{key}.amountPaid"),
                extra_amortization=_decimal(raw.get("extraAmortization", "0"), f"{key}.extraAmortization"),
                status=status,
            )
        )
    return events


def _market_rate_required(market_rate: Optional[Decimal]) -> Decimal:
    if market_rate is None:
        raise _malformed("Missing required field 'marketMonthlyRate'", field="marketMonthlyRate")
    return market_rate


def serialize_line(line: InstallmentLine) -> Dict[str, Any]:
    return {
        "installment": line.installment,
        "dueDate": line.due_date.isoformat(),
        "rate": str(line.rate),
        "openingBalance": str(line.opening_balance),
        "balanceAdjustment": str(line.balance_adjustment),
        "interest": str(line.interest),
        "amortization": str(line.amortization),
        "installmentAmount": str(line.installment_amount),
        "charges": {name: str(amount) for name, amount in line.charges.items()},
        "chargesTotal": str(line.charges_total),
        "totalDue": str(line.total_due),
        "extraAmortization": str(line.extra_amortization),
        "capitalizedShortfall": str(line.capitalized_shortfall),
        "correctionFactor": str(line.correction_factor),
        "closingBalance": str(line.closing_balance),
        "overpaid": line.overpaid,
    }


def serialize_scenario(scenario: Scenario) -> Dict[str, Any]:
    totals = scenario.totals
    return {
        "kind": scenario.kind.value,
        "lines": [serialize_line(line) for line in scenario.lines],
        "totals": {
            "principal": str(totals.principal),
            "totalAmortization": str(totals.total_amortization),
            "totalInterest": str(totals.total_interest),
            "totalCharges": str(totals.total_charges),
            "totalPaid": str(totals.total_paid),
        },
        "negativeBalanceInstallments": scenario.negative_balance_installments,
    }


def serialize_comparison(comparison: Comparison) -> List[Dict[str, Any]]:
    return [
        {
            "installment": line.installment,
            "dueDate": line.due_date.isoformat(),
            "chargedTotal": str(line.charged_total),
            "dueTotal": str(line.due_total),
            "difference": str(line.difference),
            "cumulativeRestitution": str(line.cumulative_restitution),
            "credit": str(line.credit),
        }
        for line in comparison.lines
    ]


def serialize_compensation(compensation: Compensation) -> Dict[str, Any]:
    return {
        "mode": compensation.mode.value,
        "totalCredit": str(compensation.total_credit),
        "payoffInstallment": compensation.payoff_installment,
        "finalBalance": str(compensation.final_balance),
        "lines": [
            {
                "installment": line.installment,
                "dueDate": line.due_date.isoformat(),
                "amountPaid": str(line.amount_paid),
                "amountDue": str(line.amount_due),
                "credit": str(line.credit),
                "interest": str(line.interest),
                "amortization": str(line.amortization),
                "compensatedAmortization": str(line.compensated_amortization),
                "balance": str(line.balance),
                "creditorBalance": str(line.creditor_balance),
                "earlyPayoff": line.early_payoff,
            }
            for line in compensation.lines
        ],
    }


def serialize_event(event: PaymentEvent) -> Dict[str, Any]:
    return {
        "installment": event.installment,
        "paymentDate": None if event.payment_date is None else event.payment_date.isoformat(),
        "amountPaid": str(event.amount_paid),
        "extraAmortization": str(event.extra_amortization),
        "status": event.status.value,
    }


def _annual(monthly_rate: Decimal) -> Decimal:
    return monthly_to_annual(monthly_rate).quantize(RATE_QUANTUM)


def quick_preview(payload: Mapping[str, Any], settings: Optional[Settings] = None) -> Dict[str, Any]:
    """Headline figures of the charged vs. due comparison over a short horizon.

    ``fullTermRestitution`` compares the two schedules over the whole term
    with every band, correction and charge applied. ``closedFormReduction``
    is the quick closed-form figure instead: it assumes the first period's
    contract rate holds for the whole term under ``amortizationSystem``
    (``SAC`` by default, or ``PRICE``).
    """
    settings = settings or Settings()
    params, market_rate = parse_loan_request(payload, settings)
    market_rate = _market_rate_required(market_rate)
    mode = parse_restitution_mode(payload, settings)
    system = _amortization_system(payload.get("amortizationSystem"))
    full_term = replace(params, horizon=None)
    if params.horizon is None:
        params.horizon = min(settings.preview_horizon, params.total_installments)
    charged, due = build_scenarios(params, market_rate)
    comparison = compare(charged, due, mode)
    if params.horizon >= params.total_installments:
        full_comparison = comparison
    else:
        full_comparison = compare(*build_scenarios(full_term, market_rate), mode)
    reduction = estimate_savings(
        params.principal, comparison.contract_rate, market_rate, params.total_installments, system
    )
    logger.debug("preview over %d months: restitution %s", params.horizon, comparison.total_restitution)
    return {
        "contractRateMonthly": str(comparison.contract_rate),
        "contractRateAnnual": str(_annual(comparison.contract_rate)),
        "marketRateMonthly": str(market_rate),
        "marketRateAnnual": str(_annual(market_rate)),
        "rateSpreadPercentagePoints": str(comparison.rate_spread_pp),
        "totalPaidCharged": str(comparison.total_charged),
        "totalDueAtMarketRate": str(comparison.total_due),
        "totalRestitution": str(comparison.total_restitution),
        "restitutionMode": mode.value,
        "totalCredit": str(comparison.total_credit),
        "fullTermRestitution": str(full_comparison.total_restitution),
        "amortizationSystem": system,
        "closedFormReduction": str(quantize_money(reduction)),
        "horizonMonths": params.horizon,
        "negativeBalanceInstallments": charged.negative_balance_installments,
        "formatted": {
            "contractRateMonthly": format_percent(comparison.contract_rate),
            "contractRateAnnual": format_percent(_annual(comparison.contract_rate)),
            "marketRateMonthly": format_percent(market_rate),
            "marketRateAnnual": format_percent(_annual(market_rate)),
            "rateSpreadPercentagePoints": format_pp(comparison.rate_spread_pp),
            "totalPaidCharged": format_currency(comparison.total_charged),
            "totalDueAtMarketRate": format_currency(comparison.total_due),
            "totalRestitution": format_currency(comparison.total_restitution),
            "totalCredit": format_currency(comparison.total_credit),
            "fullTermRestitution": format_currency(full_comparison.total_restitution),
            "closedFormReduction": format_currency(reduction),
        },
    }


def full_report(
    payload: Mapping[str, Any], which_table: str = "charged", settings: Optional[Settings] = None
) -> Dict[str, Any]:
    """Both schedules, their comparison and the cards shown on the report.

    ``which_table`` selects the table returned under ``table``: ``charged``,
    ``due``, ``comparative`` or ``compensation`` (the month-by-month offset of
    overcharges against the debt, credited once or twice per
    ``restitutionMode``).
    """
    settings = settings or Settings()
    which_table = (which_table or "charged").lower()
    if which_table not in WHICH_TABLES:
        raise ValidationError(
            f"Unknown table {which_table!r}", code="INVALID_TABLE", details={"allowed": list(WHICH_TABLES)}
        )
    params, market_rate = parse_loan_request(payload, settings)
    mode = parse_restitution_mode(payload, settings)
    charged, due = build_scenarios(params, _market_rate_required(market_rate))
    comparison = compare(charged, due, mode)
    compensation = compensate(charged, due, mode)
    restitution = serialize_compensation(compensation)

    if which_table == "due":
        table = serialize_scenario(due)["lines"]
        source = due
    elif which_table == "comparative":
        table = serialize_comparison(comparison)
        source = charged
    elif which_table == "compensation":
        table = restitution["lines"]
        source = charged
    else:
        table = serialize_scenario(charged)["lines"]
        source = charged

    cards = {
        "principal": params.principal,
        "totalInterest": source.totals.total_interest,
        "totalCharges": source.totals.total_charges,
        "totalPaid": source.totals.total_paid,
        "totalRestitution": comparison.total_restitution,
        "totalCredit": comparison.total_credit,
    }
    rates = {
        "contractRateMonthly": comparison.contract_rate,
        "marketRateMonthly": comparison.market_rate,
        "rateSpreadPercentagePoints": comparison.rate_spread_pp,
    }
    return {
        "whichTable": which_table,
        "table": table,
        "cards": {key: str(value) for key, value in cards.items()},
        "rates": {key: str(value) for key, value in rates.items()},
        "restitution": {key: value for key, value in restitution.items() if key != "lines"},
        "negativeBalanceInstallments": source.negative_balance_installments,
        "formatted": {
            "cards": {key: format_currency(value) for key, value in cards.items()},
            "rates": {
                "contractRateMonthly": format_percent(comparison.contract_rate),
                "marketRateMonthly": format_percent(comparison.market_rate),
                "rateSpreadPercentagePoints": format_pp(comparison.rate_spread_pp),
            },
        },
    }


def reconcile(payload: Mapping[str, Any], settings: Optional[Settings] = None) -> Dict[str, Any]:
    """Regenerate the requested schedule and reconcile it with payment history.

    The payload carries the loan request under ``loan``, the scenario to
    reconcile (``charged`` by default), ``paymentEvents`` and an optional
    ``fromInstallment``. The events are echoed back as parsed.
    """
    if not isinstance(payload, Mapping):
        raise _malformed("Request must be an object")
    loan = _require(payload, "loan")
    kind_raw = str(payload.get("scenario") or ScenarioKind.CHARGED.value).lower()
    try:
        kind = ScenarioKind(kind_raw)
    except ValueError as exc:
        raise _malformed(f"Unknown scenario {kind_raw!r}", field="scenario") from exc

    params, market_rate = parse_loan_request(loan, settings)
    events = parse_payment_events(_list(payload, "paymentEvents"))
    from_raw = payload.get("fromInstallment")
    from_installment = None if from_raw in (None, "") else _int(from_raw, "fromInstallment")

    if kind is ScenarioKind.DUE:
        _, original = build_scenarios(params, _market_rate_required(market_rate))
    else:
        original = build_charged_scenario(params)
    revised = recalculate(original, events, from_installment)
    result = serialize_scenario(revised)
    result["originalTotals"] = serialize_scenario(original)["totals"]
    result["paymentBalanceDelta"] = str(payment_balance_delta(events, original))
    result["paymentEvents"] = [serialize_event(event) for event in events]
    return result
