import logging
from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from revisional_calc.data_models import (
    AncillaryCharge,
    ChargeMode,
    CorrectionPoint,
    PaymentEvent,
    RateBand,
    ScenarioKind,
)
from revisional_calc.engine import (
    build_charged_scenario,
    build_due_scenario,
    build_scenarios,
    compute_schedule,
    constant_amortization,
)
from revisional_calc.errors import ConfigurationError, ValidationError
from revisional_calc.price import sac_total_interest

MARKET_RATE = Decimal("0.0062")
TOLERANCE = Decimal("1e-18")


def test_first_period_of_the_contract(contract_params):
    scenario = build_charged_scenario(contract_params)
    first = scenario.lines[0]
    assert len(scenario.lines) == 360
    assert first.due_date == date(2018, 6, 21)
    assert first.amortization == Decimal("840")
    assert abs(first.interest - Decimal("1709.81")) <= Decimal("0.01")
    assert first.charges_total == Decimal("165.20")
    assert first.total_due == Decimal("2715.01")
    assert first.correction_factor == Decimal("1")
    assert first.closing_balance == Decimal("301560.00")


def test_single_occurrence_charges_only_bill_the_first_installment(contract_params):
    scenario = build_charged_scenario(replace(contract_params, horizon=3))
    assert [line.charges_total for line in scenario.lines] == [Decimal("165.20"), 0, 0]
    assert scenario.totals.total_charges == Decimal("165.20")


def test_due_scenario_uses_market_rate_without_charges(contract_params):
    due = build_due_scenario(contract_params, MARKET_RATE)
    assert due.kind is ScenarioKind.DUE
    assert {line.rate for line in due.lines} == {MARKET_RATE}
    assert all(line.charges_total == 0 for line in due.lines)
    assert due.lines[0].total_due == Decimal("2714.88")


def test_total_interest_matches_sac_closed_form(small_params):
    scenario = compute_schedule(small_params)
    assert scenario.totals.total_interest == Decimal("7800")
    assert scenario.totals.total_interest == sac_total_interest(Decimal("120000"), Decimal("0.01"), 12)
    assert scenario.totals.total_paid == Decimal("127800.00")


def test_amortization_is_constant_and_installments_fall_by_a_fixed_step(small_params):
    lines = compute_schedule(small_params).lines
    assert {line.amortization for line in lines} == {Decimal("10000")}
    steps = {lines[i].installment_amount - lines[i + 1].installment_amount for i in range(len(lines) - 1)}
    assert steps == {Decimal("100")}


def test_amortization_sums_to_principal_when_it_does_not_divide_evenly(small_params):
    params = replace(small_params, principal=Decimal("100000"), total_installments=7)
    scenario = compute_schedule(params)
    assert abs(scenario.totals.total_amortization - Decimal("100000")) <= TOLERANCE
    assert abs(scenario.lines[-1].closing_balance) <= TOLERANCE
    assert constant_amortization(Decimal("100000"), 7, 1) == Decimal("100000") / Decimal(7)


def test_closing_balance_carries_into_next_opening(contract_params):
    params = replace(
        contract_params,
        correction_series=[
            CorrectionPoint(date(2018, 7, 1), Decimal("1.001195")),
            CorrectionPoint(date(2018, 8, 1), Decimal("1.000815")),
        ],
    )
    lines = compute_schedule(params).lines
    for previous, current in zip(lines, lines[1:]):
        assert current.opening_balance == previous.closing_balance


def test_correction_applies_after_amortization_from_second_installment(small_params):
    params = replace(
        small_params,
        correction_series=[
            CorrectionPoint(date(2024, 1, 1), Decimal("1.01")),
            CorrectionPoint(date(2024, 2, 1), Decimal("1.002")),
        ],
    )
    lines = compute_schedule(params).lines
    assert lines[0].correction_factor == Decimal("1")
    assert lines[0].closing_balance == Decimal("110000")
    assert lines[1].correction_factor == Decimal("1.002")
    assert lines[1].closing_balance == Decimal("100200")
    assert lines[2].correction_factor == Decimal("1")


def test_rate_changes_at_band_boundary(small_params):
    params = replace(
        small_params,
        rate_bands=[
            RateBand(date(2024, 1, 10), date(2024, 6, 30), Decimal("0.01")),
            RateBand(date(2024, 7, 1), date(2030, 1, 1), Decimal("0.005")),
        ],
    )
    lines = compute_schedule(params).lines
    assert lines[5].rate == Decimal("0.01")
    assert lines[6].rate == Decimal("0.005")
    assert lines[6].interest == Decimal("60000") * Decimal("0.005")


def test_recurring_charges_bill_every_installment(small_params):
    params = replace(
        small_params,
        charge_mode=ChargeMode.RECURRING,
        ancillary_charges=[
            AncillaryCharge(date(2024, 1, 10), {"mip": Decimal("50"), "tca": Decimal("25")}),
            AncillaryCharge(date(2024, 6, 5), {"mip": Decimal("45"), "tca": Decimal("25")}),
        ],
    )
    lines = compute_schedule(params).lines
    assert lines[0].charges_total == Decimal("75")
    assert lines[4].charges_total == Decimal("75")
    assert lines[5].charges_total == Decimal("70")
    assert lines[11].charges_total == Decimal("70")
    assert lines[0].total_due == Decimal("11275.00")


def test_horizon_limits_lines_but_not_amortization(small_params):
    scenario = compute_schedule(replace(small_params, horizon=3))
    assert [line.installment for line in scenario.lines] == [1, 2, 3]
    assert scenario.lines[0].amortization == Decimal("10000")
    assert scenario.lines[-1].closing_balance == Decimal("90000")


def test_only_total_due_is_rounded(contract_params):
    first = build_charged_scenario(contract_params).lines[0]
    assert first.total_due == first.total_due.quantize(Decimal("0.01"))
    assert first.interest != first.interest.quantize(Decimal("0.01"))


def test_negative_balance_is_reported_not_raised(small_params, caplog):
    payments = {1: PaymentEvent(1, date(2024, 1, 10), Decimal("11200.00"), extra_amortization=Decimal("115000"))}
    with caplog.at_level(logging.WARNING, logger="revisional_calc.engine"):
        scenario = compute_schedule(small_params, payments=payments)
    assert scenario.lines[0].closing_balance == Decimal("-5000")
    assert scenario.negative_balance_installments[0] == 1
    assert scenario.lines[0].overpaid
    assert "negative balance" in caplog.text


def test_invalid_input_yields_no_schedule(small_params):
    with pytest.raises(ValidationError) as excinfo:
        compute_schedule(replace(small_params, horizon=0))
    assert excinfo.value.code == "INVALID_HORIZON"
    with pytest.raises(ValidationError):
        compute_schedule(replace(small_params, principal=Decimal("0")))
    with pytest.raises(ConfigurationError):
        compute_schedule(
            replace(small_params, rate_bands=[RateBand(date(2024, 1, 10), date(2024, 6, 30), Decimal("0.01"))])
        )


def test_build_scenarios_validates_market_rate_first(small_params):
    with pytest.raises(ValidationError) as excinfo:
        build_scenarios(small_params, Decimal("2"))
    assert excinfo.value.code == "INVALID_MARKET_RATE"
    charged, due = build_scenarios(small_params, Decimal("0.008"))
    assert charged.kind is ScenarioKind.CHARGED
    assert due.kind is ScenarioKind.DUE
    assert [line.due_date for line in charged.lines] == [line.due_date for line in due.lines]
