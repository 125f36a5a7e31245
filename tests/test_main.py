import csv
import json

import click
import pytest
from click.testing import CliRunner

from revisional_calc.main import (
    build_request_from_options,
    cli,
    parse_amount,
    parse_band_strings,
    parse_charge_strings,
    parse_rate,
)

SMALL_LOAN = ["-p", "120k", "-t", "12", "-s", "2024-01-10", "--contract-rate", "1%", "-m", "0.8%"]


@pytest.fixture
def runner(monkeypatch):
    for name in (
        "REVISIONAL_PREVIEW_HORIZON",
        "REVISIONAL_CHARGE_MODE",
        "REVISIONAL_RESTITUTION_MODE",
        "REVISIONAL_MAX_ROWS",
        "REVISIONAL_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    return CliRunner()


def test_option_parsers():
    assert str(parse_amount("302.4k")) == "302400.0"
    assert parse_amount("302.400,00") == 302400
    assert str(parse_rate("0.62%")) == "0.0062"
    assert str(parse_rate("0.0062")) == "0.0062"
    assert parse_band_strings(("2018-06-21:2020-06-20:0.75%",)) == [
        {"start": "2018-06-21", "end": "2020-06-20", "monthlyRate": "0.0075"}
    ]
    assert parse_charge_strings(("MIP:62,54", "tca:25")) == {"mip": "62.54", "tca": "25"}
    with pytest.raises(click.BadParameter):
        parse_band_strings(("2018-06-21:0.75%",))
    with pytest.raises(click.BadParameter):
        parse_charge_strings(("62.54",))
    with pytest.raises(click.BadParameter):
        parse_charge_strings(("foo:1",))
    assert parse_charge_strings(("Late_Fee:10",)) == {"late_fee": "10"}


def test_options_require_a_rate():
    with pytest.raises(click.BadParameter):
        build_request_from_options("1000", 12, "2024-01-10", (), None, None, (), (), None, False)


def test_preview_command(runner):
    result = runner.invoke(cli, ["preview", *SMALL_LOAN])
    assert result.exit_code == 0, result.output
    assert "Contract rate (a.m.)   : 1,0000%" in result.output
    assert "Restitution            : R$ 1.560,00" in result.output


def test_preview_of_the_contract_with_charges(runner):
    args = [
        "preview",
        "-p", "302400",
        "-t", "360",
        "-s", "2018-06-21",
        "--contract-rate", "0.5654145387%",
        "-m", "0.62%",
        "--charge", "mip:62.54",
        "--charge", "dfi:77.66",
        "--charge", "tca:25.00",
    ]
    result = runner.invoke(cli, args)
    assert result.exit_code == 0, result.output
    assert "0,5654%" in result.output
    assert "Horizon (months)       : 12" in result.output


def test_schedule_exports(runner, tmp_path):
    csv_path = tmp_path / "schedule.csv"
    result = runner.invoke(cli, ["schedule", *SMALL_LOAN, "--output", str(csv_path)])
    assert result.exit_code == 0, result.output
    with csv_path.open(newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    assert len(rows) == 12
    assert rows[0]["totalDue"] == "11200.00"

    json_path = tmp_path / "due.json"
    result = runner.invoke(cli, ["schedule", *SMALL_LOAN, "--scenario", "due", "--output", str(json_path)])
    assert result.exit_code == 0, result.output
    data = json.loads(json_path.read_text(encoding="utf-8"))
    assert data["kind"] == "due"
    assert data["lines"][0]["totalDue"] == "10960.00"


def test_schedule_printing_is_truncated(runner):
    result = runner.invoke(cli, ["schedule", *SMALL_LOAN], env={"REVISIONAL_MAX_ROWS": "5"})
    assert result.exit_code == 0, result.output
    assert "showing first 5 rows" in result.output


def test_report_command(runner, tmp_path):
    result = runner.invoke(cli, ["report", *SMALL_LOAN])
    assert result.exit_code == 0, result.output
    assert "Restitution   : R$ 1.560,00" in result.output

    out = tmp_path / "report.json"
    result = runner.invoke(cli, ["report", *SMALL_LOAN, "--table", "due", "--output", str(out)])
    assert result.exit_code == 0, result.output
    assert json.loads(out.read_text(encoding="utf-8"))["whichTable"] == "due"


def test_calculation_errors_exit_with_code(runner):
    args = [
        "schedule",
        "-p", "302400",
        "-t", "360",
        "-s", "2018-06-21",
        "--band", "2018-06-21:2020-06-20:0.75%",
        "--band", "2020-06-22:2048-06-20:0.56%",
    ]
    result = runner.invoke(cli, args)
    assert result.exit_code == 1
    assert "[RATE_BAND_GAP]" in result.output

    result = runner.invoke(cli, ["preview", *SMALL_LOAN, "--horizon", "0"])
    assert result.exit_code == 1
    assert "[INVALID_HORIZON]" in result.output


def test_bad_options_are_usage_errors(runner):
    result = runner.invoke(cli, ["schedule", "-p", "1000", "-t", "12", "-s", "2024-01-10", "--band", "oops"])
    assert result.exit_code == 2
    result = runner.invoke(cli, ["schedule", *SMALL_LOAN, "--output", "schedule.xlsx"])
    assert result.exit_code == 2


def test_reconcile_command(runner, tmp_path):
    request = {
        "loan": {
            "principal": "120000",
            "totalInstallments": 12,
            "firstDueDate": "2024-01-10",
            "contractMonthlyRate": "0.01",
        },
        "paymentEvents": [
            {"installment": 1, "paymentDate": "2024-01-10", "amountPaid": "11200.00"},
            {"installment": 2, "amountPaid": "0", "status": "open"},
        ],
    }
    path = tmp_path / "history.json"
    path.write_text(json.dumps(request), encoding="utf-8")
    result = runner.invoke(cli, ["reconcile", "--request", str(path)])
    assert result.exit_code == 0, result.output
    assert "Balance delta         : 11100.00" in result.output

    out = tmp_path / "revised.csv"
    result = runner.invoke(cli, ["reconcile", "--request", str(path), "--output", str(out)])
    assert result.exit_code == 0, result.output
    with out.open(newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    assert rows[1]["capitalizedShortfall"] == "11100.00"

    result = runner.invoke(cli, ["reconcile", "--request", str(path), "--from-installment", "14"])
    assert result.exit_code == 1
    assert "[INVALID_FROM_INSTALLMENT]" in result.output


def test_contract_annual_rate_option(runner):
    request = build_request_from_options(
        "120000", 12, "2024-01-10", (), None, "0.8%", (), (), None, False, contract_annual_rate="7%"
    )
    assert request["contractAnnualRate"] == "0.07"
    assert "contractMonthlyRate" not in request

    args = ["preview", "-p", "120k", "-t", "12", "-s", "2024-01-10", "--contract-annual-rate", "7%", "-m", "0.8%"]
    result = runner.invoke(cli, args)
    assert result.exit_code == 0, result.output
    assert "Contract rate (a.m.)   : 0,5654%" in result.output
    assert "Contract rate (a.a.)   : 7,0000%" in result.output


def test_preview_closed_form_system(runner):
    result = runner.invoke(cli, ["preview", *SMALL_LOAN, "--system", "price"])
    assert result.exit_code == 0, result.output
    assert "Closed form (PRICE)    : R$ 1.611,11" in result.output
    assert "Full-term restitution  : R$ 1.560,00" in result.output


def test_report_compensation_table(runner, tmp_path):
    result = runner.invoke(cli, ["report", *SMALL_LOAN, "--table", "compensation", "--restitution-mode", "double"])
    assert result.exit_code == 0, result.output
    assert "Compensation (double)" in result.output
    assert "Paid off at   : installment 12" in result.output

    result = runner.invoke(cli, ["report", *SMALL_LOAN], env={"REVISIONAL_RESTITUTION_MODE": "double"})
    assert result.exit_code == 0, result.output
    assert "Credit        : R$ 3.120,00 (double)" in result.output

    out = tmp_path / "compensation.json"
    result = runner.invoke(cli, ["report", *SMALL_LOAN, "--table", "compensation", "--output", str(out)])
    assert result.exit_code == 0, result.output
    data = json.loads(out.read_text(encoding="utf-8"))
    assert data["restitution"]["mode"] == "simple"
    assert data["restitution"]["payoffInstallment"] == 12
