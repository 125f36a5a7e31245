"""Command-line interface for the restitution calculator.

This module uses the ``click`` library to implement a multi-command
interface. Users can print the charged or due schedule, a quick analysis of
the restitution, a full report table or a schedule reconciled with real
payment history. Loans are described either with options or with a JSON
request file; results can be printed to the terminal or exported to
JSON/CSV files.
"""

from __future__ import annotations

import csv
import json
import logging
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import click

from .comparison import compare, compensate
from .config import Settings, load_settings
from .data_models import DEFAULT_INTEREST, DFI, LATE_FEE, MIP, TCA
from .engine import build_charged_scenario, build_scenarios
from .errors import CalculationError
from .formatter import print_comparison, print_compensation, print_scenario_totals, print_schedule, print_summary
from .price import SYSTEMS
from .service import (
    full_report,
    parse_loan_request,
    parse_restitution_mode,
    quick_preview,
    reconcile,
    serialize_scenario,
)
from .utils import decimal_from_str, parse_date

logger = logging.getLogger(__name__)

KNOWN_CHARGES = (MIP, DFI, TCA, LATE_FEE, DEFAULT_INTEREST)

CSV_COLUMNS = [
    "installment",
    "dueDate",
    "rate",
    "openingBalance",
    "balanceAdjustment",
    "interest",
    "amortization",
    "installmentAmount",
    "chargesTotal",
    "totalDue",
    "extraAmortization",
    "capitalizedShortfall",
    "correctionFactor",
    "closingBalance",
]


def parse_amount(value: str) -> Decimal:
    """Parse a monetary string with optional suffixes.

    Accepts plain decimals ("302400", "302.400,00") and shorthand with
    ``k``/``m`` suffixes (e.g., "302.4k" meaning 302_400).
    """
    value = value.strip().lower()
    factor = Decimal(1)
    if value.endswith("k"):
        factor = Decimal(1_000)
        value = value[:-1]
    elif value.endswith("m"):
        factor = Decimal(1_000_000)
        value = value[:-1]
    try:
        return decimal_from_str(value) * factor
    except ValueError:
        raise click.BadParameter(f"Invalid amount: {value}")


def parse_rate(value: str) -> Decimal:
    """Parse a monthly rate given as a fraction ("0.0062") or a percentage ("0.62%")."""
    value = value.strip()
    percent = value.endswith("%")
    if percent:
        value = value[:-1]
    try:
        rate = decimal_from_str(value)
    except ValueError:
        raise click.BadParameter(f"Invalid rate: {value}")
    return rate / 100 if percent else rate


def parse_band_strings(values: Tuple[str, ...]) -> List[Dict[str, str]]:
    bands = []
    for item in values:
        parts = item.split(":")
        if len(parts) != 3:
            raise click.BadParameter(f"Rate band must be in YYYY-MM-DD:YYYY-MM-DD:RATE format; got {item}")
        start, end, rate = parts
        try:
            start_dt, end_dt = parse_date(start), parse_date(end)
        except ValueError as exc:
            raise click.BadParameter(str(exc))
        bands.append({"start": start_dt.isoformat(), "end": end_dt.isoformat(), "monthlyRate": str(parse_rate(rate))})
    return bands


def parse_correction_strings(values: Tuple[str, ...]) -> List[Dict[str, str]]:
    points = []
    for item in values:
        parts = item.split(":")
        if len(parts) != 2:
            raise click.BadParameter(f"Correction must be in YYYY-MM-DD:FACTOR format; got {item}")
        day, factor = parts
        try:
            points.append({"date": parse_date(day).isoformat(), "factor": str(decimal_from_str(factor))})
        except ValueError as exc:
            raise click.BadParameter(str(exc))
    return points


def parse_charge_strings(values: Tuple[str, ...]) -> Dict[str, str]:
    components: Dict[str, str] = {}
    for item in values:
        parts = item.split(":")
        if len(parts) != 2 or not parts[0].strip():
            raise click.BadParameter(f"Charge must be in NAME:AMOUNT format; got {item}")
        name, amount = parts[0].strip().lower(), parts[1]
        if name not in KNOWN_CHARGES:
            raise click.BadParameter(f"Unknown charge {name!r}; use one of {', '.join(KNOWN_CHARGES)}")
        components[name] = str(parse_amount(amount))
    return components


def build_request_from_options(
    principal: Optional[str],
    term: Optional[int],
    first_due: Optional[str],
    band: Tuple[str, ...],
    contract_rate: Optional[str],
    market_rate: Optional[str],
    correction: Tuple[str, ...],
    charge: Tuple[str, ...],
    horizon: Optional[int],
    recurring_charges: bool,
    contract_annual_rate: Optional[str] = None,
    restitution_mode: Optional[str] = None,
    amortization_system: Optional[str] = None,
) -> Dict[str, Any]:
    """Turn command-line options into the same request mapping a JSON file holds."""
    for name, value in (("--principal", principal), ("--term", term), ("--first-due", first_due)):
        if value is None:
            raise click.BadParameter(f"Missing option {name} (or pass --request)")
    if not band and not contract_rate and not contract_annual_rate:
        raise click.BadParameter("Provide at least one --band, a --contract-rate or a --contract-annual-rate")
    try:
        first_due_dt = parse_date(first_due)
    except ValueError as exc:
        raise click.BadParameter(str(exc))
    request: Dict[str, Any] = {
        "principal": str(parse_amount(principal)),
        "totalInstallments": term,
        "firstDueDate": first_due_dt.isoformat(),
        "rateBands": parse_band_strings(band),
        "correctionSeries": parse_correction_strings(correction),
        "chargeMode": "recurring" if recurring_charges else None,
    }
    if contract_rate:
        request["contractMonthlyRate"] = str(parse_rate(contract_rate))
    elif contract_annual_rate:
        request["contractAnnualRate"] = str(parse_rate(contract_annual_rate))
    if market_rate:
        request["marketMonthlyRate"] = str(parse_rate(market_rate))
    if charge:
        request["ancillaryCharges"] = [{"date": first_due_dt.isoformat(), "components": parse_charge_strings(charge)}]
    if horizon is not None:
        request["horizonMonths"] = horizon
    if restitution_mode:
        request["restitutionMode"] = restitution_mode
    if amortization_system:
        request["amortizationSystem"] = amortization_system
    return request


def load_request(path: str) -> Dict[str, Any]:
    try:
        with Path(path).open("r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise click.BadParameter(f"{path} is not valid JSON: {exc}")
    if not isinstance(data, dict):
        raise click.BadParameter(f"{path} must contain a JSON object")
    return data


def export_to_json(path: Path, data: Dict[str, Any]) -> None:
    """Export a response mapping to a JSON file."""
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def export_to_csv(path: Path, lines: List[Dict[str, Any]]) -> None:
    """Export serialized schedule lines to a CSV file."""
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS, extrasaction="ignore")
        writer.writeheader()
        for line in lines:
            writer.writerow(line)


def _write_output(output: str, data: Dict[str, Any], lines: Optional[List[Dict[str, Any]]] = None) -> None:
    path = Path(output)
    suffix = path.suffix.lower()
    if suffix == ".json":
        export_to_json(path, data)
    elif suffix == ".csv" and lines is not None:
        export_to_csv(path, lines)
    else:
        allowed = ".json or .csv" if lines is not None else ".json"
        raise click.BadParameter(f"Unsupported output format; use {allowed}")
    click.echo(f"Exported to {path}")


def _request(ctx_options: Dict[str, Any], request_path: Optional[str]) -> Dict[str, Any]:
    if request_path:
        return load_request(request_path)
    return build_request_from_options(**ctx_options)


def loan_options(func: Callable) -> Callable:
    """Options describing a loan, shared by the schedule/preview/report commands."""
    options = [
        click.option("--request", "request_path", type=click.Path(exists=True, dir_okay=False), help="JSON request file; replaces the loan options"),
        click.option("--principal", "-p", "principal", help="Financed amount"),
        click.option("--term", "-t", "term", type=int, help="Total installments"),
        click.option("--first-due", "-s", "first_due", help="First due date (YYYY-MM-DD)"),
        click.option("--band", "band", multiple=True, help="Rate band in START:END:RATE format (END inclusive)"),
        click.option("--contract-rate", "contract_rate", help="Flat contract monthly rate (0.0056 or 0.56%)"),
        click.option("--contract-annual-rate", "contract_annual_rate", help="Flat contract effective annual rate (0.07 or 7%)"),
        click.option("--market-rate", "-m", "market_rate", help="Market monthly rate (0.0062 or 0.62%)"),
        click.option("--correction", "correction", multiple=True, help="Correction point in YYYY-MM-DD:FACTOR format"),
        click.option("--charge", "charge", multiple=True, help="Ancillary charge in NAME:AMOUNT format, e.g. mip:62.54"),
        click.option("--horizon", "horizon", type=int, help="Limit the schedule to the first N installments"),
        click.option("--recurring-charges", "recurring_charges", is_flag=True, help="Bill the charges with every installment"),
        click.option("--restitution-mode", "restitution_mode", type=click.Choice(["simple", "double"]), help="Credit overcharges once or twice"),
        click.option("--system", "amortization_system", type=click.Choice(SYSTEMS, case_sensitive=False), help="Amortization system for the closed-form estimate"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _split_options(kwargs: Dict[str, Any]) -> Tuple[Optional[str], Dict[str, Any]]:
    request_path = kwargs.pop("request_path")
    return request_path, kwargs


def _fail(exc: CalculationError) -> click.ClickException:
    logger.debug("calculation failed: %s", exc.to_dict())
    return click.ClickException(f"[{exc.code}] {exc.message}")


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log calculation details")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Loan revision calculator: charged vs. due SAC schedules and restitution."""
    try:
        settings = load_settings()
    except CalculationError as exc:
        raise _fail(exc)
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = settings


@cli.command()
@loan_options
@click.option("--scenario", "scenario", type=click.Choice(["charged", "due"]), default="charged", help="Which schedule to print")
@click.option("--output", "output", type=str, help="Output file path (.json or .csv)")
@click.pass_obj
def schedule(settings: Settings, scenario: str, output: Optional[str], **kwargs: Any) -> None:
    """Compute and print the charged or due amortization schedule."""
    request_path, options = _split_options(kwargs)
    payload = _request(options, request_path)
    try:
        params, market_rate = parse_loan_request(payload, settings)
        if scenario == "due":
            if market_rate is None:
                raise click.BadParameter("The due schedule needs a market rate")
            _, result = build_scenarios(params, market_rate)
        else:
            result = build_charged_scenario(params)
    except CalculationError as exc:
        raise _fail(exc)

    data = serialize_scenario(result)
    if output:
        _write_output(output, data, data["lines"])
        return
    print_scenario_totals(result)
    max_rows = settings.max_rows
    if len(result.lines) > max_rows:
        click.echo(f"Schedule has {len(result.lines)} rows; showing first {max_rows} rows.")
    print_schedule(result.lines[:max_rows])


@cli.command()
@loan_options
@click.option("--output", "output", type=str, help="Output file path (.json)")
@click.pass_obj
def preview(settings: Settings, output: Optional[str], **kwargs: Any) -> None:
    """Quick analysis: headline rates, totals and restitution."""
    request_path, options = _split_options(kwargs)
    payload = _request(options, request_path)
    try:
        summary = quick_preview(payload, settings)
    except CalculationError as exc:
        raise _fail(exc)
    if output:
        _write_output(output, summary)
    else:
        print_summary(summary)


@cli.command()
@loan_options
@click.option("--table", "which_table", type=click.Choice(["charged", "due", "comparative", "compensation"]), default="comparative", help="Table to include")
@click.option("--output", "output", type=str, help="Output file path (.json)")
@click.pass_obj
def report(settings: Settings, which_table: str, output: Optional[str], **kwargs: Any) -> None:
    """Full report: one schedule table plus summary cards."""
    request_path, options = _split_options(kwargs)
    payload = _request(options, request_path)
    try:
        if output:
            _write_output(output, full_report(payload, which_table, settings))
            return
        params, market_rate = parse_loan_request(payload, settings)
        if market_rate is None:
            raise click.BadParameter("The report needs a market rate")
        mode = parse_restitution_mode(payload, settings)
        charged, due = build_scenarios(params, market_rate)
        if which_table == "compensation":
            print_compensation(compensate(charged, due, mode))
            return
    except CalculationError as exc:
        raise _fail(exc)
    if which_table == "comparative":
        print_comparison(compare(charged, due, mode))
        return
    result = due if which_table == "due" else charged
    print_scenario_totals(result)
    print_schedule(result.lines[: settings.max_rows])


@cli.command("reconcile")
@click.option("--request", "request_path", required=True, type=click.Path(exists=True, dir_okay=False), help="JSON file with loan, paymentEvents and optional fromInstallment")
@click.option("--from-installment", "from_installment", type=int, help="Recalculate from this installment onwards")
@click.option("--scenario", "scenario", type=click.Choice(["charged", "due"]), help="Schedule to reconcile (default: charged)")
@click.option("--output", "output", type=str, help="Output file path (.json or .csv)")
@click.pass_obj
def reconcile_command(
    settings: Settings,
    request_path: str,
    from_installment: Optional[int],
    scenario: Optional[str],
    output: Optional[str],
) -> None:
    """Re-derive the schedule from real payment history."""
    payload = load_request(request_path)
    if from_installment is not None:
        payload["fromInstallment"] = from_installment
    if scenario:
        payload["scenario"] = scenario
    try:
        data = reconcile(payload, settings)
    except CalculationError as exc:
        raise _fail(exc)
    if output:
        _write_output(output, data, data["lines"])
        return
    click.echo(f"Total paid (original) : {data['originalTotals']['totalPaid']}")
    click.echo(f"Total paid (revised)  : {data['totals']['totalPaid']}")
    click.echo(f"Balance delta         : {data['paymentBalanceDelta']}")
    for line in data["lines"][: settings.max_rows]:
        click.echo(
            "\t".join(
                [str(line["installment"]), line["dueDate"], line["totalDue"], f"{Decimal(line['closingBalance']):.2f}"]
            )
        )


if __name__ == "__main__":
    cli()
