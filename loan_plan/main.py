"""Command‑line interface for the loan planner.

This module uses the ``click`` library to implement a multi‑command
interface. Users can compute full amortization schedules, view summaries,
check the balance still open on a given day or compare two loan scenarios.
Results can be printed to the terminal or exported to JSON/CSV files.
"""

from __future__ import annotations

import csv
import json
import logging
import shlex
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TextIO, Tuple

import click

from .data_models import (
    PAYMENT_FREQUENCIES,
    AmortizationKind,
    ExtraRepayment,
    InterestKind,
    LoanContract,
    ScheduleLineItem,
)
from .engine import compare_with_baseline, compute_schedule, summarize_schedule
from .exceptions import InvalidContractError
from .formatter import (
    print_comparison,
    print_period_totals,
    print_schedule,
    print_summary,
    serialize_schedule,
)
from .reporting import filter_schedule, outstanding_balance, period_totals, repayment_progress
from .utils import configure_logging, decimal_from_str, parse_date

logger = logging.getLogger(__name__)

# Contract fields mapped to the options that set them, for error messages.
OPTION_HINTS = {
    "principal": "'--principal'",
    "interest_rate": "'--rate'",
    "interest_kind": "'--interest-kind'",
    "amortization_kind": "'--type'",
    "payment_frequency_months": "'--frequency'",
    "start_date": "'--start-date'",
    "end_date": "'--end-date'",
    "extra_repayments": "'--extra'",
}


def parse_amount(value: str, param_hint: Optional[str] = None) -> Decimal:
    """Parse a numeric string with optional suffixes.

    Accepts plain numbers ("500000") and shorthand with ``k``/``m`` suffixes
    (e.g., "500k" meaning 500_000).
    """
    value = value.strip().lower()
    value = value.replace(",", "")
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
        raise click.BadParameter(f"Invalid amount: {value}", param_hint=param_hint)


def parse_percent(value: str, param_hint: Optional[str] = None) -> Decimal:
    """Parse a percentage string such as "6", "6.5" or "6.5%"."""
    value = value.strip()
    if value.endswith("%"):
        value = value[:-1]
    try:
        return decimal_from_str(value)
    except ValueError:
        raise click.BadParameter(f"Invalid percentage: {value}", param_hint=param_hint)


def parse_date_option(value: str, name: str) -> date:
    try:
        return parse_date(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint=name)


def parse_extra_repayment_strings(values: Tuple[str, ...]) -> List[ExtraRepayment]:
    repayments: List[ExtraRepayment] = []
    for item in values:
        parts = item.rsplit(":", 1)
        if len(parts) != 2:
            raise click.BadParameter(
                f"Extra repayment must be in YYYY-MM-DD:AMOUNT format; got {item}",
                param_hint="'--extra'",
            )
        when, amount = parts
        repayments.append(
            ExtraRepayment(date=parse_date_option(when, "'--extra'"), amount=parse_amount(amount, "'--extra'"))
        )
    return repayments


def build_contract_from_options(
    principal: str,
    rate: str,
    interest_kind: str,
    amortization: str,
    frequency: str,
    start_date: str,
    end_date: str,
    extra: Tuple[str, ...],
) -> LoanContract:
    kind = InterestKind(interest_kind)
    # A fixed interest is a money amount, so it accepts the k/m shorthand.
    if kind is InterestKind.FIXED_TOTAL:
        interest_rate = parse_amount(rate, "'--rate'")
    else:
        interest_rate = parse_percent(rate, "'--rate'")
    return LoanContract(
        principal=parse_amount(principal, "'--principal'"),
        interest_rate=interest_rate,
        interest_kind=kind,
        amortization_kind=AmortizationKind(amortization.lower()),
        payment_frequency_months=int(frequency),
        start_date=parse_date_option(start_date, "'--start-date'"),
        end_date=parse_date_option(end_date, "'--end-date'"),
        extra_repayments=tuple(parse_extra_repayment_strings(extra)),
    )


def run_schedule(contract: LoanContract) -> List[ScheduleLineItem]:
    """Compute a schedule, reporting contract errors as click parameter errors."""
    try:
        return compute_schedule(contract)
    except InvalidContractError as exc:
        raise click.BadParameter(str(exc), param_hint=OPTION_HINTS.get(exc.field, exc.field))


def build_summary(contract: LoanContract, schedule: List[ScheduleLineItem]) -> Dict[str, Any]:
    summary = summarize_schedule(contract, schedule)
    if contract.extra_repayments:
        summary["comparison"] = compare_with_baseline(contract)
    return summary


def export_to_json(path: Path, schedule: List[ScheduleLineItem], summary: Dict[str, Any]) -> None:
    """Export schedule and summary to a JSON file."""
    data = {"summary": summary, "schedule": serialize_schedule(schedule)}
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def write_schedule_csv(handle: TextIO, schedule: List[ScheduleLineItem]) -> None:
    """Write schedule lines as CSV rows to an open text stream."""
    header = ["Period", "Date", "Kind", "Payment", "Interest", "Principal", "Balance"]
    writer = csv.writer(handle)
    writer.writerow(header)
    for row in serialize_schedule(schedule):
        writer.writerow(
            [
                row["period"],
                row["date"],
                row["kind"],
                row["payment"],
                row["interest"],
                row["principal"],
                row["balance"],
            ]
        )


def export_to_csv(path: Path, schedule: List[ScheduleLineItem]) -> None:
    """Export schedule to a CSV file."""
    with path.open("w", newline="", encoding="utf-8") as f:
        write_schedule_csv(f, schedule)


def contract_options(func: Callable) -> Callable:
    """Attach the options describing a loan contract to a command."""
    options = [
        click.option("--principal", "-p", "principal", required=True, help="Loan amount"),
        click.option(
            "--rate",
            "-r",
            "rate",
            required=True,
            help="Interest rate in percent p.a., or the total interest amount with --interest-kind fixed",
        ),
        click.option(
            "--interest-kind",
            "interest_kind",
            type=click.Choice([k.value for k in InterestKind]),
            default=InterestKind.PERCENT_PER_ANNUM.value,
            help="Percent per annum or a fixed total interest amount",
        ),
        click.option(
            "--type",
            "amortization",
            type=click.Choice([k.value for k in AmortizationKind]),
            default=AmortizationKind.ANNUITY.value,
            help="Repayment shape",
        ),
        click.option(
            "--frequency",
            "-f",
            "frequency",
            type=click.Choice([str(m) for m in PAYMENT_FREQUENCIES]),
            default="1",
            help="Months between installments",
        ),
        click.option("--start-date", "-s", "start_date", required=True, help="Contract start (YYYY-MM-DD)"),
        click.option("--end-date", "-e", "end_date", required=True, help="Contract end (YYYY-MM-DD)"),
        click.option("--extra", "extra", multiple=True, help="Extra repayment in YYYY-MM-DD:AMOUNT format"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
@click.option("--log-level", "log_level", default=None, help="Logging level (default: $LOAN_PLAN_LOG_LEVEL or INFO)")
def cli(log_level: Optional[str]) -> None:
    """A loan amortization planner supporting extra repayments."""
    configure_logging(log_level)


@cli.command()
@contract_options
@click.option("--from", "date_from", help="Only show lines dated on or after this day")
@click.option("--to", "date_to", help="Only show lines dated on or before this day")
@click.option("--output", "output", type=str, help="Output file path (.json or .csv)")
def schedule(
    principal: str,
    rate: str,
    interest_kind: str,
    amortization: str,
    frequency: str,
    start_date: str,
    end_date: str,
    extra: Tuple[str, ...],
    date_from: Optional[str],
    date_to: Optional[str],
    output: Optional[str],
) -> None:
    """Compute and print the amortization schedule."""
    contract = build_contract_from_options(
        principal, rate, interest_kind, amortization, frequency, start_date, end_date, extra
    )
    full_schedule = run_schedule(contract)
    lines = filter_schedule(
        full_schedule,
        parse_date_option(date_from, "'--from'") if date_from else None,
        parse_date_option(date_to, "'--to'") if date_to else None,
    )
    logger.debug("Computed %d schedule lines, %d in range", len(full_schedule), len(lines))
    if output:
        path = Path(output)
        if path.suffix.lower() == ".json":
            export_to_json(path, lines, build_summary(contract, full_schedule))
            click.echo(f"Schedule exported to {path}")
        elif path.suffix.lower() == ".csv":
            export_to_csv(path, lines)
            click.echo(f"Schedule exported to {path}")
        else:
            raise click.BadParameter("Unsupported output format; use .json or .csv", param_hint="'--output'")
    else:
        print_schedule(lines)
        print_period_totals(period_totals(lines))


@cli.command()
@contract_options
@click.option("--output", "output", type=str, help="Output file path (.json)")
def summary(
    principal: str,
    rate: str,
    interest_kind: str,
    amortization: str,
    frequency: str,
    start_date: str,
    end_date: str,
    extra: Tuple[str, ...],
    output: Optional[str],
) -> None:
    """Compute and print only the summary metrics for a loan."""
    contract = build_contract_from_options(
        principal, rate, interest_kind, amortization, frequency, start_date, end_date, extra
    )
    summary_data = build_summary(contract, run_schedule(contract))
    if output:
        path = Path(output)
        if path.suffix.lower() != ".json":
            raise click.BadParameter("Summary export must use .json extension", param_hint="'--output'")
        with path.open("w", encoding="utf-8") as f:
            json.dump({"summary": summary_data}, f, indent=2)
        click.echo(f"Summary exported to {path}")
    else:
        print_summary(summary_data)


@cli.command()
@contract_options
@click.option("--as-of", "as_of", help="Day to compute the balance for (default: today)")
@click.option(
    "--manual",
    "manual",
    is_flag=True,
    help="Only recorded extra repayments reduce the balance; scheduled installments are not assumed paid",
)
def balance(
    principal: str,
    rate: str,
    interest_kind: str,
    amortization: str,
    frequency: str,
    start_date: str,
    end_date: str,
    extra: Tuple[str, ...],
    as_of: Optional[str],
    manual: bool,
) -> None:
    """Print the principal still open on a given day."""
    contract = build_contract_from_options(
        principal, rate, interest_kind, amortization, frequency, start_date, end_date, extra
    )
    day = parse_date_option(as_of, "'--as-of'") if as_of else date.today()
    open_balance = outstanding_balance(contract, day, auto_payment=not manual, schedule=run_schedule(contract))
    click.echo(f"Outstanding balance on {day.isoformat()}: {open_balance:.2f}")
    click.echo(f"Repaid               : {repayment_progress(contract, open_balance):.2f} %")


@click.command()
@contract_options
def scenario(**options: Any) -> LoanContract:
    """Parse one scenario of the compare command into a contract."""
    return build_contract_from_options(**options)


def parse_scenario(opts: str) -> LoanContract:
    return scenario.main(args=shlex.split(opts), prog_name="scenario", standalone_mode=False)


@cli.command()
@click.option("--scenario1", "scenario1", required=True, help="First scenario options quoted string")
@click.option("--scenario2", "scenario2", required=True, help="Second scenario options quoted string")
def compare(scenario1: str, scenario2: str) -> None:
    """Compare two loan scenarios.

    Scenarios are provided as quoted option strings, for example:

        loan-plan compare --scenario1 "-p 100k -r 4 -s 2025-01-01 -e 2035-01-01"
                          --scenario2 "-p 100k -r 4 -s 2025-01-01 -e 2035-01-01 --type linear"
    """
    contract1 = parse_scenario(scenario1)
    contract2 = parse_scenario(scenario2)
    summary1 = summarize_schedule(contract1, run_schedule(contract1))
    summary2 = summarize_schedule(contract2, run_schedule(contract2))
    print_comparison(summary1, summary2)


if __name__ == "__main__":
    cli()
