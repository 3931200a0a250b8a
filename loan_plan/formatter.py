"""Output helpers for the loan planner.

This module renders amortization schedules and summaries in a tabular text
format and converts schedule lines into plain dictionaries for the JSON and
CSV exports. Printing goes through ``click.echo`` so the output can be
captured by click's test runner.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, Iterable, List

import click

from .data_models import LineKind, ScheduleLineItem

KIND_LABELS = {
    LineKind.SCHEDULED: "Plan",
    LineKind.EXTRA_REPAYMENT: "Extra",
}


def serialize_line(line: ScheduleLineItem) -> Dict[str, object]:
    """Convert a schedule line into a JSON-serialisable dictionary."""
    return {
        "period": line.period_index,
        "date": line.date.isoformat(),
        "kind": line.kind.value,
        "payment": float(line.payment),
        "interest": float(line.interest_portion),
        "principal": float(line.principal_portion),
        "balance": float(line.remaining_balance),
    }


def serialize_schedule(schedule: Iterable[ScheduleLineItem]) -> List[Dict[str, object]]:
    return [serialize_line(line) for line in schedule]


def print_summary(summary: Dict[str, object]) -> None:
    """Print a summary of loan metrics in a human-readable format."""
    click.echo("Summary")
    click.echo("-" * 72)
    click.echo(f"Principal          : {summary['principal']:.2f}")
    click.echo(f"Regular payment    : {summary['regular_payment']:.2f}")
    click.echo(f"Total interest     : {summary['total_interest']:.2f}")
    if summary.get("total_extra_repayment", 0):
        click.echo(f"Extra repayments   : {summary['total_extra_repayment']:.2f}")
    click.echo(f"Total cost         : {summary['total_cost']:.2f}")
    click.echo(f"Scheduled payments : {summary['scheduled_payments']}")
    click.echo(f"Contract end date  : {summary['end_date']}")
    click.echo(f"Payoff date        : {summary['payoff_date'] or '-'}")
    comparison = summary.get("comparison")
    if comparison:
        click.echo(f"Baseline interest  : {comparison['baseline_total_interest']:.2f}")
        click.echo(f"Interest saved     : {comparison['interest_saved']:.2f}")
        click.echo(f"Total cost saved   : {comparison['total_cost_saved']:.2f}")
        if comparison.get("periods_saved"):
            click.echo(f"Periods saved      : {int(comparison['periods_saved'])}")
    click.echo("-" * 72)


def print_schedule(schedule: Iterable[ScheduleLineItem]) -> None:
    """Print the amortization schedule as a simple tab-separated table."""
    headers = ["Period", "Date", "Kind", "Payment", "Interest", "Principal", "Balance"]
    click.echo("\t".join(headers))
    for line in schedule:
        row = [
            str(line.period_index),
            line.date.isoformat(),
            KIND_LABELS[line.kind],
            f"{line.payment:.2f}",
            f"{line.interest_portion:.2f}",
            f"{line.principal_portion:.2f}",
            f"{line.remaining_balance:.2f}",
        ]
        click.echo("\t".join(row))


def print_period_totals(totals: Dict[str, Decimal]) -> None:
    """Print the totals of a (possibly filtered) schedule range."""
    click.echo("-" * 72)
    click.echo(f"Payments in range  : {totals['total_payment']:.2f}")
    click.echo(f"  thereof principal: {totals['total_principal']:.2f}")
    click.echo(f"  thereof interest : {totals['total_interest']:.2f}")
    click.echo(f"Balance at end     : {totals['end_balance']:.2f}")


def print_comparison(s1: Dict[str, object], s2: Dict[str, object]) -> None:
    """Print a comparison of two loan summaries side by side.

    The difference column is scenario2 - scenario1; a negative difference
    means the second scenario is cheaper or shorter.
    """
    click.echo("Comparison")
    click.echo("=" * 72)
    keys = [
        "regular_payment",
        "total_cost",
        "total_interest",
        "scheduled_payments",
    ]
    click.echo(f"{'Metric':20s} {'Scenario1':>15s} {'Scenario2':>15s} {'Difference':>15s}")
    for key in keys:
        v1 = s1.get(key)
        v2 = s2.get(key)
        diff = v2 - v1
        click.echo(f"{key:20s} {v1:15.2f} {v2:15.2f} {diff:15.2f}")
    click.echo("=" * 72)
