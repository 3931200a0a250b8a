"""Views derived from computed schedules.

These helpers turn a schedule into the figures the front ends show: a
date-range excerpt with its totals, the balance still open on a given day and
the open liabilities and receivables across a set of registered loans.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from .data_models import LineKind, LoanContract, LoanDirection, LoanRecord, ScheduleLineItem
from .engine import ZERO, compute_schedule
from .utils import q_money


def filter_schedule(
    schedule: Iterable[ScheduleLineItem],
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> List[ScheduleLineItem]:
    """Return the lines dated within ``[date_from, date_to]``.

    Either bound may be omitted to leave that side open.
    """
    lines = []
    for line in schedule:
        if date_from is not None and line.date < date_from:
            continue
        if date_to is not None and line.date > date_to:
            continue
        lines.append(line)
    return lines


def period_totals(lines: List[ScheduleLineItem]) -> Dict[str, Decimal]:
    """Sum payments, principal and interest over a range of schedule lines.

    ``end_balance`` is the balance after the last line of the range, zero for
    an empty range.
    """
    return {
        "total_payment": sum((line.payment for line in lines), ZERO),
        "total_principal": sum((line.principal_portion for line in lines), ZERO),
        "total_interest": sum((line.interest_portion for line in lines), ZERO),
        "end_balance": lines[-1].remaining_balance if lines else ZERO,
    }


def outstanding_balance(
    contract: LoanContract,
    as_of: date,
    auto_payment: bool = True,
    schedule: Optional[List[ScheduleLineItem]] = None,
) -> Decimal:
    """Return the principal still open on ``as_of``.

    With ``auto_payment`` every scheduled installment due on or before
    ``as_of`` counts as paid. Extra repayments count once their date has
    been reached, in both modes. The result never drops below zero.

    ``schedule`` may be passed to reuse an already computed schedule of the
    same contract.
    """
    principal = q_money(Decimal(str(contract.principal)))
    repaid = sum(
        (Decimal(str(extra.amount)) for extra in contract.extra_repayments if extra.date <= as_of),
        ZERO,
    )
    if auto_payment:
        if schedule is None:
            schedule = compute_schedule(contract)
        repaid += sum(
            (
                line.principal_portion
                for line in schedule
                if line.kind is LineKind.SCHEDULED and line.date <= as_of
            ),
            ZERO,
        )
    return max(ZERO, q_money(principal - repaid))


def repayment_progress(contract: LoanContract, balance: Decimal) -> Decimal:
    """Percentage of the principal already repaid, between 0 and 100."""
    principal = Decimal(str(contract.principal))
    if principal <= 0:
        return ZERO
    progress = Decimal(100) - (balance / principal) * Decimal(100)
    return q_money(min(Decimal(100), max(ZERO, progress)))


def portfolio_status(records: Iterable[LoanRecord], as_of: date) -> Dict[str, object]:
    """Open balances of registered loans on ``as_of``.

    Taken loans add to ``open_liabilities``, given loans to
    ``open_receivables``. ``loans`` lists one entry per record.
    """
    liabilities = ZERO
    receivables = ZERO
    loans: List[Dict[str, object]] = []
    for record in records:
        balance = outstanding_balance(record.contract, as_of, auto_payment=record.auto_payment)
        if record.direction is LoanDirection.TAKEN:
            liabilities += balance
        else:
            receivables += balance
        loans.append(
            {
                "id": record.id,
                "direction": record.direction.value,
                "counterparty": record.counterparty,
                "status": record.status.value,
                "principal": float(record.contract.principal),
                "outstanding_balance": float(balance),
                "end_date": record.contract.end_date.isoformat(),
            }
        )
    return {
        "as_of": as_of.isoformat(),
        "open_liabilities": float(liabilities),
        "open_receivables": float(receivables),
        "loans": loans,
    }
