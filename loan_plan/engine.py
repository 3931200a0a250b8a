"""Core calculation engine for the loan planner.

This module implements the financial logic required to build amortization
schedules for annuity, linear and balloon (interest-only) loans, with
interest either as a percentage per annum on the declining balance or as a
fixed total spread evenly over the periods. Extra repayments are interleaved
with the regular installments. Results are returned as a list of
``ScheduleLineItem`` objects; ``summarize_schedule`` and
``compare_with_baseline`` derive aggregate metrics from them.

The engine is a pure function of its input contract. Nothing is cached and
nothing is patched incrementally: any change to a contract means calling
``compute_schedule`` again.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, List, Tuple

from .data_models import (
    PAYMENT_FREQUENCIES,
    AmortizationKind,
    ExtraRepayment,
    InterestKind,
    LineKind,
    LoanContract,
    ScheduleLineItem,
)
from .exceptions import InvalidContractError
from .utils import add_months, months_between, q_money

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
# Balance at or below this amount counts as repaid.
BALANCE_EPSILON = Decimal("0.01")

# Computes (interest, principal) for a period from its 1-based index and the
# balance before the installment. The principal is clamped by the caller.
PeriodStep = Callable[[int, Decimal], Tuple[Decimal, Decimal]]


def _calculate_annuity_payment(principal: Decimal, rate_per_period: Decimal, periods: int) -> Decimal:
    """Return the level installment of an annuity loan.

    The formula is:

        payment = P * (r * (1 + r)^n) / ((1 + r)^n - 1)

    which equals ``P * r / (1 - (1 + r)^-n)``. When the interest rate is
    zero, the payment simplifies to ``P / n``.
    """
    if rate_per_period == 0:
        return principal / Decimal(periods)
    factor = (1 + rate_per_period) ** periods
    return principal * (rate_per_period * factor) / (factor - 1)


def _rate_per_period(contract: LoanContract) -> Decimal:
    # rate / 100 * frequency / 12
    return contract.interest_rate * Decimal(contract.payment_frequency_months) / Decimal(1200)


def _annuity_step(contract: LoanContract, periods: int) -> PeriodStep:
    rate = _rate_per_period(contract)
    payment = q_money(_calculate_annuity_payment(contract.principal, rate, periods))

    def step(index: int, balance: Decimal) -> Tuple[Decimal, Decimal]:
        interest = q_money(balance * rate)
        return interest, payment - interest

    return step


def _linear_step(contract: LoanContract, periods: int) -> PeriodStep:
    rate = _rate_per_period(contract)
    principal_slice = q_money(contract.principal / Decimal(periods))

    def step(index: int, balance: Decimal) -> Tuple[Decimal, Decimal]:
        return q_money(balance * rate), principal_slice

    return step


def _balloon_step(contract: LoanContract, periods: int) -> PeriodStep:
    rate = _rate_per_period(contract)

    def step(index: int, balance: Decimal) -> Tuple[Decimal, Decimal]:
        return q_money(balance * rate), ZERO

    return step


def _fixed_interest_slices(contract: LoanContract, periods: int) -> Tuple[Decimal, Decimal]:
    """Return the flat interest per period and the final period's share.

    The final share takes whatever the rounded flat slices leave of the
    total interest.
    """
    flat = q_money(contract.interest_rate / Decimal(periods))
    last = q_money(contract.interest_rate - flat * (periods - 1))
    return flat, max(last, ZERO)


def _fixed_total_step(contract: LoanContract, periods: int) -> PeriodStep:
    flat, last = _fixed_interest_slices(contract, periods)
    principal_slice = q_money(contract.principal / Decimal(periods))

    def step(index: int, balance: Decimal) -> Tuple[Decimal, Decimal]:
        return (last if index == periods else flat), principal_slice

    return step


def _fixed_total_balloon_step(contract: LoanContract, periods: int) -> PeriodStep:
    flat, last = _fixed_interest_slices(contract, periods)

    def step(index: int, balance: Decimal) -> Tuple[Decimal, Decimal]:
        return (last if index == periods else flat), ZERO

    return step


# With a fixed interest total, annuity and linear plans both repay an equal
# principal slice, so the combined installment is flat either way.
_STRATEGIES: Dict[Tuple[InterestKind, AmortizationKind], Callable[[LoanContract, int], PeriodStep]] = {
    (InterestKind.PERCENT_PER_ANNUM, AmortizationKind.ANNUITY): _annuity_step,
    (InterestKind.PERCENT_PER_ANNUM, AmortizationKind.LINEAR): _linear_step,
    (InterestKind.PERCENT_PER_ANNUM, AmortizationKind.BALLOON): _balloon_step,
    (InterestKind.FIXED_TOTAL, AmortizationKind.ANNUITY): _fixed_total_step,
    (InterestKind.FIXED_TOTAL, AmortizationKind.LINEAR): _fixed_total_step,
    (InterestKind.FIXED_TOTAL, AmortizationKind.BALLOON): _fixed_total_balloon_step,
}


def _require(contract: LoanContract, name: str) -> object:
    value = getattr(contract, name, None)
    if value is None:
        raise InvalidContractError(name, f"Missing required field: {name}")
    return value


def _to_decimal(value: object, name: str) -> Decimal:
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            raise InvalidContractError(name, f"{name} is not a number: {value!r}") from None
    if not result.is_finite():
        raise InvalidContractError(name, f"{name} is not a number: {value!r}")
    return result


def _validate_extra_repayments(extras: object) -> Tuple[ExtraRepayment, ...]:
    result: List[ExtraRepayment] = []
    for extra in extras or ():
        when = getattr(extra, "date", None)
        if not isinstance(when, date):
            raise InvalidContractError("extra_repayments", "Extra repayment without a valid date")
        amount = _to_decimal(getattr(extra, "amount", None), "extra_repayments")
        if amount <= 0:
            raise InvalidContractError(
                "extra_repayments", f"Extra repayment on {when.isoformat()} must be positive"
            )
        result.append(ExtraRepayment(date=when, amount=amount))
    # Stable sort keeps same-day repayments in the order they were recorded.
    return tuple(sorted(result, key=lambda e: e.date))


def normalize_contract(contract: LoanContract) -> Tuple[LoanContract, int]:
    """Validate a contract and return it normalized, with its period count.

    Enum fields given as their string values are coerced to the enum
    members, amounts to ``Decimal`` and extra repayments are sorted by date.

    Raises
    ------
    InvalidContractError
        If a required field is missing or inconsistent. ``field`` names the
        offending attribute.
    """
    principal = _to_decimal(_require(contract, "principal"), "principal")
    if principal <= 0:
        raise InvalidContractError("principal", "Principal must be positive")

    interest_rate = _to_decimal(_require(contract, "interest_rate"), "interest_rate")
    if interest_rate < 0:
        raise InvalidContractError("interest_rate", "Interest rate must not be negative")

    raw_interest_kind = _require(contract, "interest_kind")
    try:
        interest_kind = InterestKind(raw_interest_kind)
    except ValueError:
        raise InvalidContractError(
            "interest_kind", f"Unknown interest kind: {raw_interest_kind!r}"
        ) from None
    raw_amortization_kind = _require(contract, "amortization_kind")
    try:
        amortization_kind = AmortizationKind(raw_amortization_kind)
    except ValueError:
        raise InvalidContractError(
            "amortization_kind", f"Unknown amortization kind: {raw_amortization_kind!r}"
        ) from None

    frequency = _require(contract, "payment_frequency_months")
    if isinstance(frequency, bool) or frequency not in PAYMENT_FREQUENCIES:
        raise InvalidContractError(
            "payment_frequency_months",
            f"Payment frequency must be one of {PAYMENT_FREQUENCIES} months",
        )

    start_date = _require(contract, "start_date")
    if not isinstance(start_date, date):
        raise InvalidContractError("start_date", "Start date must be a date")
    end_date = _require(contract, "end_date")
    if not isinstance(end_date, date):
        raise InvalidContractError("end_date", "End date must be a date")
    if end_date <= start_date:
        raise InvalidContractError("end_date", "End date must be after the start date")

    total_months = months_between(start_date, end_date)
    periods = -(-total_months // int(frequency))  # ceil
    if periods < 1:
        raise InvalidContractError("end_date", "Contract must span at least one calendar month")

    normalized = replace(
        contract,
        principal=principal,
        interest_rate=interest_rate,
        interest_kind=interest_kind,
        amortization_kind=amortization_kind,
        payment_frequency_months=int(frequency),
        extra_repayments=_validate_extra_repayments(contract.extra_repayments),
    )
    return normalized, periods


def compute_schedule(contract: LoanContract) -> List[ScheduleLineItem]:
    """Compute the amortization schedule for a loan contract.

    Parameters
    ----------
    contract: LoanContract
        The contract to amortize, including its extra repayments.

    Returns
    -------
    List[ScheduleLineItem]
        Regular installments in due-date order. Extra repayments dated in
        ``(previous due date, due date]`` precede the installment of that
        period. Generation stops early once the balance is repaid.

    Raises
    ------
    InvalidContractError
        If the contract fails validation. No partial schedule is returned.
    """
    contract, periods = normalize_contract(contract)
    step = _STRATEGIES[(contract.interest_kind, contract.amortization_kind)](contract, periods)
    frequency = contract.payment_frequency_months
    extras = contract.extra_repayments

    schedule: List[ScheduleLineItem] = []
    balance = q_money(contract.principal)

    cursor = 0
    while cursor < len(extras) and extras[cursor].date <= contract.start_date:
        logger.debug("Ignoring extra repayment dated %s (not after contract start)", extras[cursor].date)
        cursor += 1

    for index in range(1, periods + 1):
        due_date = add_months(contract.start_date, index * frequency)

        while cursor < len(extras) and extras[cursor].date <= due_date:
            extra = extras[cursor]
            cursor += 1
            amount = min(q_money(extra.amount), balance)
            if amount <= 0:
                continue
            balance -= amount
            schedule.append(
                ScheduleLineItem(
                    period_index=index,
                    date=extra.date,
                    kind=LineKind.EXTRA_REPAYMENT,
                    payment=amount,
                    interest_portion=ZERO,
                    principal_portion=amount,
                    remaining_balance=balance,
                )
            )

        if balance <= BALANCE_EPSILON:
            break

        interest, principal = step(index, balance)
        # The final installment clears whatever the rounded slices left over.
        if index == periods or principal > balance:
            principal = balance
        principal = max(principal, ZERO)
        balance -= principal

        schedule.append(
            ScheduleLineItem(
                period_index=index,
                date=due_date,
                kind=LineKind.SCHEDULED,
                payment=interest + principal,
                interest_portion=interest,
                principal_portion=principal,
                remaining_balance=balance,
            )
        )

    if cursor < len(extras):
        logger.debug("%d extra repayment(s) not applied to the schedule", len(extras) - cursor)
    return schedule


def _totals(schedule: List[ScheduleLineItem]) -> Dict[str, Decimal]:
    return {
        "payment": sum((line.payment for line in schedule), ZERO),
        "interest": sum((line.interest_portion for line in schedule), ZERO),
        "principal": sum((line.principal_portion for line in schedule), ZERO),
        "extra": sum(
            (line.payment for line in schedule if line.kind is LineKind.EXTRA_REPAYMENT), ZERO
        ),
    }


def summarize_schedule(contract: LoanContract, schedule: List[ScheduleLineItem]) -> Dict[str, object]:
    """Aggregate metrics of a computed schedule.

    Returns a dictionary with the principal, totals of payments, interest,
    principal and extra repayments, total cost, the number of scheduled
    installments, the regular (first) installment, the final balance, the
    contract end date and the payoff date (date of the last line).
    """
    totals = _totals(schedule)
    scheduled = [line for line in schedule if line.kind is LineKind.SCHEDULED]
    principal = Decimal(str(contract.principal))
    return {
        "principal": float(principal),
        "total_payment": float(totals["payment"]),
        "total_interest": float(totals["interest"]),
        "total_principal": float(totals["principal"]),
        "total_extra_repayment": float(totals["extra"]),
        "total_cost": float(principal + totals["interest"]),
        "scheduled_payments": len(scheduled),
        "regular_payment": float(scheduled[0].payment) if scheduled else 0.0,
        "final_balance": float(schedule[-1].remaining_balance) if schedule else float(principal),
        "end_date": contract.end_date.isoformat(),
        "payoff_date": schedule[-1].date.isoformat() if schedule else None,
    }


def compare_with_baseline(contract: LoanContract) -> Dict[str, object]:
    """Compare a contract against the same contract without extra repayments.

    Positive savings mean the extra repayments made the loan cheaper or
    shorter.
    """
    schedule = compute_schedule(contract)
    baseline_schedule = compute_schedule(replace(contract, extra_repayments=()))
    actual = _totals(schedule)
    baseline = _totals(baseline_schedule)
    actual_periods = sum(1 for line in schedule if line.kind is LineKind.SCHEDULED)
    principal = Decimal(str(contract.principal))
    return {
        "baseline_total_interest": float(baseline["interest"]),
        "interest_saved": float(baseline["interest"] - actual["interest"]),
        "total_cost_saved": float((principal + baseline["interest"]) - (principal + actual["interest"])),
        "periods_saved": len(baseline_schedule) - actual_periods,
    }
