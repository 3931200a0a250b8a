"""Data models for the loan planner.

This module defines the enumerations and dataclasses shared by the engine,
the reporting helpers and the front ends: the loan contract itself, its
extra repayments, the generated schedule lines and the register entry that
wraps a contract with bookkeeping metadata. Contracts and schedule lines are
frozen so a computed schedule can be handed around without being patched
in place.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple

# Payment frequencies in months: monthly, quarterly, semi-annual, yearly.
PAYMENT_FREQUENCIES = (1, 3, 6, 12)


class InterestKind(str, Enum):
    """How ``LoanContract.interest_rate`` is interpreted."""

    PERCENT_PER_ANNUM = "p.a."
    FIXED_TOTAL = "fixed"


class AmortizationKind(str, Enum):
    ANNUITY = "annuity"
    LINEAR = "linear"
    BALLOON = "balloon"


class LineKind(str, Enum):
    SCHEDULED = "plan"
    EXTRA_REPAYMENT = "extra"


class LoanDirection(str, Enum):
    TAKEN = "taken"  # liability
    GIVEN = "given"  # receivable


class LoanStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"
    DEFAULTED = "defaulted"


@dataclass(frozen=True)
class ExtraRepayment:
    """An out-of-schedule payment that reduces the principal immediately.

    Attributes
    ----------
    date: date
        The day the money was paid.
    amount: Decimal
        The amount applied to the principal. Must be positive.
    """

    date: date
    amount: Decimal


@dataclass(frozen=True)
class LoanContract:
    """Parameters of a loan contract.

    ``interest_rate`` is a percentage per annum for
    ``InterestKind.PERCENT_PER_ANNUM`` and the total interest amount for the
    whole term for ``InterestKind.FIXED_TOTAL``. ``extra_repayments`` is kept
    as a tuple so the contract stays hashable and immutable.
    """

    principal: Decimal
    interest_rate: Decimal
    interest_kind: InterestKind
    amortization_kind: AmortizationKind
    payment_frequency_months: int
    start_date: date
    end_date: date
    extra_repayments: Tuple[ExtraRepayment, ...] = ()


@dataclass(frozen=True)
class ScheduleLineItem:
    """One line of an amortization schedule.

    Extra repayment lines carry the index of the regular period they fall
    into, a zero ``interest_portion`` and ``payment == principal_portion``.
    ``remaining_balance`` is the balance right after this line, never
    negative.
    """

    period_index: int
    date: date
    kind: LineKind
    payment: Decimal
    interest_portion: Decimal
    principal_portion: Decimal
    remaining_balance: Decimal


@dataclass
class LoanRecord:
    """A registered loan: the contract plus the bookkeeping around it.

    When ``auto_payment`` is set, scheduled installments count as paid once
    their due date has passed; otherwise only recorded extra repayments
    reduce the outstanding balance.
    """

    id: str
    direction: LoanDirection
    counterparty: str
    contract: LoanContract
    contract_info: Optional[str] = None
    status: LoanStatus = LoanStatus.ACTIVE
    auto_payment: bool = True
