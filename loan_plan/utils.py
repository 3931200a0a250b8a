"""Utility functions for the loan planner.

This module provides helpers for parsing user input into Python data types,
for month arithmetic on ``datetime.date`` instances, for rounding money to
cents and for setting up logging in the command-line and web front ends.
"""

from __future__ import annotations

import calendar
import logging
import os
from datetime import date
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation, getcontext
from logging.handlers import RotatingFileHandler
from typing import Optional

getcontext().prec = 28  # increase decimal precision to avoid rounding errors

MONEY_Q = Decimal("0.01")
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def parse_date(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` or ``YYYY-MM`` string into a ``date``.

    A missing day component means the first day of the month.

    Raises
    ------
    ValueError
        If the string is not a valid date.
    """
    try:
        parts = value.strip().split("-")
        if len(parts) not in (2, 3):
            raise ValueError
        year = int(parts[0])
        month = int(parts[1])
        day = int(parts[2]) if len(parts) == 3 else 1
        return date(year, month, day)
    except Exception as exc:
        raise ValueError(f"Invalid date string: {value}") from exc


def add_months(dt: date, months: int) -> date:
    """Return a new date a number of months after ``dt``.

    The day of the month is clamped to the last valid day if needed (e.g.,
    adding one month to Jan 31 yields Feb 28 or 29).
    """
    year = dt.year + (dt.month - 1 + months) // 12
    month = (dt.month - 1 + months) % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def months_between(start: date, end: date) -> int:
    """Whole calendar months from ``start`` to ``end``, ignoring the days.

    2024-01-31 to 2024-02-01 counts as one month; the result is negative when
    ``end`` lies in an earlier month.
    """
    return (end.year - start.year) * 12 + (end.month - start.month)


def decimal_from_str(value: str) -> Decimal:
    """Convert a numeric string into a ``Decimal``.

    The function strips any commas and handles both integer and float-like
    strings. It raises ``ValueError`` if conversion fails.
    """
    try:
        cleaned = str(value).strip().replace(",", "")
        result = Decimal(cleaned)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Invalid numeric value: {value}") from exc
    if not result.is_finite():
        raise ValueError(f"Invalid numeric value: {value}")
    return result


def q_money(value: Decimal) -> Decimal:
    """Round a money amount to cents."""
    return value.quantize(MONEY_Q, rounding=ROUND_HALF_EVEN)


def configure_logging(
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    force: bool = False,
) -> None:
    """Install console (and optionally rotating file) handlers on the root logger.

    ``level`` and ``log_file`` fall back to the ``LOAN_PLAN_LOG_LEVEL`` and
    ``LOAN_PLAN_LOG_FILE`` environment variables. Like ``logging.basicConfig``,
    existing root handlers are kept unless ``force`` is set; only the level
    is applied then.
    """
    level_name = (level or os.environ.get("LOAN_PLAN_LOG_LEVEL") or "INFO").upper()
    log_file = log_file or os.environ.get("LOAN_PLAN_LOG_FILE")
    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name, logging.INFO))
    if root.handlers and not force:
        return

    fmt = logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(
            RotatingFileHandler(
                log_file,
                maxBytes=5 * 1024 * 1024,
                backupCount=3,
                encoding="utf-8",
            )
        )

    root.handlers.clear()
    for handler in handlers:
        handler.setFormatter(fmt)
        root.addHandler(handler)
