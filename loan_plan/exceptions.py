"""Errors raised by the loan planner."""

from __future__ import annotations


class InvalidContractError(ValueError):
    """A loan contract is missing a field or holds an inconsistent value.

    ``field`` names the offending contract attribute so callers can attach
    the message to the right form input.
    """

    def __init__(self, field: str, message: str | None = None) -> None:
        self.field = field
        super().__init__(message or f"Invalid loan contract field: {field}")
