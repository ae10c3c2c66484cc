"""
Entry validation -- pure checks on mutation input.

Pure checks with no I/O, run before a unit of work is opened.  All
violations are collected so the caller sees every problem at once.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

from ledger_kernel.db.types import MONEY_DECIMAL_PLACES, decimal_places_of
from ledger_kernel.exceptions import EntryValidationError


@dataclass(frozen=True)
class ValidationPolicy:
    """Tunable limits for entry input (built from configuration)."""

    max_future_days: int = 1
    require_category_for_outflows: bool = False
    subject_max_length: int = 255
    notes_max_length: int = 2000


def require_decimal(value: Any, name: str = "amount") -> None:
    """Assert that value is a Decimal; raise AssertionError otherwise."""
    assert isinstance(value, Decimal), (
        f"{name} must be Decimal, not {type(value).__name__}"
    )


def entry_violations(
    *,
    signed_amount: Decimal,
    occurred_on: date,
    today: date,
    policy: ValidationPolicy,
    subject: str | None = None,
    notes: str | None = None,
    category_id: Any = None,
) -> tuple[str, ...]:
    """Return a description of every rule the input breaks (empty if valid)."""
    require_decimal(signed_amount, "signed_amount")
    violations: list[str] = []

    if signed_amount == 0:
        violations.append("signed_amount must not be zero")
    elif decimal_places_of(signed_amount) > MONEY_DECIMAL_PLACES:
        violations.append(
            f"signed_amount has more than {MONEY_DECIMAL_PLACES} decimal places"
        )

    latest_allowed = today + timedelta(days=policy.max_future_days)
    if occurred_on > latest_allowed:
        violations.append(f"occurred_on {occurred_on} is after {latest_allowed}")

    if subject is not None:
        if not subject.strip():
            violations.append("subject must not be blank")
        elif len(subject) > policy.subject_max_length:
            violations.append(
                f"subject exceeds {policy.subject_max_length} characters"
            )

    if notes is not None and len(notes) > policy.notes_max_length:
        violations.append(f"notes exceed {policy.notes_max_length} characters")

    if (
        policy.require_category_for_outflows
        and signed_amount < 0
        and category_id is None
    ):
        violations.append("outflows must have a category")

    return tuple(violations)


def validate_entry(**kwargs: Any) -> None:
    """
    Raise EntryValidationError if ``entry_violations(**kwargs)`` is non-empty.
    """
    violations = entry_violations(**kwargs)
    if violations:
        raise EntryValidationError(violations)
