"""
Ordering -- the total order over ledger entries.

Responsibility:
    Defines "chronological" for the whole kernel: by occurred_on ascending,
    ties broken by insertion_seq ascending.  Every SQL predicate the ledger
    store builds ("strictly before", "strictly after", "strictly between")
    is the database rendering of the comparisons below.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Two entries of one account never compare equal: insertion_seq is
      unique per account, so the order is total.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any


@dataclass(frozen=True, slots=True, order=True)
class LedgerPosition:
    """Where an entry sits in its account's ledger.

    Field order matters: dataclass ordering compares occurred_on first,
    then insertion_seq.
    """

    occurred_on: date
    insertion_seq: int

    @classmethod
    def of(cls, entry: Any) -> LedgerPosition:
        """Position of any object exposing occurred_on and insertion_seq."""
        return cls(entry.occurred_on, entry.insertion_seq)

    def moved_to(self, occurred_on: date) -> LedgerPosition:
        """Same entry identity placed on another date."""
        return LedgerPosition(occurred_on, self.insertion_seq)


def compare(a: LedgerPosition, b: LedgerPosition) -> int:
    """Three-way comparison: -1 if a is earlier, 1 if later, 0 if same slot."""
    if a < b:
        return -1
    if a > b:
        return 1
    return 0


def ledger_sort_key(entry: Any) -> tuple[date, int]:
    """Sort key putting entries in ledger order."""
    return (entry.occurred_on, entry.insertion_seq)


def is_strictly_between(
    position: LedgerPosition,
    lower: LedgerPosition,
    upper: LedgerPosition | None,
) -> bool:
    """True when lower < position and, if upper is given, position < upper."""
    if not position > lower:
        return False
    return upper is None or position < upper
