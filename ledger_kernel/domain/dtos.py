"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable shapes handed across the kernel boundary: the direction of an
    entry, the read-side view of an entry, and balance/summary results.
    Callers never receive ORM instances.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    from_model() class methods are boundary converters invoked only from
    selectors and services.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from ledger_kernel.domain.ordering import LedgerPosition

if TYPE_CHECKING:
    from ledger_kernel.models.ledger_entry import LedgerEntry as LedgerEntryModel


class EntryDirection(str, Enum):
    """Inflow (income) or outflow (expense), derived from the sign."""

    INFLOW = "inflow"
    OUTFLOW = "outflow"

    @classmethod
    def of(cls, signed_amount: Decimal) -> EntryDirection:
        """Direction of a non-zero signed amount."""
        if signed_amount == 0:
            raise ValueError("zero amount has no direction")
        return cls.INFLOW if signed_amount > 0 else cls.OUTFLOW

    def apply(self, amount: Decimal) -> Decimal:
        """Turn an unsigned magnitude into this direction's signed amount."""
        if amount <= 0:
            raise ValueError(f"amount must be positive, got {amount}")
        return amount if self is EntryDirection.INFLOW else -amount


@dataclass(frozen=True)
class EntryView:
    """Read-only snapshot of one ledger entry plus its running balance."""

    entry_id: UUID
    account_id: UUID
    occurred_on: date
    insertion_seq: int
    signed_amount: Decimal
    cumulative_delta: Decimal
    balance: Decimal
    category_id: UUID | None = None
    group_id: UUID | None = None
    subject: str | None = None
    notes: str | None = None
    payment_method: str | None = None

    @property
    def position(self) -> LedgerPosition:
        return LedgerPosition(self.occurred_on, self.insertion_seq)

    @property
    def direction(self) -> EntryDirection:
        return EntryDirection.of(self.signed_amount)

    @property
    def amount(self) -> Decimal:
        return abs(self.signed_amount)

    @classmethod
    def from_model(
        cls, entry: LedgerEntryModel, initial_balance: Decimal
    ) -> EntryView:
        return cls(
            entry_id=entry.id,
            account_id=entry.account_id,
            occurred_on=entry.occurred_on,
            insertion_seq=entry.insertion_seq,
            signed_amount=entry.signed_amount,
            cumulative_delta=entry.cumulative_delta,
            balance=initial_balance + entry.cumulative_delta,
            category_id=entry.category_id,
            group_id=entry.group_id,
            subject=entry.subject,
            notes=entry.notes,
            payment_method=entry.payment_method,
        )


@dataclass(frozen=True)
class AccountBalance:
    """Materialized balance of an account, optionally as of a date."""

    account_id: UUID
    initial_balance: Decimal
    cumulative_delta: Decimal
    as_of: date | None = None

    @property
    def balance(self) -> Decimal:
        return self.initial_balance + self.cumulative_delta


@dataclass(frozen=True)
class LedgerSummary:
    """Totals over an account's entries."""

    account_id: UUID
    total_inflows: Decimal
    total_outflows: Decimal
    inflow_count: int
    outflow_count: int

    @property
    def net_change(self) -> Decimal:
        return self.total_inflows - self.total_outflows

    @property
    def entry_count(self) -> int:
        return self.inflow_count + self.outflow_count
