"""
LedgerStore -- durable, ordered entries per account.

Responsibility:
    The only component that issues SQL against ledger_entries on the write
    path: the per-account lock, insertion-sequence allocation, the
    "nearest entry strictly before position X" read, single-row writes and
    deletes, and range-scoped additive bulk updates of cumulative_delta.

Architecture position:
    Kernel > Services -- imperative shell.  Used by LedgerService inside a
    unit of work opened by TransactionCoordinator.  Flushes, never commits.

Invariants enforced:
    - Every mutation starts with lock_account(), a SELECT ... FOR UPDATE on
      the account row, so mutations of one account are serialized while
      different accounts never wait on each other.
      SQLite drops FOR UPDATE; there the engine opens every transaction
      with BEGIN IMMEDIATE, which serializes all writers instead.
    - insertion_seq comes from the locked account row's counter, never
      from MAX(insertion_seq) + 1.
    - shift_range() is one UPDATE statement whatever the number of rows it
      touches; rows are never loaded and rewritten one by one.

Failure modes:
    - AccountNotFoundError / EntryNotFoundError when the row is missing.
    - CategoryNotFoundError / EntryGroupNotFoundError from require_references().
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.sql.elements import ColumnElement

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.delta import RangeShift
from ledger_kernel.domain.ordering import LedgerPosition
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    CategoryNotFoundError,
    EntryGroupNotFoundError,
    EntryNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import LedgerAccount
from ledger_kernel.models.ledger_entry import LedgerEntry
from ledger_kernel.models.reference import Category, EntryGroup
from ledger_kernel.services.base import BaseService

logger = get_logger("services.ledger_store")


def strictly_after(position: LedgerPosition) -> ColumnElement[bool]:
    """SQL form of ``entry > position`` in ledger order."""
    return or_(
        LedgerEntry.occurred_on > position.occurred_on,
        and_(
            LedgerEntry.occurred_on == position.occurred_on,
            LedgerEntry.insertion_seq > position.insertion_seq,
        ),
    )


def strictly_before(position: LedgerPosition) -> ColumnElement[bool]:
    """SQL form of ``entry < position`` in ledger order."""
    return or_(
        LedgerEntry.occurred_on < position.occurred_on,
        and_(
            LedgerEntry.occurred_on == position.occurred_on,
            LedgerEntry.insertion_seq < position.insertion_seq,
        ),
    )


class LedgerStore(BaseService[LedgerEntry]):
    """Row-level and range-level access to one account's ledger."""

    def lock_account(self, account_id: UUID) -> LedgerAccount:
        """
        Lock the account row for the rest of the transaction.

        Raises:
            AccountNotFoundError: No such account.
        """
        stmt = (
            select(LedgerAccount)
            .where(LedgerAccount.id == account_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        account = self.session.execute(stmt).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def allocate_insertion_seq(self, account: LedgerAccount) -> int:
        """Next insertion sequence for a locked account."""
        account.last_entry_seq = account.last_entry_seq + 1
        self.session.flush()
        return account.last_entry_seq

    def get_entry(self, entry_id: UUID) -> LedgerEntry:
        """
        Load the current persisted state of an entry.

        Raises:
            EntryNotFoundError: No such entry (or it was deleted concurrently).
        """
        stmt = (
            select(LedgerEntry)
            .where(LedgerEntry.id == entry_id)
            .execution_options(populate_existing=True)
        )
        entry = self.session.execute(stmt).scalar_one_or_none()
        if entry is None:
            raise EntryNotFoundError(entry_id)
        return entry

    def require_references(
        self,
        category_id: UUID | None,
        group_id: UUID | None,
    ) -> None:
        """
        Raises:
            CategoryNotFoundError: category_id is set but does not exist.
            EntryGroupNotFoundError: group_id is set but does not exist.
        """
        if category_id is not None and self.session.get(Category, category_id) is None:
            raise CategoryNotFoundError(category_id)
        if group_id is not None and self.session.get(EntryGroup, group_id) is None:
            raise EntryGroupNotFoundError(group_id)

    def previous_cumulative_delta(
        self,
        account_id: UUID,
        position: LedgerPosition,
    ) -> Decimal:
        """Cumulative delta of the nearest entry strictly before ``position`` (0 if none)."""
        stmt = (
            select(LedgerEntry.cumulative_delta)
            .where(LedgerEntry.account_id == account_id, strictly_before(position))
            .order_by(LedgerEntry.occurred_on.desc(), LedgerEntry.insertion_seq.desc())
            .limit(1)
        )
        value = self.session.execute(stmt).scalar_one_or_none()
        return value if value is not None else ZERO

    def add_entry(self, entry: LedgerEntry) -> LedgerEntry:
        self.session.add(entry)
        self.session.flush()
        return entry

    def save_entry(self, entry: LedgerEntry) -> LedgerEntry:
        self.session.flush()
        return entry

    def delete_entry(self, entry_id: UUID) -> None:
        """
        Raises:
            EntryNotFoundError: Nothing was deleted.
        """
        result = self.session.execute(
            delete(LedgerEntry)
            .where(LedgerEntry.id == entry_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise EntryNotFoundError(entry_id)

    def shift_range(self, account_id: UUID, shift: RangeShift) -> int:
        """Add ``shift.amount`` to every entry in the range; returns rows touched."""
        conditions = [LedgerEntry.account_id == account_id, strictly_after(shift.after)]
        if shift.before is not None:
            conditions.append(strictly_before(shift.before))

        result = self.session.execute(
            update(LedgerEntry)
            .where(*conditions)
            .values(cumulative_delta=LedgerEntry.cumulative_delta + shift.amount)
            .execution_options(synchronize_session=False)
        )
        logger.debug(
            "range_shifted",
            extra={
                "after": shift.after,
                "before": shift.before,
                "amount": shift.amount,
                "rows": result.rowcount,
            },
        )
        return result.rowcount

    def apply_shifts(self, account_id: UUID, shifts: Iterable[RangeShift]) -> int:
        """Apply shifts in order; returns total rows touched."""
        return sum(self.shift_range(account_id, shift) for shift in shifts)
