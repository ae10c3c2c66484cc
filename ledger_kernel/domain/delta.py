"""
Delta planning -- how a mutation changes the running totals.

Responsibility:
    Given a mutation (insert, amount change, date move, delete) and the
    minimal context read from the ledger store, computes
      (a) the cumulative delta the touched entry must carry afterwards, and
      (b) the ranges of OTHER entries whose cumulative delta shifts, and by
          how much.
    The ledger store turns each RangeShift into one additive bulk UPDATE.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Called by
    ledger_kernel.services.ledger_service inside a locked unit of work.

Invariants enforced:
    After the entry row is written and every shift is applied, for each
    account and every i in ledger order:
        cumulative_delta[i] = cumulative_delta[i-1] + signed_amount[i]
    Entries outside the returned ranges are never touched.

Read-before-write:
    previous_delta arguments are the cumulative delta of the nearest entry
    strictly before a position, read BEFORE any shift of this mutation is
    applied.  For a date move that read is taken with the entry still at
    its old position, and the move-into-future arithmetic depends on it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from ledger_kernel.domain.ordering import LedgerPosition, is_strictly_between


class MutationKind(str, Enum):
    """Which branch of the algorithm a mutation takes."""

    INSERT = "insert"
    DELETE = "delete"
    UNCHANGED = "unchanged"
    AMOUNT_CHANGE = "amount_change"
    MOVE_INTO_PAST = "move_into_past"
    MOVE_INTO_FUTURE = "move_into_future"


@dataclass(frozen=True)
class RangeShift:
    """
    Add ``amount`` to the cumulative delta of every entry strictly after
    ``after`` and, when ``before`` is set, strictly before ``before``.
    """

    after: LedgerPosition
    amount: Decimal
    before: LedgerPosition | None = None

    def covers(self, position: LedgerPosition) -> bool:
        return is_strictly_between(position, self.after, self.before)


@dataclass(frozen=True)
class DeltaPlan:
    """
    Outcome of planning one mutation.

    entry_delta is the touched entry's new cumulative delta (None for a
    delete).  shifts are applied after the entry row is written, in order.
    """

    kind: MutationKind
    entry_delta: Decimal | None
    shifts: tuple[RangeShift, ...] = ()

    @property
    def touches_other_entries(self) -> bool:
        return bool(self.shifts)


def _nonzero(*shifts: RangeShift) -> tuple[RangeShift, ...]:
    return tuple(s for s in shifts if s.amount != 0)


def plan_insert(
    position: LedgerPosition,
    signed_amount: Decimal,
    previous_delta: Decimal,
) -> DeltaPlan:
    """New entry at ``position``; everything after it absorbs the amount."""
    return DeltaPlan(
        kind=MutationKind.INSERT,
        entry_delta=previous_delta + signed_amount,
        shifts=_nonzero(RangeShift(after=position, amount=signed_amount)),
    )


def plan_delete(position: LedgerPosition, signed_amount: Decimal) -> DeltaPlan:
    """Entry at ``position`` goes away; everything after it sheds the amount."""
    return DeltaPlan(
        kind=MutationKind.DELETE,
        entry_delta=None,
        shifts=_nonzero(RangeShift(after=position, amount=-signed_amount)),
    )


def classify_update(
    old_position: LedgerPosition,
    old_amount: Decimal,
    new_amount: Decimal,
    new_date: date,
) -> MutationKind:
    """Pick the update branch.  Only a date change needs a store read."""
    if new_date < old_position.occurred_on:
        return MutationKind.MOVE_INTO_PAST
    if new_date > old_position.occurred_on:
        return MutationKind.MOVE_INTO_FUTURE
    if new_amount != old_amount:
        return MutationKind.AMOUNT_CHANGE
    return MutationKind.UNCHANGED


def plan_update(
    *,
    old_position: LedgerPosition,
    old_amount: Decimal,
    old_delta: Decimal,
    new_amount: Decimal,
    new_date: date,
    previous_delta: Decimal | None = None,
) -> DeltaPlan:
    """
    Plan an update of amount and/or date.

    previous_delta is required when the date changes: the cumulative delta
    of the nearest entry strictly before (new_date, old insertion_seq),
    read while the entry still sits at its old position.

    Raises:
        ValueError: date changed but previous_delta was not supplied.
    """
    kind = classify_update(old_position, old_amount, new_amount, new_date)

    if kind is MutationKind.UNCHANGED:
        return DeltaPlan(kind=kind, entry_delta=old_delta)

    if kind is MutationKind.AMOUNT_CHANGE:
        amount_delta = new_amount - old_amount
        return DeltaPlan(
            kind=kind,
            entry_delta=old_delta + amount_delta,
            shifts=_nonzero(RangeShift(after=old_position, amount=amount_delta)),
        )

    if previous_delta is None:
        raise ValueError("previous_delta is required when the date changes")

    new_position = old_position.moved_to(new_date)
    if kind is MutationKind.MOVE_INTO_PAST:
        return _plan_move_into_past(
            old_position, new_position, old_amount, new_amount, previous_delta
        )
    return _plan_move_into_future(
        old_position, new_position, old_amount, new_amount, previous_delta
    )


def _plan_move_into_past(
    old_position: LedgerPosition,
    new_position: LedgerPosition,
    old_amount: Decimal,
    new_amount: Decimal,
    previous_delta: Decimal,
) -> DeltaPlan:
    # previous_delta belongs to an entry before new_position, which is before
    # the old position too, so it never included this entry's old amount.
    # Entries between the two positions now follow the entry: they absorb
    # the new amount.  Entries after the old position already held the old
    # amount and only need the correction.
    correction = new_amount - old_amount
    return DeltaPlan(
        kind=MutationKind.MOVE_INTO_PAST,
        entry_delta=previous_delta + new_amount,
        shifts=_nonzero(
            RangeShift(after=new_position, before=old_position, amount=new_amount),
            RangeShift(after=old_position, amount=correction),
        ),
    )


def _plan_move_into_future(
    old_position: LedgerPosition,
    new_position: LedgerPosition,
    old_amount: Decimal,
    new_amount: Decimal,
    previous_delta: Decimal,
) -> DeltaPlan:
    # previous_delta was read before the shift below, so it still contains
    # the old amount (it is either an entry between the positions or this
    # entry itself).  Adding only the correction yields
    # (previous_delta - old_amount) + new_amount.  Entries between the
    # positions no longer follow the entry and shed the old amount.
    # Entries after the new position need the correction.
    correction = new_amount - old_amount
    return DeltaPlan(
        kind=MutationKind.MOVE_INTO_FUTURE,
        entry_delta=previous_delta + correction,
        shifts=_nonzero(
            RangeShift(after=old_position, before=new_position, amount=-old_amount),
            RangeShift(after=new_position, amount=correction),
        ),
    )
