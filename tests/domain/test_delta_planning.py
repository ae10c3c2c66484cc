"""
Tests for delta planning (ledger_kernel/domain/delta.py).

Each plan is applied to an in-memory ledger the same way the store applies
it to the database: write the touched row, then add each shift's amount to
every row the shift covers.  The resulting chain is checked against a
fresh fold of the signed amounts.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

import pytest

from ledger_kernel.domain.delta import (
    DeltaPlan,
    MutationKind,
    RangeShift,
    classify_update,
    plan_delete,
    plan_insert,
    plan_update,
)
from ledger_kernel.domain.ordering import LedgerPosition

DAY1 = date(2025, 3, 1)
DAY1_5 = date(2025, 3, 2)
DAY2 = date(2025, 3, 3)
DAY3 = date(2025, 3, 5)
DAY3_5 = date(2025, 3, 6)


@dataclass
class Row:
    position: LedgerPosition
    amount: Decimal
    delta: Decimal


class InMemoryLedger:
    """Minimal stand-in for one account's rows."""

    def __init__(self):
        self.rows: list[Row] = []
        self._seq = 0

    def previous_delta(self, position: LedgerPosition) -> Decimal:
        before = [r for r in self.rows if r.position < position]
        return max(before, key=lambda r: r.position).delta if before else Decimal("0")

    def apply_shifts(self, plan: DeltaPlan) -> None:
        for shift in plan.shifts:
            for row in self.rows:
                if shift.covers(row.position):
                    row.delta += shift.amount

    def insert(self, occurred_on: date, amount: str) -> Row:
        self._seq += 1
        position = LedgerPosition(occurred_on, self._seq)
        plan = plan_insert(position, Decimal(amount), self.previous_delta(position))
        row = Row(position, Decimal(amount), plan.entry_delta)
        self.rows.append(row)
        self.apply_shifts(plan)
        return row

    def update(self, row: Row, amount: str, occurred_on: date) -> DeltaPlan:
        new_amount = Decimal(amount)
        kind = classify_update(row.position, row.amount, new_amount, occurred_on)
        previous = None
        if kind in (MutationKind.MOVE_INTO_PAST, MutationKind.MOVE_INTO_FUTURE):
            previous = self.previous_delta(row.position.moved_to(occurred_on))
        plan = plan_update(
            old_position=row.position,
            old_amount=row.amount,
            old_delta=row.delta,
            new_amount=new_amount,
            new_date=occurred_on,
            previous_delta=previous,
        )
        row.position = row.position.moved_to(occurred_on)
        row.amount = new_amount
        row.delta = plan.entry_delta
        self.apply_shifts(plan)
        return plan

    def delete(self, row: Row) -> DeltaPlan:
        plan = plan_delete(row.position, row.amount)
        self.apply_shifts(plan)
        self.rows.remove(row)
        return plan

    def chain(self) -> list[Decimal]:
        return [r.delta for r in sorted(self.rows, key=lambda r: r.position)]

    def assert_consistent(self) -> None:
        running = Decimal("0")
        for row in sorted(self.rows, key=lambda r: r.position):
            running += row.amount
            assert row.delta == running


@pytest.fixture
def three_entries():
    ledger = InMemoryLedger()
    day1 = ledger.insert(DAY1, "500")
    day2 = ledger.insert(DAY2, "-50")
    day3 = ledger.insert(DAY3, "-100")
    return ledger, day1, day2, day3


class TestPlanInsert:
    def test_chronological_inserts(self, three_entries):
        ledger, *_ = three_entries
        assert ledger.chain() == [Decimal("500"), Decimal("450"), Decimal("350")]

    def test_out_of_order_insert_shifts_later_entries(self, three_entries):
        ledger, *_ = three_entries
        ledger.insert(DAY1_5, "-50")
        assert ledger.chain() == [
            Decimal("500"), Decimal("450"), Decimal("400"), Decimal("300"),
        ]
        ledger.assert_consistent()

    def test_first_entry_starts_from_zero(self):
        plan = plan_insert(LedgerPosition(DAY1, 1), Decimal("12.34"), Decimal("0"))
        assert plan.entry_delta == Decimal("12.34")

    def test_single_open_ended_shift(self):
        position = LedgerPosition(DAY2, 4)
        plan = plan_insert(position, Decimal("-5"), Decimal("100"))
        assert plan.kind is MutationKind.INSERT
        assert plan.shifts == (RangeShift(after=position, amount=Decimal("-5")),)


class TestPlanAmountChange:
    def test_amount_only_update(self, three_entries):
        ledger, _, day2, _ = three_entries
        plan = ledger.update(day2, "-20", DAY2)
        assert plan.kind is MutationKind.AMOUNT_CHANGE
        assert ledger.chain() == [Decimal("500"), Decimal("480"), Decimal("380")]

    def test_shift_is_the_difference(self):
        position = LedgerPosition(DAY2, 2)
        plan = plan_update(
            old_position=position,
            old_amount=Decimal("-50"),
            old_delta=Decimal("450"),
            new_amount=Decimal("-20"),
            new_date=DAY2,
        )
        assert plan.entry_delta == Decimal("480")
        assert plan.shifts == (RangeShift(after=position, amount=Decimal("30")),)


class TestPlanUnchanged:
    def test_no_op_update_touches_nothing(self, three_entries):
        ledger, _, day2, _ = three_entries
        before = ledger.chain()
        plan = ledger.update(day2, "-50", DAY2)
        assert plan.kind is MutationKind.UNCHANGED
        assert plan.shifts == ()
        assert not plan.touches_other_entries
        assert ledger.chain() == before


class TestPlanMoveIntoFuture:
    def test_move_after_last_entry(self, three_entries):
        ledger, _, day2, _ = three_entries
        plan = ledger.update(day2, "-50", DAY3_5)
        assert plan.kind is MutationKind.MOVE_INTO_FUTURE
        assert ledger.chain() == [Decimal("500"), Decimal("400"), Decimal("350")]

    def test_move_with_amount_change(self, three_entries):
        ledger, _, day2, _ = three_entries
        ledger.update(day2, "-70", DAY3_5)
        assert ledger.chain() == [Decimal("500"), Decimal("400"), Decimal("330")]
        ledger.assert_consistent()

    def test_move_between_entries(self, three_entries):
        ledger, day1, _, _ = three_entries
        ledger.insert(DAY3_5, "25")
        ledger.update(day1, "500", DAY2)
        ledger.assert_consistent()

    def test_move_onto_later_date_with_earlier_same_day_entry(self, three_entries):
        # day2 moves onto day3; it keeps its (smaller) insertion_seq, so it
        # lands before the existing day3 entry.
        ledger, _, day2, day3 = three_entries
        ledger.update(day2, "-50", DAY3)
        assert [r is day2 for r in sorted(ledger.rows, key=lambda r: r.position)] == [
            False, True, False,
        ]
        ledger.assert_consistent()

    def test_zero_amount_shifts_are_dropped(self):
        old = LedgerPosition(DAY2, 2)
        plan = plan_update(
            old_position=old,
            old_amount=Decimal("-50"),
            old_delta=Decimal("450"),
            new_amount=Decimal("-50"),
            new_date=DAY3_5,
            previous_delta=Decimal("350"),
        )
        assert plan.shifts == (
            RangeShift(after=old, before=old.moved_to(DAY3_5), amount=Decimal("50")),
        )


class TestPlanMoveIntoPast:
    def test_move_before_first_entry(self, three_entries):
        ledger, _, _, day3 = three_entries
        plan = ledger.update(day3, "-100", date(2025, 2, 1))
        assert plan.kind is MutationKind.MOVE_INTO_PAST
        assert ledger.chain() == [Decimal("-100"), Decimal("400"), Decimal("350")]

    def test_move_with_amount_change(self, three_entries):
        ledger, _, _, day3 = three_entries
        ledger.update(day3, "-150", DAY1_5)
        assert ledger.chain() == [
            Decimal("500"), Decimal("350"), Decimal("300"),
        ]
        ledger.assert_consistent()

    def test_move_onto_earlier_date_lands_after_same_day_entries(self, three_entries):
        ledger, day1, _, day3 = three_entries
        ledger.update(day3, "-100", DAY1)
        ordered = sorted(ledger.rows, key=lambda r: r.position)
        assert ordered[0] is day1
        assert ordered[1] is day3
        ledger.assert_consistent()

    def test_date_change_requires_previous_delta(self):
        with pytest.raises(ValueError, match="previous_delta"):
            plan_update(
                old_position=LedgerPosition(DAY2, 2),
                old_amount=Decimal("-50"),
                old_delta=Decimal("450"),
                new_amount=Decimal("-50"),
                new_date=DAY1,
            )


class TestPlanDelete:
    def test_delete_middle_entry(self, three_entries):
        ledger, _, day2, _ = three_entries
        plan = ledger.delete(day2)
        assert plan.kind is MutationKind.DELETE
        assert plan.entry_delta is None
        assert ledger.chain() == [Decimal("500"), Decimal("400")]

    def test_delete_last_entry_shifts_nothing(self, three_entries):
        ledger, _, _, day3 = three_entries
        ledger.delete(day3)
        assert ledger.chain() == [Decimal("500"), Decimal("450")]


class TestMixedSequences:
    """Longer sequences keep the fold consistent after every step."""

    def test_interleaved_mutations(self):
        ledger = InMemoryLedger()
        a = ledger.insert(DAY2, "100")
        b = ledger.insert(DAY2, "-30")
        c = ledger.insert(DAY1, "40")
        ledger.assert_consistent()

        ledger.update(a, "100", DAY3)
        ledger.assert_consistent()
        ledger.update(c, "-5", DAY3_5)
        ledger.assert_consistent()
        ledger.update(a, "60", DAY1)
        ledger.assert_consistent()
        ledger.delete(b)
        ledger.assert_consistent()
        d = ledger.insert(DAY1, "1.25")
        ledger.update(d, "1.25", DAY2)
        ledger.assert_consistent()
