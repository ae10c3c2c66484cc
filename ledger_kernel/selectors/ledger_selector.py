"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Read-only ledger queries: entries in ledger order with their
    running balance, the balance at an entry, the current balance, the
    balance as of a date, and inflow/outflow totals.
Architecture position: Kernel > Selectors.

Invariants relied on:
    Every balance here is initial_balance + one stored cumulative_delta.
    No query re-sums an account's history.

Failure modes:
    - AccountNotFoundError / EntryNotFoundError for unknown ids.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func, select

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.dtos import AccountBalance, EntryView, LedgerSummary
from ledger_kernel.exceptions import AccountNotFoundError, EntryNotFoundError
from ledger_kernel.models.account import LedgerAccount
from ledger_kernel.models.ledger_entry import LedgerEntry
from ledger_kernel.selectors.base import BaseSelector


class LedgerSelector(BaseSelector[LedgerEntry]):
    """
    Selector for running balances.

    Guarantees:
        - entries() is ordered by (occurred_on, insertion_seq) regardless of
          physical row order.
        - All amounts are Decimal.
    """

    def _initial_balance(self, account_id: UUID) -> Decimal:
        initial = self.session.execute(
            select(LedgerAccount.initial_balance).where(LedgerAccount.id == account_id)
        ).scalar_one_or_none()
        if initial is None:
            raise AccountNotFoundError(account_id)
        return initial

    def entries(self, account_id: UUID) -> list[EntryView]:
        """All entries of the account in ledger order."""
        initial = self._initial_balance(account_id)
        rows = self.session.execute(
            select(LedgerEntry)
            .where(LedgerEntry.account_id == account_id)
            .order_by(LedgerEntry.occurred_on, LedgerEntry.insertion_seq)
            .execution_options(populate_existing=True)
        ).scalars()
        return [EntryView.from_model(entry, initial) for entry in rows]

    def get_entry(self, entry_id: UUID) -> EntryView | None:
        entry = self.session.execute(
            select(LedgerEntry)
            .where(LedgerEntry.id == entry_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if entry is None:
            return None
        return EntryView.from_model(entry, self._initial_balance(entry.account_id))

    def balance_at(self, entry_id: UUID) -> Decimal:
        """
        Running balance right after the entry.

        Raises:
            EntryNotFoundError: Unknown entry.
        """
        view = self.get_entry(entry_id)
        if view is None:
            raise EntryNotFoundError(entry_id)
        return view.balance

    def current_balance(self, account_id: UUID) -> AccountBalance:
        """Balance after the chronologically last entry."""
        return self._balance_through(account_id, None)

    def balance_as_of(self, account_id: UUID, as_of: date) -> AccountBalance:
        """Balance after the last entry dated on or before ``as_of``."""
        return self._balance_through(account_id, as_of)

    def _balance_through(self, account_id: UUID, as_of: date | None) -> AccountBalance:
        initial = self._initial_balance(account_id)
        stmt = select(LedgerEntry.cumulative_delta).where(
            LedgerEntry.account_id == account_id
        )
        if as_of is not None:
            stmt = stmt.where(LedgerEntry.occurred_on <= as_of)
        last_delta = self.session.execute(
            stmt.order_by(
                LedgerEntry.occurred_on.desc(), LedgerEntry.insertion_seq.desc()
            ).limit(1)
        ).scalar_one_or_none()
        return AccountBalance(
            account_id=account_id,
            initial_balance=initial,
            cumulative_delta=last_delta if last_delta is not None else ZERO,
            as_of=as_of,
        )

    def summary(self, account_id: UUID) -> LedgerSummary:
        """Totals and counts of inflows and outflows."""
        self._initial_balance(account_id)
        inflow = LedgerEntry.signed_amount > 0
        outflow = LedgerEntry.signed_amount < 0
        row = self.session.execute(
            select(
                func.coalesce(
                    func.sum(case((inflow, LedgerEntry.signed_amount), else_=ZERO)), ZERO
                ),
                func.coalesce(
                    func.sum(case((outflow, -LedgerEntry.signed_amount), else_=ZERO)), ZERO
                ),
                func.count(case((inflow, 1))),
                func.count(case((outflow, 1))),
            ).where(LedgerEntry.account_id == account_id)
        ).one()
        return LedgerSummary(
            account_id=account_id,
            total_inflows=row[0],
            total_outflows=row[1],
            inflow_count=row[2],
            outflow_count=row[3],
        )
