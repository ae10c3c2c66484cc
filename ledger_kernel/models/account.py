"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for ledger accounts, the owners of entries.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - initial_balance is a fixed starting offset.  Ledger mutations read it
      but never write it.
    - last_entry_seq is the per-account insertion counter.  It is advanced
      only while the account row is locked (SELECT ... FOR UPDATE), so every
      entry of the account gets a distinct, increasing insertion_seq.

Failure modes:
    - AccountNotFoundError when a mutation names a non-existent account.
"""

from decimal import Decimal

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase
from ledger_kernel.db.types import InsertionSeq, Money


class LedgerAccount(TrackedBase):
    """
    An account whose entries form one chronological ledger.

    Guarantees:
        - balance = initial_balance + cumulative_delta of the last entry
          (or initial_balance when there are no entries).
    """

    __tablename__ = "ledger_accounts"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    initial_balance: Mapped[Money] = mapped_column(
        default=Decimal("0.00"),
        nullable=False,
    )

    last_entry_seq: Mapped[InsertionSeq] = mapped_column(
        default=0,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<LedgerAccount {self.name}: {self.initial_balance}>"
