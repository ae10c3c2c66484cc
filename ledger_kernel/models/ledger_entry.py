"""
Module: ledger_kernel.models.ledger_entry
Responsibility: ORM persistence for ledger entries, each carrying its own
    precomputed running total (cumulative_delta).
Architecture position: Kernel > Models.  May import from db/ and the pure
    value types in domain/dtos.py.

Invariants enforced:
    - Ledger order is (occurred_on ASC, insertion_seq ASC).  The pair is
      unique per account because insertion_seq is (uq_ledger_entry_seq).
    - For every account, walking the entries in ledger order,
      cumulative_delta[i] = cumulative_delta[i-1] + signed_amount[i]
      with cumulative_delta[-1] = 0.  Only ledger_kernel.services.ledger_service
      writes cumulative_delta.
    - account_id and insertion_seq never change after creation.

Failure modes:
    - IntegrityError (FK) when the account, category or group is missing.
      Constraint names below are how the coordinator attributes the
      violation to the right reference.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import InsertionSeq, Money
from ledger_kernel.domain.dtos import EntryDirection

FK_ENTRY_ACCOUNT = "fk_ledger_entries_account"
FK_ENTRY_CATEGORY = "fk_ledger_entries_category"
FK_ENTRY_GROUP = "fk_ledger_entries_group"


class PaymentMethod(str, Enum):
    """How the money moved. Descriptive only."""

    CASH = "CASH"
    DEBIT_CARD = "DEBIT_CARD"
    CREDIT_CARD = "CREDIT_CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    MOBILE_PAYMENT = "MOBILE_PAYMENT"
    PAYPAL = "PAYPAL"
    CRYPTO = "CRYPTO"
    OTHER = "OTHER"


class LedgerEntry(TrackedBase):
    """
    One signed monetary movement on an account.

    Guarantees:
        - signed_amount > 0 is an inflow, < 0 an outflow; never zero.
        - cumulative_delta is set when the row is created, never left NULL.
    """

    __tablename__ = "ledger_entries"

    __table_args__ = (
        Index("idx_ledger_entry_position", "account_id", "occurred_on", "insertion_seq"),
        UniqueConstraint("account_id", "insertion_seq", name="uq_ledger_entry_seq"),
        Index("idx_ledger_entry_category", "category_id"),
        Index("idx_ledger_entry_group", "group_id"),
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_accounts.id", ondelete="CASCADE", name=FK_ENTRY_ACCOUNT),
        nullable=False,
    )

    signed_amount: Mapped[Money] = mapped_column(nullable=False)

    occurred_on: Mapped[date] = mapped_column(nullable=False)

    insertion_seq: Mapped[InsertionSeq] = mapped_column(nullable=False)

    cumulative_delta: Mapped[Money] = mapped_column(nullable=False)

    category_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_categories.id", ondelete="RESTRICT", name=FK_ENTRY_CATEGORY),
        nullable=True,
    )

    group_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_entry_groups.id", ondelete="SET NULL", name=FK_ENTRY_GROUP),
        nullable=True,
    )

    subject: Mapped[str | None] = mapped_column(String(255), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    payment_method: Mapped[PaymentMethod | None] = mapped_column(
        String(20),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry {self.occurred_on}#{self.insertion_seq} "
            f"{self.signed_amount} -> {self.cumulative_delta}>"
        )

    @property
    def amount(self) -> Decimal:
        """Unsigned magnitude of signed_amount."""
        return abs(self.signed_amount)

    @property
    def direction(self) -> EntryDirection:
        return EntryDirection.of(self.signed_amount)
