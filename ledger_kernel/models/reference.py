"""
Module: ledger_kernel.models.reference
Responsibility: Reference data that ledger entries may point at: categories
    and entry groups.  The kernel only checks that a referenced row exists;
    maintaining these rows is the job of the surrounding application.
Architecture position: Kernel > Models.  May import from db/ only.
"""

from uuid import UUID

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class Category(TrackedBase):
    """Classification for entries (e.g. "Groceries", "Salary")."""

    __tablename__ = "ledger_categories"

    __table_args__ = (UniqueConstraint("name", name="uq_ledger_category_name"),)

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    description: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Category {self.name}>"


class EntryGroup(TrackedBase):
    """Named bundle of related entries belonging to one account (e.g. a trip)."""

    __tablename__ = "ledger_entry_groups"

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey(
            "ledger_accounts.id",
            ondelete="CASCADE",
            name="fk_ledger_entry_groups_account",
        ),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    def __repr__(self) -> str:
        return f"<EntryGroup {self.name}>"
