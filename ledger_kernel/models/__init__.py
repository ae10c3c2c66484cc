"""ORM models for the ledger kernel."""

from ledger_kernel.models.account import LedgerAccount
from ledger_kernel.models.ledger_entry import LedgerEntry, PaymentMethod
from ledger_kernel.models.reference import Category, EntryGroup

__all__ = [
    "LedgerAccount",
    "LedgerEntry",
    "PaymentMethod",
    "Category",
    "EntryGroup",
]
