"""Pure domain logic: ordering, delta planning, validation, time and DTOs."""

from ledger_kernel.domain.delta import (
    DeltaPlan,
    MutationKind,
    RangeShift,
    classify_update,
    plan_delete,
    plan_insert,
    plan_update,
)
from ledger_kernel.domain.dtos import AccountBalance, EntryDirection, EntryView, LedgerSummary
from ledger_kernel.domain.ordering import LedgerPosition, compare, ledger_sort_key

__all__ = [
    "AccountBalance",
    "DeltaPlan",
    "EntryDirection",
    "EntryView",
    "LedgerPosition",
    "LedgerSummary",
    "MutationKind",
    "RangeShift",
    "classify_update",
    "compare",
    "ledger_sort_key",
    "plan_delete",
    "plan_insert",
    "plan_update",
]
