"""Session-bound services: ledger store, transaction coordinator, ledger service."""

from ledger_kernel.services.ledger_service import (
    EntryDetails,
    LedgerService,
    MutationResult,
    MutationStatus,
)
from ledger_kernel.services.ledger_store import LedgerStore
from ledger_kernel.services.transaction_coordinator import (
    CancellationToken,
    RetryPolicy,
    TransactionCoordinator,
    UnitOfWork,
    UnitOfWorkState,
)

__all__ = [
    "CancellationToken",
    "EntryDetails",
    "LedgerService",
    "LedgerStore",
    "MutationResult",
    "MutationStatus",
    "RetryPolicy",
    "TransactionCoordinator",
    "UnitOfWork",
    "UnitOfWorkState",
]
