"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from LedgerKernelError:

    LedgerKernelError (base)
    |
    +-- NotFoundError
    |   +-- EntryNotFoundError
    |   +-- AccountNotFoundError
    |
    +-- ReferenceNotFoundError
    |   +-- CategoryNotFoundError
    |   +-- EntryGroupNotFoundError
    |
    +-- ConcurrencyError
    |   +-- ConcurrencyConflictError
    |
    +-- StorageError
    |   +-- TransientStorageError
    |
    +-- OperationCancelledError
    |
    +-- ValidationError
        +-- EntryValidationError

===============================================================================
ERROR CODES
===============================================================================

    Code                        | Exception                   | Retried
    ----------------------------+-----------------------------+--------
    ENTRY_NOT_FOUND             | EntryNotFoundError          | no
    ACCOUNT_NOT_FOUND           | AccountNotFoundError        | no
    CATEGORY_NOT_FOUND          | CategoryNotFoundError       | no
    ENTRY_GROUP_NOT_FOUND       | EntryGroupNotFoundError     | no
    CONCURRENCY_CONFLICT        | ConcurrencyConflictError    | (final)
    TRANSIENT_STORAGE_ERROR     | TransientStorageError       | yes
    OPERATION_CANCELLED         | OperationCancelledError     | no
    ENTRY_VALIDATION_FAILED     | EntryValidationError        | no

===============================================================================
HANDLING
===============================================================================

The TransactionCoordinator retries only TransientStorageError. When the
attempt budget is spent it raises ConcurrencyConflictError carrying the
number of attempts made. Everything else rolls back and propagates at once.

LedgerService recovers every LedgerKernelError into a MutationResult, so
callers branch on ``result.status`` / ``result.error_code``:

    result = ledger.update(entry_id, Decimal("-20.00"), date(2025, 3, 2))
    if result.status is MutationStatus.ENTRY_NOT_FOUND:
        ...

Anything that is not a LedgerKernelError (a broken connection string, a
programming error) is not recovered and reaches the caller unchanged.
"""


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"


# Not-found exceptions


class NotFoundError(LedgerKernelError):
    """Base exception for missing ledger rows."""

    code: str = "NOT_FOUND"


class EntryNotFoundError(NotFoundError):
    """Ledger entry with given ID does not exist."""

    code: str = "ENTRY_NOT_FOUND"

    def __init__(self, entry_id):
        self.entry_id = entry_id
        super().__init__(f"Ledger entry not found: {entry_id}")


class AccountNotFoundError(NotFoundError):
    """Account with given ID does not exist."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


# Reference exceptions


class ReferenceNotFoundError(LedgerKernelError):
    """An optional reference on an entry points at a row that does not exist."""

    code: str = "REFERENCE_NOT_FOUND"
    reference: str = "reference"

    def __init__(self, reference_id):
        self.reference_id = reference_id
        super().__init__(f"Referenced {self.reference} not found: {reference_id}")


class CategoryNotFoundError(ReferenceNotFoundError):
    code: str = "CATEGORY_NOT_FOUND"
    reference: str = "category"


class EntryGroupNotFoundError(ReferenceNotFoundError):
    code: str = "ENTRY_GROUP_NOT_FOUND"
    reference: str = "entry group"


# Concurrency exceptions


class ConcurrencyError(LedgerKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrencyConflictError(ConcurrencyError):
    """The storage layer kept aborting the unit of work; retries exhausted."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, operation: str, attempts: int, sqlstate: str | None = None):
        self.operation = operation
        self.attempts = attempts
        self.sqlstate = sqlstate
        super().__init__(
            f"{operation} aborted after {attempts} attempt(s) "
            f"due to conflicting concurrent writes (sqlstate={sqlstate})"
        )


# Storage exceptions


class StorageError(LedgerKernelError):
    """Base exception for classified storage-layer failures."""

    code: str = "STORAGE_ERROR"


class TransientStorageError(StorageError):
    """Serialization failure, deadlock, lock timeout or dropped connection."""

    code: str = "TRANSIENT_STORAGE_ERROR"

    def __init__(self, operation: str, sqlstate: str | None, detail: str):
        self.operation = operation
        self.sqlstate = sqlstate
        self.detail = detail
        super().__init__(f"Transient storage failure during {operation}: {detail}")


# Cancellation


class OperationCancelledError(LedgerKernelError):
    """The caller cancelled the mutation; nothing was applied."""

    code: str = "OPERATION_CANCELLED"

    def __init__(self, operation: str, state: str):
        self.operation = operation
        self.state = state
        super().__init__(f"{operation} cancelled at state {state}")


# Validation


class ValidationError(LedgerKernelError):
    """Base exception for rejected mutation input."""

    code: str = "VALIDATION_ERROR"


class EntryValidationError(ValidationError):
    """One or more entry fields failed validation."""

    code: str = "ENTRY_VALIDATION_FAILED"

    def __init__(self, violations: tuple[str, ...]):
        self.violations = tuple(violations)
        super().__init__("Invalid ledger entry: " + "; ".join(self.violations))
