"""
TransactionCoordinator -- atomic units of work with bounded retry.

Responsibility:
    Runs each ledger mutation inside exactly one database transaction:
    open a session, run the mutation body, commit; on any failure roll back
    so no partial effect is ever visible.  Transient storage failures
    (serialization failures, deadlocks, lock timeouts, dropped connections)
    are retried from the beginning with a fresh session, up to
    RetryPolicy.max_attempts.  Business failures are never retried.

Architecture position:
    Kernel > Services -- imperative shell.  The ONLY place in the kernel
    that calls ``session.commit()`` / ``session.rollback()``.

State machine (per attempt):
    STARTED -> COMPUTING_DELTA -> WRITING_PRIMARY_ROW -> WRITING_RANGE_UPDATE
            -> COMMITTED
    any state -> ROLLED_BACK -> (retry from STARTED) | FAILED

Failure modes:
    - ConcurrencyConflictError once transient failures exhaust the budget.
    - AccountNotFoundError / ReferenceNotFoundError subclasses for foreign
      key violations (SQLSTATE 23503), attributed by constraint name.
    - OperationCancelledError when the caller's token is cancelled.
    - Anything else propagates unchanged after rollback.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar
from uuid import uuid4

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session

from ledger_kernel.exceptions import (
    ConcurrencyConflictError,
    LedgerKernelError,
    OperationCancelledError,
    ReferenceNotFoundError,
    TransientStorageError,
)
from ledger_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.transaction_coordinator")

T = TypeVar("T")

# SQLSTATEs after which re-running the whole unit of work can succeed
SERIALIZATION_FAILURE = "40001"
DEADLOCK_DETECTED = "40P01"
LOCK_NOT_AVAILABLE = "55P03"
TRANSIENT_SQLSTATES = frozenset({SERIALIZATION_FAILURE, DEADLOCK_DETECTED, LOCK_NOT_AVAILABLE})

FOREIGN_KEY_VIOLATION = "23503"

_SQLITE_BUSY_MESSAGES = ("database is locked", "database table is locked")


class UnitOfWorkState(str, Enum):
    STARTED = "started"
    COMPUTING_DELTA = "computing_delta"
    WRITING_PRIMARY_ROW = "writing_primary_row"
    WRITING_RANGE_UPDATE = "writing_range_update"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to run a unit of work and how long to wait in between."""

    max_attempts: int = 3
    initial_backoff_seconds: float = 0.05
    backoff_multiplier: float = 2.0
    max_backoff_seconds: float = 1.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def backoff_for(self, attempt: int) -> float:
        """Delay after failed attempt number ``attempt`` (1-based)."""
        delay = self.initial_backoff_seconds * self.backoff_multiplier ** (attempt - 1)
        return min(delay, self.max_backoff_seconds)


class CancellationToken:
    """Thread-safe flag a caller sets to abandon a mutation."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


class UnitOfWork:
    """
    What a mutation body receives: the attempt's session plus the hooks the
    coordinator needs (state transitions, cancellation, FK attribution).
    """

    def __init__(
        self,
        session: Session,
        operation: str,
        attempt: int,
        cancellation: CancellationToken | None = None,
    ):
        self.session = session
        self.operation = operation
        self.attempt = attempt
        self.state = UnitOfWorkState.STARTED
        self.history: list[UnitOfWorkState] = [UnitOfWorkState.STARTED]
        self._cancellation = cancellation
        self._reference_errors: dict[str, LedgerKernelError] = {}

    def advance(self, state: UnitOfWorkState) -> None:
        """
        Move to ``state``.

        Raises:
            OperationCancelledError: The caller cancelled; the coordinator
                rolls back.
        """
        self.check_cancelled()
        self.mark(state)
        logger.debug(
            "mutation_state_changed",
            extra={"state": state.value, "attempt": self.attempt},
        )

    def check_cancelled(self) -> None:
        if self._cancellation is not None and self._cancellation.is_cancelled:
            raise OperationCancelledError(self.operation, self.state.value)

    def guard_reference(self, constraint_name: str, error: LedgerKernelError) -> None:
        """Report ``error`` if the write violates foreign key ``constraint_name``."""
        self._reference_errors[constraint_name] = error

    def reference_error_for(self, constraint_name: str | None) -> LedgerKernelError | None:
        if constraint_name is None:
            return None
        return self._reference_errors.get(constraint_name)

    def mark(self, state: UnitOfWorkState) -> None:
        """Record a transition without checking cancellation."""
        self.state = state
        self.history.append(state)


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def _constraint_name(exc: DBAPIError) -> str | None:
    diag = getattr(exc.orig, "diag", None)
    return getattr(diag, "constraint_name", None) or None


class TransactionCoordinator:
    """
    Opens, commits, rolls back and retries units of work.

    Each attempt gets a fresh session from ``session_factory``; nothing read
    in a failed attempt is reused by the next one.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._session_factory = session_factory
        self._retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    def run(
        self,
        operation: str,
        work: Callable[[UnitOfWork], T],
        *,
        cancellation: CancellationToken | None = None,
    ) -> T:
        """
        Run ``work`` atomically, retrying transient storage failures.

        Raises:
            OperationCancelledError: Cancelled before or during the attempt.
            ConcurrencyConflictError: Every attempt failed transiently.
            LedgerKernelError: Whatever the body raised, or a classified FK
                violation.
            Exception: Unclassified failures, unchanged.
        """
        if cancellation is not None and cancellation.is_cancelled:
            raise OperationCancelledError(operation, "not_started")

        policy = self._retry_policy
        with LogContext.bind(correlation_id=str(uuid4()), operation=operation):
            attempt = 0
            while True:
                attempt += 1
                start_time = time.monotonic()
                session = self._session_factory()
                uow = UnitOfWork(session, operation, attempt, cancellation)
                logger.info("mutation_started", extra={"attempt": attempt})
                try:
                    result = work(uow)
                    uow.check_cancelled()
                    session.commit()
                    uow.mark(UnitOfWorkState.COMMITTED)
                    logger.info(
                        "mutation_committed",
                        extra={
                            "attempt": attempt,
                            "states": [s.value for s in uow.history],
                            "duration_ms": round(
                                (time.monotonic() - start_time) * 1000, 2
                            ),
                        },
                    )
                    return result
                except Exception as exc:
                    session.rollback()
                    failed_state = uow.state
                    uow.mark(UnitOfWorkState.ROLLED_BACK)
                    error = self._classify(exc, uow)
                    logger.info(
                        "mutation_rolled_back",
                        extra={
                            "attempt": attempt,
                            "failed_state": failed_state.value,
                            "error_type": type(error).__name__,
                        },
                    )

                    if isinstance(error, TransientStorageError):
                        if attempt < policy.max_attempts:
                            delay = policy.backoff_for(attempt)
                            logger.warning(
                                "mutation_retry_scheduled",
                                extra={
                                    "attempt": attempt,
                                    "max_attempts": policy.max_attempts,
                                    "sqlstate": error.sqlstate,
                                    "backoff_seconds": delay,
                                },
                            )
                            self._sleep(delay)
                            continue
                        error = ConcurrencyConflictError(
                            operation, attempt, error.sqlstate
                        )

                    uow.mark(UnitOfWorkState.FAILED)
                    if isinstance(error, LedgerKernelError):
                        logger.warning(
                            "mutation_failed",
                            extra={"attempt": attempt, "error_code": error.code},
                        )
                    else:
                        logger.error(
                            "mutation_failed", extra={"attempt": attempt}, exc_info=True
                        )
                    if error is exc:
                        raise
                    raise error from exc
                finally:
                    session.close()

    def _classify(self, exc: Exception, uow: UnitOfWork) -> Exception:
        """Map a storage exception onto the kernel taxonomy (or return it as-is)."""
        if isinstance(exc, LedgerKernelError) or not isinstance(exc, DBAPIError):
            return exc

        sqlstate = _sqlstate(exc)
        if exc.connection_invalidated or sqlstate in TRANSIENT_SQLSTATES:
            return TransientStorageError(uow.operation, sqlstate, str(exc.orig))

        if isinstance(exc, IntegrityError):
            message = str(exc.orig)
            if sqlstate == FOREIGN_KEY_VIOLATION or "FOREIGN KEY" in message:
                name = _constraint_name(exc)
                return uow.reference_error_for(name) or ReferenceNotFoundError(name)
            return exc

        if isinstance(exc, OperationalError):
            message = str(exc.orig).lower()
            if any(busy in message for busy in _SQLITE_BUSY_MESSAGES):
                return TransientStorageError(uow.operation, sqlstate, message)

        return exc
