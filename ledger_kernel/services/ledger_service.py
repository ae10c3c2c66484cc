"""
LedgerService -- insert, update and delete ledger entries.

Responsibility:
    The public command surface of the kernel.  Each operation validates its
    input, then runs one unit of work through the TransactionCoordinator:
        lock account -> read minimal context -> plan (domain.delta)
        -> write the entry row -> apply range shifts.
    Domain failures the caller is expected to handle come back as a
    MutationResult; unexpected failures propagate.

Architecture position:
    Kernel > Services -- imperative shell around the pure delta planner.
    The ONLY writer of LedgerEntry.cumulative_delta.

Invariants enforced:
    - After every committed mutation, each account's entries satisfy
      cumulative_delta[i] = cumulative_delta[i-1] + signed_amount[i] in
      (occurred_on, insertion_seq) order.
    - Every value the plan depends on is read inside the same transaction
      that writes, after the account lock is held.
    - Mutations of one account never touch rows of another.

Failure modes (as MutationStatus):
    ENTRY_NOT_FOUND, ACCOUNT_NOT_FOUND, REFERENCE_NOT_FOUND,
    CONCURRENCY_CONFLICT, VALIDATION_FAILED, CANCELLED.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.delta import (
    DeltaPlan,
    MutationKind,
    classify_update,
    plan_delete,
    plan_insert,
    plan_update,
)
from ledger_kernel.domain.ordering import LedgerPosition
from ledger_kernel.domain.validation import ValidationPolicy, validate_entry
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    CategoryNotFoundError,
    ConcurrencyError,
    EntryGroupNotFoundError,
    EntryNotFoundError,
    LedgerKernelError,
    OperationCancelledError,
    ReferenceNotFoundError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.ledger_entry import (
    FK_ENTRY_ACCOUNT,
    FK_ENTRY_CATEGORY,
    FK_ENTRY_GROUP,
    LedgerEntry,
    PaymentMethod,
)
from ledger_kernel.services.ledger_store import LedgerStore
from ledger_kernel.services.transaction_coordinator import (
    CancellationToken,
    TransactionCoordinator,
    UnitOfWork,
    UnitOfWorkState,
)

logger = get_logger("services.ledger_service")

_MOVES = (MutationKind.MOVE_INTO_PAST, MutationKind.MOVE_INTO_FUTURE)


class MutationStatus(str, Enum):
    """Outcome of a ledger mutation."""

    APPLIED = "applied"
    ENTRY_NOT_FOUND = "entry_not_found"
    ACCOUNT_NOT_FOUND = "account_not_found"
    REFERENCE_NOT_FOUND = "reference_not_found"
    CONCURRENCY_CONFLICT = "concurrency_conflict"
    VALIDATION_FAILED = "validation_failed"
    CANCELLED = "cancelled"


# Checked in order; first match wins.
_STATUS_BY_ERROR: tuple[tuple[type[LedgerKernelError], MutationStatus], ...] = (
    (EntryNotFoundError, MutationStatus.ENTRY_NOT_FOUND),
    (AccountNotFoundError, MutationStatus.ACCOUNT_NOT_FOUND),
    (ReferenceNotFoundError, MutationStatus.REFERENCE_NOT_FOUND),
    (ConcurrencyError, MutationStatus.CONCURRENCY_CONFLICT),
    (ValidationError, MutationStatus.VALIDATION_FAILED),
    (OperationCancelledError, MutationStatus.CANCELLED),
)


@dataclass(frozen=True)
class MutationResult:
    """
    Result of LedgerService.insert / update / delete.

    On success: entry_id, kind, the entry's new cumulative_delta (None after
    a delete) and how many other rows were shifted.  On failure: error_code
    and message from the recovered exception; the ledger is unchanged.
    """

    status: MutationStatus
    entry_id: UUID | None = None
    kind: MutationKind | None = None
    cumulative_delta: Decimal | None = None
    rows_shifted: int = 0
    error_code: str | None = None
    message: str | None = None

    @classmethod
    def applied(cls, entry_id: UUID, plan: DeltaPlan, rows_shifted: int) -> MutationResult:
        return cls(
            status=MutationStatus.APPLIED,
            entry_id=entry_id,
            kind=plan.kind,
            cumulative_delta=plan.entry_delta,
            rows_shifted=rows_shifted,
        )

    @classmethod
    def failure(
        cls, status: MutationStatus, error: LedgerKernelError, entry_id: UUID | None = None
    ) -> MutationResult:
        return cls(
            status=status,
            entry_id=entry_id,
            error_code=error.code,
            message=str(error),
        )

    @property
    def is_success(self) -> bool:
        return self.status is MutationStatus.APPLIED


@dataclass(frozen=True)
class EntryDetails:
    """Descriptive fields of an entry.  They never affect ordering or totals."""

    category_id: UUID | None = None
    group_id: UUID | None = None
    subject: str | None = None
    notes: str | None = None
    payment_method: PaymentMethod | None = None

    def apply_to(self, entry: LedgerEntry) -> None:
        entry.category_id = self.category_id
        entry.group_id = self.group_id
        entry.subject = self.subject
        entry.notes = self.notes
        entry.payment_method = (
            PaymentMethod(self.payment_method).value
            if self.payment_method is not None
            else None
        )


class LedgerService:
    """
    Maintains cumulative deltas across inserts, updates and deletes.

    Usage:
        coordinator = TransactionCoordinator(get_session_factory())
        ledger = LedgerService(coordinator)
        result = ledger.insert(account_id, Decimal("500.00"), date(2025, 3, 1))
        if result.is_success:
            entry_id = result.entry_id
    """

    def __init__(
        self,
        coordinator: TransactionCoordinator,
        clock: Clock | None = None,
        validation_policy: ValidationPolicy | None = None,
    ):
        self._coordinator = coordinator
        self._clock = clock or SystemClock()
        self._validation_policy = validation_policy or ValidationPolicy()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def insert(
        self,
        account_id: UUID,
        signed_amount: Decimal,
        occurred_on: date,
        *,
        category_id: UUID | None = None,
        group_id: UUID | None = None,
        subject: str | None = None,
        notes: str | None = None,
        payment_method: PaymentMethod | None = None,
        cancellation: CancellationToken | None = None,
    ) -> MutationResult:
        """Add an entry; it sorts after existing entries on the same date."""
        details = EntryDetails(category_id, group_id, subject, notes, payment_method)

        def work(uow: UnitOfWork) -> MutationResult:
            store = LedgerStore(uow.session)
            account = store.lock_account(account_id)
            store.require_references(category_id, group_id)
            self._guard_references(uow, account_id, details)

            uow.advance(UnitOfWorkState.COMPUTING_DELTA)
            position = LedgerPosition(occurred_on, store.allocate_insertion_seq(account))
            previous = store.previous_cumulative_delta(account_id, position)
            plan = plan_insert(position, signed_amount, previous)

            uow.advance(UnitOfWorkState.WRITING_PRIMARY_ROW)
            entry = LedgerEntry(
                account_id=account_id,
                signed_amount=signed_amount,
                occurred_on=occurred_on,
                insertion_seq=position.insertion_seq,
                cumulative_delta=plan.entry_delta,
            )
            details.apply_to(entry)
            store.add_entry(entry)

            shifted = self._apply_shifts(uow, store, account_id, plan)
            logger.info(
                "entry_inserted",
                extra={
                    "entry_id": str(entry.id),
                    "position": position,
                    "cumulative_delta": plan.entry_delta,
                    "rows_shifted": shifted,
                },
            )
            return MutationResult.applied(entry.id, plan, shifted)

        with LogContext.bind(account_id=str(account_id)):
            return self._recover(
                "insert",
                work,
                cancellation,
                validate=dict(
                    signed_amount=signed_amount,
                    occurred_on=occurred_on,
                    subject=subject,
                    notes=notes,
                    category_id=category_id,
                ),
            )

    def update(
        self,
        entry_id: UUID,
        signed_amount: Decimal,
        occurred_on: date,
        *,
        category_id: UUID | None = None,
        group_id: UUID | None = None,
        subject: str | None = None,
        notes: str | None = None,
        payment_method: PaymentMethod | None = None,
        cancellation: CancellationToken | None = None,
    ) -> MutationResult:
        """
        Replace an entry's amount, date and descriptive fields.

        Descriptive fields are replaced wholesale: omitted ones are cleared.
        """
        details = EntryDetails(category_id, group_id, subject, notes, payment_method)

        def work(uow: UnitOfWork) -> MutationResult:
            store = LedgerStore(uow.session)
            entry = self._load_locked(store, entry_id)
            store.require_references(category_id, group_id)
            self._guard_references(uow, entry.account_id, details)

            uow.advance(UnitOfWorkState.COMPUTING_DELTA)
            old_position = LedgerPosition.of(entry)
            kind = classify_update(
                old_position, entry.signed_amount, signed_amount, occurred_on
            )
            previous = None
            if kind in _MOVES:
                # Read with the entry still at its old position.
                previous = store.previous_cumulative_delta(
                    entry.account_id, old_position.moved_to(occurred_on)
                )
            plan = plan_update(
                old_position=old_position,
                old_amount=entry.signed_amount,
                old_delta=entry.cumulative_delta,
                new_amount=signed_amount,
                new_date=occurred_on,
                previous_delta=previous,
            )

            uow.advance(UnitOfWorkState.WRITING_PRIMARY_ROW)
            old_amount = entry.signed_amount
            entry.signed_amount = signed_amount
            entry.occurred_on = occurred_on
            entry.cumulative_delta = plan.entry_delta
            details.apply_to(entry)
            store.save_entry(entry)

            shifted = self._apply_shifts(uow, store, entry.account_id, plan)
            logger.info(
                "entry_updated",
                extra={
                    "kind": plan.kind.value,
                    "old_position": old_position,
                    "new_occurred_on": occurred_on,
                    "old_amount": old_amount,
                    "new_amount": signed_amount,
                    "cumulative_delta": plan.entry_delta,
                    "rows_shifted": shifted,
                },
            )
            return MutationResult.applied(entry_id, plan, shifted)

        with LogContext.bind(entry_id=str(entry_id)):
            return self._recover(
                "update",
                work,
                cancellation,
                entry_id=entry_id,
                validate=dict(
                    signed_amount=signed_amount,
                    occurred_on=occurred_on,
                    subject=subject,
                    notes=notes,
                    category_id=category_id,
                ),
            )

    def delete(
        self,
        entry_id: UUID,
        *,
        cancellation: CancellationToken | None = None,
    ) -> MutationResult:
        """Remove an entry; every later entry sheds its amount."""

        def work(uow: UnitOfWork) -> MutationResult:
            store = LedgerStore(uow.session)
            entry = self._load_locked(store, entry_id)

            uow.advance(UnitOfWorkState.COMPUTING_DELTA)
            position = LedgerPosition.of(entry)
            plan = plan_delete(position, entry.signed_amount)

            shifted = self._apply_shifts(uow, store, entry.account_id, plan)

            uow.advance(UnitOfWorkState.WRITING_PRIMARY_ROW)
            store.delete_entry(entry_id)
            logger.info(
                "entry_deleted",
                extra={
                    "position": position,
                    "signed_amount": entry.signed_amount,
                    "rows_shifted": shifted,
                },
            )
            return MutationResult.applied(entry_id, plan, shifted)

        with LogContext.bind(entry_id=str(entry_id)):
            return self._recover("delete", work, cancellation, entry_id=entry_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _recover(
        self,
        operation: str,
        work: Callable[[UnitOfWork], MutationResult],
        cancellation: CancellationToken | None,
        *,
        entry_id: UUID | None = None,
        validate: dict | None = None,
    ) -> MutationResult:
        """Run ``work`` and turn expected LedgerKernelErrors into results."""
        try:
            if validate is not None:
                validate_entry(
                    today=self._clock.today(),
                    policy=self._validation_policy,
                    **validate,
                )
            return self._coordinator.run(operation, work, cancellation=cancellation)
        except LedgerKernelError as exc:
            status = _status_for(exc)
            if status is None:
                raise
            logger.info(
                "mutation_rejected",
                extra={"status": status.value, "error_code": exc.code},
            )
            return MutationResult.failure(status, exc, entry_id)

    @staticmethod
    def _load_locked(store: LedgerStore, entry_id: UUID) -> LedgerEntry:
        # The account is only known after a first read; re-read once the
        # lock is held so the plan sees the latest committed state.
        account_id = store.get_entry(entry_id).account_id
        store.lock_account(account_id)
        return store.get_entry(entry_id)

    @staticmethod
    def _guard_references(uow: UnitOfWork, account_id: UUID, details: EntryDetails) -> None:
        uow.guard_reference(FK_ENTRY_ACCOUNT, AccountNotFoundError(account_id))
        uow.guard_reference(FK_ENTRY_CATEGORY, CategoryNotFoundError(details.category_id))
        uow.guard_reference(FK_ENTRY_GROUP, EntryGroupNotFoundError(details.group_id))

    @staticmethod
    def _apply_shifts(
        uow: UnitOfWork, store: LedgerStore, account_id: UUID, plan: DeltaPlan
    ) -> int:
        if not plan.shifts:
            return 0
        uow.advance(UnitOfWorkState.WRITING_RANGE_UPDATE)
        return store.apply_shifts(account_id, plan.shifts)


def _status_for(exc: LedgerKernelError) -> MutationStatus | None:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return None
