"""
Pytest fixtures for the ledger kernel test suite.

Provides:
- A session-scoped engine and schema
- A LedgerService wired to a real TransactionCoordinator (real commits,
  table cleanup after each test)
- Factory fixtures for accounts, categories and entry groups
- Logging fixtures

Environment Variables:
- DATABASE_URL: database to test against.  Defaults to in-memory SQLite.
  Tests marked ``postgres`` run only when this points at PostgreSQL.
"""

import json
import logging
import os
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import UUID

import pytest
from sqlalchemy import delete, select

from ledger_kernel.db.base import Base
from ledger_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_kernel.models.account import LedgerAccount
from ledger_kernel.models.ledger_entry import LedgerEntry
from ledger_kernel.models.reference import Category, EntryGroup
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.ledger_service import LedgerService
from ledger_kernel.services.transaction_coordinator import (
    RetryPolicy,
    TransactionCoordinator,
)

DEFAULT_DATABASE_URL = "sqlite://"

# Every test date sits before this, so the future-date rule never trips.
TEST_NOW = datetime(2025, 12, 31, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ledger_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.insert(...)
            assert any(r["message"] == "entry_inserted" for r in captured_logs())
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Markers
# =============================================================================


def get_database_url() -> str:
    """Get database URL from environment, or use in-memory SQLite."""
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


def is_postgres_url(url: str) -> bool:
    return url.startswith("postgresql")


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


def pytest_collection_modifyitems(config, items):
    if is_postgres_url(get_database_url()):
        return
    skip_pg = pytest.mark.skip(reason="requires DATABASE_URL pointing at PostgreSQL")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip_pg)


# =============================================================================
# Session-scoped DB infrastructure
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single engine for the entire test session."""
    eng = init_engine_from_url(
        get_database_url(),
        pool_size=30, max_overflow=20, pool_timeout=10,
    )
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session, drop once at end."""
    drop_tables()
    create_tables()
    yield
    drop_tables()


def _delete_all_rows(engine) -> None:
    """Remove all data, children first."""
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(delete(table))


@pytest.fixture
def session_factory(db_engine, db_tables):
    """
    Session factory with real commits.  Every row written during the test
    is deleted at teardown.
    """
    yield get_session_factory()
    _delete_all_rows(db_engine)


# =============================================================================
# Clock / services
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock(TEST_NOW)


@pytest.fixture
def no_sleep():
    """Records backoff delays instead of sleeping."""
    delays: list[float] = []
    return delays


@pytest.fixture
def coordinator(session_factory, no_sleep):
    return TransactionCoordinator(
        session_factory,
        retry_policy=RetryPolicy(max_attempts=3),
        sleep=no_sleep.append,
    )


@pytest.fixture
def ledger(coordinator, deterministic_clock) -> LedgerService:
    return LedgerService(coordinator, clock=deterministic_clock)


@pytest.fixture
def read_ledger(session_factory):
    """
    Run a selector query in a fresh session.

    Usage::

        entries = read_ledger(lambda sel: sel.entries(account_id))
    """

    def _read(query):
        with session_factory() as sess:
            return query(LedgerSelector(sess))

    return _read


# =============================================================================
# Test data generators
# =============================================================================


@pytest.fixture
def create_account(session_factory):
    """Factory fixture to create committed accounts."""

    def _create_account(
        name: str = "Checking",
        initial_balance: Decimal = Decimal("0.00"),
    ) -> UUID:
        with session_scope() as sess:
            account = LedgerAccount(name=name, initial_balance=initial_balance)
            sess.add(account)
            sess.flush()
            return account.id

    return _create_account


@pytest.fixture
def create_category(session_factory):
    def _create_category(name: str = "Groceries") -> UUID:
        with session_scope() as sess:
            category = Category(name=name)
            sess.add(category)
            sess.flush()
            return category.id

    return _create_category


@pytest.fixture
def create_group(session_factory):
    def _create_group(account_id: UUID, name: str = "Trip") -> UUID:
        with session_scope() as sess:
            group = EntryGroup(account_id=account_id, name=name)
            sess.add(group)
            sess.flush()
            return group.id

    return _create_group


# =============================================================================
# Invariant helpers
# =============================================================================


def stored_chain(session_factory, account_id: UUID) -> list[tuple[date, Decimal, Decimal]]:
    """(occurred_on, signed_amount, cumulative_delta) in ledger order."""
    with session_factory() as sess:
        rows = sess.execute(
            select(
                LedgerEntry.occurred_on,
                LedgerEntry.signed_amount,
                LedgerEntry.cumulative_delta,
            )
            .where(LedgerEntry.account_id == account_id)
            .order_by(LedgerEntry.occurred_on, LedgerEntry.insertion_seq)
        ).all()
    return [(r[0], r[1], r[2]) for r in rows]


def assert_running_totals(session_factory, account_id: UUID) -> None:
    """Fold signed amounts in ledger order and compare with stored deltas."""
    running = Decimal("0")
    for occurred_on, signed_amount, cumulative_delta in stored_chain(
        session_factory, account_id
    ):
        running += signed_amount
        assert cumulative_delta == running, (
            f"entry on {occurred_on}: stored {cumulative_delta}, expected {running}"
        )


@pytest.fixture
def check_invariant(session_factory):
    def _check(account_id: UUID) -> None:
        assert_running_totals(session_factory, account_id)

    return _check
