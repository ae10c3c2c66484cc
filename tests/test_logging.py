"""
Tests for ledger_kernel.logging_config: the JSON line format, mutation-scoped
context fields and the one-handler configuration.
"""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from ledger_kernel.domain.ordering import LedgerPosition
from ledger_kernel.exceptions import ConcurrencyConflictError, EntryNotFoundError
from ledger_kernel.logging_config import (
    LogContext,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture
def json_log():
    """Configure kernel logging into a buffer; returns a reader of parsed lines."""
    reset_logging()
    LogContext.clear()
    stream = StringIO()
    configure_logging(level=logging.DEBUG, stream=stream)

    def _lines() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    yield _lines
    LogContext.clear()
    reset_logging()


log = get_logger("tests.logging")


class TestRecordShape:
    def test_one_json_object_per_line(self, json_log):
        log.info("mutation_started", extra={"attempt": 1})
        log.warning("mutation_retry_scheduled", extra={"attempt": 1, "sqlstate": "40001"})

        started, retry = json_log()
        assert started["message"] == "mutation_started"
        assert started["level"] == "INFO"
        assert started["logger"] == "ledger_kernel.tests.logging"
        assert started["attempt"] == 1
        assert retry["sqlstate"] == "40001"
        assert {"ts", "level", "logger", "message"} <= retry.keys()

    def test_money_dates_and_positions_are_strings(self, json_log):
        entry_id = uuid4()
        log.info(
            "entry_inserted",
            extra={
                "entry_id": entry_id,
                "occurred_on": date(2025, 3, 1),
                "cumulative_delta": Decimal("450.10"),
                "position": LedgerPosition(date(2025, 3, 1), 7),
            },
        )

        (record,) = json_log()
        assert record["entry_id"] == str(entry_id)
        assert record["occurred_on"] == "2025-03-01"
        assert record["cumulative_delta"] == "450.10"
        assert record["position"] == str(LedgerPosition(date(2025, 3, 1), 7))

    def test_kernel_error_attributes_are_flattened(self, json_log):
        try:
            raise ConcurrencyConflictError("update", 3, "40001")
        except ConcurrencyConflictError:
            log.error("mutation_failed", exc_info=True)

        (record,) = json_log()
        assert record["exc_type"] == "ConcurrencyConflictError"
        assert record["exc_code"] == "CONCURRENCY_CONFLICT"
        assert record["exc_operation"] == "update"
        assert record["exc_attempts"] == 3
        assert record["exc_sqlstate"] == "40001"
        assert "Traceback" in record["traceback"]

    def test_plain_exception_has_no_code(self, json_log):
        try:
            raise ValueError("boom")
        except ValueError:
            log.exception("mutation_failed")

        (record,) = json_log()
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record

    def test_not_found_error_carries_entry_id(self, json_log):
        entry_id = uuid4()
        try:
            raise EntryNotFoundError(entry_id)
        except EntryNotFoundError:
            log.warning("mutation_failed", exc_info=True)

        (record,) = json_log()
        assert record["exc_entry_id"] == str(entry_id)


class TestLogContext:
    def test_bound_fields_reach_records(self, json_log):
        account_id, entry_id = uuid4(), uuid4()
        with LogContext.bind(account_id=account_id, operation="update"):
            with LogContext.bind(entry_id=entry_id):
                log.info("entry_updated")
            log.info("mutation_committed")
        log.info("after")

        updated, committed, after = json_log()
        assert updated["account_id"] == str(account_id)
        assert updated["entry_id"] == str(entry_id)
        assert updated["operation"] == "update"
        assert "entry_id" not in committed
        assert committed["account_id"] == str(account_id)
        assert not {"account_id", "operation"} & after.keys()

    def test_inner_bind_overrides_then_restores(self):
        with LogContext.bind(operation="insert"):
            with LogContext.bind(operation="delete", entry_id=None):
                assert LogContext.get_all() == {"operation": "delete"}
            assert LogContext.get_all() == {"operation": "insert"}
        assert LogContext.get_all() == {}

    def test_extra_does_not_override_bound_field(self, json_log):
        with LogContext.bind(entry_id="bound"):
            log.info("entry_deleted", extra={"entry_id": "extra"})

        (record,) = json_log()
        assert record["entry_id"] == "bound"

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError, match="category_id"):
            with LogContext.bind(category_id="x"):
                pass

    def test_clear(self):
        with LogContext.bind(correlation_id="c"):
            LogContext.clear()
            assert LogContext.get_all() == {}


class TestConfiguration:
    def test_second_configure_is_ignored(self, json_log):
        configure_logging(level=logging.ERROR, stream=StringIO())

        kernel_logger = logging.getLogger("ledger_kernel")
        assert len(kernel_logger.handlers) == 1
        assert kernel_logger.level == logging.DEBUG
        assert kernel_logger.propagate is False

    def test_level_filters_records(self):
        reset_logging()
        stream = StringIO()
        configure_logging(level=logging.INFO, stream=stream)
        try:
            log.debug("range_shifted")
            log.info("entry_deleted")
        finally:
            reset_logging()

        messages = [json.loads(line)["message"] for line in stream.getvalue().splitlines()]
        assert messages == ["entry_deleted"]
