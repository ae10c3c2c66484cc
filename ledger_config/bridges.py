"""
Config -> Kernel Bridges.

Functions that convert a ``LedgerConfig`` into kernel objects.  They live in
ledger_config (the producer) because the kernel must NEVER import
ledger_config.

Usage:
    from ledger_config import get_active_config
    from ledger_config.bridges import build_ledger_service

    config = get_active_config()
    ledger = build_ledger_service(config)
"""

from __future__ import annotations

import logging

from sqlalchemy.engine import Engine

from ledger_config.schema import LedgerConfig
from ledger_kernel.db.engine import get_session_factory, init_engine_from_url
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.validation import ValidationPolicy
from ledger_kernel.logging_config import configure_logging
from ledger_kernel.services.ledger_service import LedgerService
from ledger_kernel.services.transaction_coordinator import (
    RetryPolicy,
    TransactionCoordinator,
)


def build_retry_policy(config: LedgerConfig) -> RetryPolicy:
    retry = config.retry
    return RetryPolicy(
        max_attempts=retry.max_attempts,
        initial_backoff_seconds=retry.initial_backoff_seconds,
        backoff_multiplier=retry.backoff_multiplier,
        max_backoff_seconds=retry.max_backoff_seconds,
    )


def build_validation_policy(config: LedgerConfig) -> ValidationPolicy:
    validation = config.validation
    return ValidationPolicy(
        max_future_days=validation.max_future_days,
        require_category_for_outflows=validation.require_category_for_outflows,
        subject_max_length=validation.subject_max_length,
        notes_max_length=validation.notes_max_length,
    )


def init_engine(config: LedgerConfig) -> Engine:
    """Configure logging at the configured level, then initialize the engine."""
    configure_logging(level=getattr(logging, config.logging.level.upper()))
    db = config.database
    return init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
        isolation_level=db.isolation_level,
    )


def build_ledger_service(
    config: LedgerConfig,
    clock: Clock | None = None,
) -> LedgerService:
    """Initialize the engine and wire a LedgerService from configuration."""
    init_engine(config)
    coordinator = TransactionCoordinator(
        get_session_factory(),
        retry_policy=build_retry_policy(config),
    )
    return LedgerService(
        coordinator,
        clock=clock,
        validation_policy=build_validation_policy(config),
    )
