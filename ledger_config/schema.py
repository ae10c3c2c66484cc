"""
LedgerConfig schema.

Frozen dataclasses describing one fully-resolved configuration.  The loader
builds them from YAML; bridges turn them into kernel objects.
"""

from __future__ import annotations

from dataclasses import dataclass

ISOLATION_LEVELS = frozenset(
    {"READ COMMITTED", "REPEATABLE READ", "SERIALIZABLE"}
)
LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    isolation_level: str = "READ COMMITTED"

    @property
    def redacted_url(self) -> str:
        """URL with any password replaced, safe for logs."""
        scheme, sep, rest = self.url.partition("://")
        if not sep or "@" not in rest:
            return self.url
        credentials, _, host = rest.rpartition("@")
        user = credentials.split(":", 1)[0]
        return f"{scheme}://{user}:***@{host}"


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    initial_backoff_seconds: float = 0.05
    backoff_multiplier: float = 2.0
    max_backoff_seconds: float = 1.0


@dataclass(frozen=True)
class ValidationConfig:
    max_future_days: int = 1
    require_category_for_outflows: bool = True
    subject_max_length: int = 255
    notes_max_length: int = 2000


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class LedgerConfig:
    """Everything the ledger needs at runtime."""

    database: DatabaseConfig
    retry: RetryConfig
    validation: ValidationConfig
    logging: LoggingConfig
