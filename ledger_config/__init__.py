"""
ledger_config -- single public entrypoint for ledger configuration.

Responsibility:
    ``get_active_config()`` is the ONLY way to obtain configuration at
    runtime.  No other component reads configuration files or environment
    variables.  The kernel never imports this package; ``bridges`` turns a
    ``LedgerConfig`` into kernel objects.

Resolution order (later wins):
    1. ``defaults.yaml`` shipped with this package
    2. the YAML file passed in, else the one named by ``LEDGER_CONFIG_FILE``
    3. ``DATABASE_URL`` for ``database.url``

Failure modes:
    - ``FileNotFoundError`` -- override file does not exist.
    - ``ValueError`` -- unknown keys, bad types or out-of-range values.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from ledger_config.loader import load_yaml_file, merge_config, parse_config
from ledger_config.schema import (
    DatabaseConfig,
    LedgerConfig,
    LoggingConfig,
    RetryConfig,
    ValidationConfig,
)

_logger = logging.getLogger("ledger_kernel.config")

DEFAULTS_FILE = Path(__file__).parent / "defaults.yaml"
CONFIG_FILE_ENV = "LEDGER_CONFIG_FILE"
DATABASE_URL_ENV = "DATABASE_URL"

__all__ = [
    "DatabaseConfig",
    "LedgerConfig",
    "LoggingConfig",
    "RetryConfig",
    "ValidationConfig",
    "get_active_config",
]


def get_active_config(config_path: Path | str | None = None) -> LedgerConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Optional YAML override file.  Defaults to the file
            named by ``LEDGER_CONFIG_FILE`` when that variable is set.

    Returns:
        A frozen ``LedgerConfig``.
    """
    data = load_yaml_file(DEFAULTS_FILE)

    override_path = config_path or os.environ.get(CONFIG_FILE_ENV)
    if override_path:
        data = merge_config(data, load_yaml_file(Path(override_path)))

    database_url = os.environ.get(DATABASE_URL_ENV)
    if database_url:
        data = merge_config(data, {"database": {"url": database_url}})

    config = parse_config(data)

    _logger.info(
        "config_loaded",
        extra={
            "config_file": str(override_path) if override_path else None,
            "database_url": config.database.redacted_url,
            "isolation_level": config.database.isolation_level,
            "retry_max_attempts": config.retry.max_attempts,
        },
    )
    return config
