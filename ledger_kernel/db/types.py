"""
Module: ledger_kernel.db.types
Responsibility: Annotated type aliases and helpers for ledger column types.
    Centralizes monetary precision so that every model and
    service uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - MONEY_DECIMAL_PLACES is the canonical precision for signed amounts,
      initial balances and cumulative deltas.
    - No floats anywhere in the kernel: monetary values are Decimal.
"""

from decimal import Decimal
from typing import Annotated

from sqlalchemy import BigInteger, Numeric

MONEY_DECIMAL_PLACES = 2

# Signed monetary amount, two decimal places
Money = Annotated[Decimal, Numeric(18, MONEY_DECIMAL_PLACES)]

# Per-account insertion counter used as the same-day tie-break
InsertionSeq = Annotated[int, BigInteger]

ZERO = Decimal("0.00")


def decimal_places_of(value: Decimal) -> int:
    """Number of fractional digits carried by ``value`` (0 for integers)."""
    exponent = value.normalize().as_tuple().exponent
    return -exponent if isinstance(exponent, int) and exponent < 0 else 0
