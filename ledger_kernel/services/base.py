"""
BaseService -- abstract base for kernel services.

Responsibility:
    Common constructor and session-handling contract for every
    session-bound service.  Services use ``session.flush()`` and never
    ``session.commit()``; the TransactionCoordinator owns the transaction.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for session-bound services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.
    """

    def __init__(self, session: Session):
        self.session = session
