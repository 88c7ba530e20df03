"""Transaction coordinator (unit-of-work boundary).

Repositories never open transactions for multi-record mutations on their
own; the service hands them the ``TransactionScope`` received from
``run_atomic`` so that every write issued against it commits or rolls back
together.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, TypeVar

import structlog
from django.db import DEFAULT_DB_ALIAS, transaction

from modules.core.exceptions import InternalError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class TransactionScope:
    """Handle to an open atomic block on a database alias."""

    using: str = DEFAULT_DB_ALIAS

    @property
    def is_active(self) -> bool:
        return transaction.get_connection(self.using).in_atomic_block

    def ensure_active(self) -> None:
        """Raise ``InternalError`` when used outside ``run_atomic``."""
        if not self.is_active:
            raise InternalError(
                "Write attempted outside of an active transaction.",
                code="no_active_transaction",
                using=self.using,
            )


class ITransactionCoordinator(ABC):
    """Groups writes across repositories into one atomic unit."""

    @abstractmethod
    def run_atomic(self, work: Callable[[TransactionScope], T]) -> T:
        """Run ``work`` inside a transaction.

        Commits when ``work`` returns.  On any exception every write made
        through the scope is rolled back and the exception is re-raised
        unchanged.
        """


class DjangoTransactionCoordinator(ITransactionCoordinator):
    """Coordinator backed by ``django.db.transaction.atomic``.

    Nested calls (e.g. inside a test transaction) become savepoints, which
    still give all-or-nothing semantics for the inner unit of work.
    """

    def __init__(self, using: str = DEFAULT_DB_ALIAS) -> None:
        self._using = using

    def run_atomic(self, work: Callable[[TransactionScope], T]) -> T:
        scope = TransactionScope(using=self._using)
        log = logger.bind(db_alias=self._using)
        try:
            with transaction.atomic(using=self._using):
                result = work(scope)
        except Exception as exc:
            log.warning(
                "transaction.rolled_back",
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise
        log.debug("transaction.committed")
        return result
