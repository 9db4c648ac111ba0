"""
BaseService -- common constructor and flush contract for kernel services.

Responsibility:
    Every write-side service receives a SQLAlchemy ``Session`` and an
    injected Clock.  Services flush; they never commit or roll back.  The
    caller (``session_scope()`` or a test harness) owns the transaction, so
    multi-step operations such as confirm-then-pay stay atomic.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - Flush-only: no ``session.commit()`` / ``session.rollback()`` here.
    - Stale writes surface as OptimisticLockError, never as a raw
      SQLAlchemy StaleDataError.
"""

from abc import ABC
from uuid import UUID

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.exceptions import OptimisticLockError
from stock_kernel.logging_config import get_logger

logger = get_logger("services.base")


class BaseService(ABC):
    """
    Abstract base class for write-side services.

    Non-goals:
        - Does NOT manage transaction lifecycle.
        - Does NOT provide read-only queries; those live in selectors/.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

    def _flush(self, entity_type: str, entity_id: UUID | str) -> None:
        """Flush pending changes, translating version conflicts."""
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning(
                "optimistic_lock_conflict",
                extra={"entity_type": entity_type, "entity_id": str(entity_id)},
            )
            raise OptimisticLockError(entity_type, str(entity_id)) from exc
