"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Hands out strictly increasing numbers for invoices, quotations,
    ledger entries and audit events, and formats document numbers such as
    ``INV-000042``.
    Uses a dedicated counter table with row-level locking so two concurrent
    confirmations never share a number.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Called by
    SettlementService, QuotationService, StockLedgerService and
    AuditorService.

Invariants enforced:
    - Monotonic: the locked counter row is the sole source of the next value;
      max(number)+1 over the documents table is never used.
    - Transactional: a value is only consumed when the caller commits.

Failure modes:
    - IntegrityError on a concurrent first use of a sequence (handled with a
      savepoint and retry).
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_kernel.logging_config import get_logger
from stock_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Non-goals:
        - Does NOT call ``session.commit()``; the caller owns the transaction.
    """

    INVOICE = "invoice"
    QUOTATION = "quotation"
    AUDIT_EVENT = "audit_event"
    STOCK_LEDGER = "stock_ledger"

    def __init__(self, session: Session):
        self._session = session

    def next_value(self, sequence_name: str) -> int:
        """
        Lock the named counter (creating it on first use), increment it,
        and return the new value.  Always > 0.
        """
        counter = self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if counter is None:
            # First use.  Another writer may create the same row concurrently,
            # so insert under a savepoint and fall back to locking theirs.
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._session.execute(
                    select(SequenceCounter)
                    .where(SequenceCounter.name == sequence_name)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                ).scalar_one()

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def next_document_number(self, sequence_name: str, prefix: str, width: int = 6) -> str:
        """Allocate the next value and render it as ``PREFIX-000001``."""
        value = self.next_value(sequence_name)
        return f"{prefix}-{value:0{width}d}"

    def current_value(self, sequence_name: str) -> int | None:
        """Current value without incrementing, or None if never used."""
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None
