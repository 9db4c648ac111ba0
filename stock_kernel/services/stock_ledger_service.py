"""
StockLedgerService -- the single writer of batch balance changes.

Responsibility:
    Applies a signed quantity delta to a batch and appends the matching
    StockLedgerEntry in the same flush.  No other code assigns
    ``BatchLot.quantity`` after creation, which is what keeps
    ``batch.quantity == sum(in) - sum(out)`` true at every commit.

Architecture position:
    Kernel > Services.  Called by BatchService (receipts), SettlementService
    (sales) and AdjustmentService (returns, write-offs, corrections).

Invariants enforced:
    - Non-negative balance: a delta that would take the batch below zero is
      rejected with InsufficientStockError before anything is written.
    - One entry per movement, in exactly one direction.

Failure modes:
    - InsufficientStockError on an over-withdrawal.
    - OptimisticLockError if the batch row changed under the caller.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock
from stock_kernel.exceptions import InsufficientStockError, StockShortfall
from stock_kernel.logging_config import get_logger
from stock_kernel.models.batch_lot import BatchLot
from stock_kernel.models.stock_ledger import LedgerEntryType, StockLedgerEntry
from stock_kernel.services.base import BaseService
from stock_kernel.services.sequence_service import SequenceService

logger = get_logger("services.stock_ledger")


def shortfall_for(batch: BatchLot, required: int, available: int | None = None) -> StockShortfall:
    return StockShortfall(
        product_id=str(batch.product_id),
        product_name=batch.product.name if batch.product is not None else str(batch.product_id),
        batch_id=str(batch.id),
        lot_number=batch.lot_number,
        available=batch.quantity if available is None else available,
        required=required,
    )


class StockLedgerService(BaseService):
    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)
        self._sequence = SequenceService(session)

    def apply_movement(
        self,
        batch: BatchLot,
        entry_type: LedgerEntryType,
        delta: int,
        unit_cost: Decimal,
        reference: str,
        actor_id: UUID,
        source_id: UUID | None = None,
    ) -> StockLedgerEntry:
        """
        Change ``batch.quantity`` by ``delta`` and record the movement.

        Args:
            batch: Batch row, ideally locked by the caller.
            entry_type: Kind of movement.
            delta: Signed quantity; positive adds stock.
            unit_cost: Cost basis recorded on the entry.
            reference: Human-readable origin.
            actor_id: Who caused the movement.
            source_id: Invoice or adjustment id behind the movement.

        Raises:
            ValueError: If delta is zero.
            InsufficientStockError: If the balance would go negative.
        """
        if delta == 0:
            raise ValueError("Stock movement delta must be non-zero")

        new_quantity = batch.quantity + delta
        if new_quantity < 0:
            raise InsufficientStockError([shortfall_for(batch, required=-delta)])

        # Allocated before the batch is dirtied; the counter query autoflushes.
        seq = self._sequence.next_value(SequenceService.STOCK_LEDGER)
        batch.quantity = new_quantity
        batch.updated_by_id = actor_id

        entry = StockLedgerEntry(
            seq=seq,
            product_id=batch.product_id,
            batch_id=batch.id,
            entry_type=LedgerEntryType(entry_type).value,
            quantity_in=delta if delta > 0 else 0,
            quantity_out=-delta if delta < 0 else 0,
            unit_cost=unit_cost,
            reference=reference,
            source_id=source_id,
            created_at=self.clock.now(),
            created_by_id=actor_id,
        )
        self.session.add(entry)
        self._flush("BatchLot", batch.id)

        logger.debug(
            "stock_movement_recorded",
            extra={
                "batch_id": str(batch.id),
                "entry_type": LedgerEntryType(entry_type).value,
                "delta": delta,
                "balance_after": new_quantity,
            },
        )
        return entry
