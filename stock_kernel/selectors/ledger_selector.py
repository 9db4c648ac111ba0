"""
Module: stock_kernel.selectors.ledger_selector
Responsibility: Read-only stock ledger queries and balance reconciliation.
    The ledger is the movement history; ``BatchLot.quantity`` is the running
    balance.  Reconciliation recomputes the balance from the ledger and
    compares.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - For every batch: quantity == sum(quantity_in) - sum(quantity_out).
      reconcile_batch() / reconcile_all() report any batch where this
      fails; they never repair.

Audit relevance:
    Ledger entries carry the unit cost in force at the movement, so the
    cost basis of any past sale or write-off can be read back here.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from stock_kernel.exceptions import BatchNotFoundError
from stock_kernel.models.batch_lot import BatchLot
from stock_kernel.models.stock_ledger import LedgerEntryType, StockLedgerEntry
from stock_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class LedgerEntryView:
    entry_id: UUID
    seq: int
    batch_id: UUID
    product_id: UUID
    entry_type: LedgerEntryType
    quantity_in: int
    quantity_out: int
    unit_cost: Decimal
    reference: str
    source_id: UUID | None
    created_at: datetime

    @property
    def signed_quantity(self) -> int:
        return self.quantity_in - self.quantity_out


@dataclass(frozen=True)
class BatchReconciliation:
    batch_id: UUID
    product_id: UUID
    lot_number: str
    recorded_quantity: int
    ledger_quantity: int

    @property
    def difference(self) -> int:
        return self.recorded_quantity - self.ledger_quantity

    @property
    def is_consistent(self) -> bool:
        return self.difference == 0


class LedgerSelector(BaseSelector[StockLedgerEntry]):
    def _view(self, entry: StockLedgerEntry) -> LedgerEntryView:
        return LedgerEntryView(
            entry_id=entry.id,
            seq=entry.seq,
            batch_id=entry.batch_id,
            product_id=entry.product_id,
            entry_type=LedgerEntryType(entry.entry_type),
            quantity_in=entry.quantity_in,
            quantity_out=entry.quantity_out,
            unit_cost=entry.unit_cost,
            reference=entry.reference,
            source_id=entry.source_id,
            created_at=entry.created_at,
        )

    def entries_for_batch(self, batch_id: UUID) -> list[LedgerEntryView]:
        rows = self.session.execute(
            select(StockLedgerEntry)
            .where(StockLedgerEntry.batch_id == batch_id)
            .order_by(StockLedgerEntry.seq)
        ).scalars().all()
        return [self._view(e) for e in rows]

    def entries_for_source(self, source_id: UUID) -> list[LedgerEntryView]:
        """Movements caused by one invoice or adjustment."""
        rows = self.session.execute(
            select(StockLedgerEntry)
            .where(StockLedgerEntry.source_id == source_id)
            .order_by(StockLedgerEntry.seq)
        ).scalars().all()
        return [self._view(e) for e in rows]

    def ledger_balance(self, batch_id: UUID) -> int:
        total = self.session.execute(
            select(
                func.coalesce(
                    func.sum(StockLedgerEntry.quantity_in - StockLedgerEntry.quantity_out), 0
                )
            ).where(StockLedgerEntry.batch_id == batch_id)
        ).scalar_one()
        return int(total)

    def reconcile_batch(self, batch_id: UUID) -> BatchReconciliation:
        batch = self.session.get(BatchLot, batch_id)
        if batch is None:
            raise BatchNotFoundError(str(batch_id))
        return BatchReconciliation(
            batch_id=batch.id,
            product_id=batch.product_id,
            lot_number=batch.lot_number,
            recorded_quantity=batch.quantity,
            ledger_quantity=self.ledger_balance(batch_id),
        )

    def reconcile_all(self) -> list[BatchReconciliation]:
        """One row per batch, ledger totals computed in a single grouped query."""
        movement = (
            select(
                StockLedgerEntry.batch_id.label("batch_id"),
                func.sum(
                    StockLedgerEntry.quantity_in - StockLedgerEntry.quantity_out
                ).label("net"),
            )
            .group_by(StockLedgerEntry.batch_id)
            .subquery()
        )
        rows = self.session.execute(
            select(BatchLot, func.coalesce(movement.c.net, 0))
            .outerjoin(movement, movement.c.batch_id == BatchLot.id)
            .order_by(BatchLot.lot_number, BatchLot.id)
        ).all()
        return [
            BatchReconciliation(
                batch_id=batch.id,
                product_id=batch.product_id,
                lot_number=batch.lot_number,
                recorded_quantity=batch.quantity,
                ledger_quantity=int(net),
            )
            for batch, net in rows
        ]

    def discrepancies(self) -> list[BatchReconciliation]:
        return [r for r in self.reconcile_all() if not r.is_consistent]
