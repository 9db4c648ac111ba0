"""
BatchService -- receiving stock and locking batch rows.

Responsibility:
    Creates batches (opening stock or purchases) with their first ledger
    entry, and provides the ordered row-locking primitive the settlement
    and adjustment services use before validating balances.

Architecture position:
    Kernel > Services.

Invariants enforced:
    - A new batch's balance equals its single OPENING/PURCHASE entry.
    - Locks are always taken in batch-id order, so two confirmations that
      share batches cannot deadlock on each other.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.db.types import to_decimal
from stock_kernel.domain.clock import Clock
from stock_kernel.exceptions import BatchNotFoundError, ProductNotFoundError, ValidationError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.audit_event import AuditAction
from stock_kernel.models.batch_lot import BatchLot
from stock_kernel.models.catalog import Product
from stock_kernel.models.stock_ledger import LedgerEntryType
from stock_kernel.services.auditor_service import AuditorService
from stock_kernel.services.base import BaseService
from stock_kernel.services.stock_ledger_service import StockLedgerService

logger = get_logger("services.batch")

RECEIPT_ENTRY_TYPES = frozenset({LedgerEntryType.OPENING, LedgerEntryType.PURCHASE})


class BatchService(BaseService):
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditorService | None = None,
        ledger: StockLedgerService | None = None,
    ):
        super().__init__(session, clock)
        self._auditor = auditor or AuditorService(session, self.clock)
        self._ledger = ledger or StockLedgerService(session, self.clock)

    def receive_batch(
        self,
        product_id: UUID,
        lot_number: str,
        quantity: int,
        actor_id: UUID,
        unit_cost: Decimal | None = None,
        expiry_date: date | None = None,
        entry_type: LedgerEntryType = LedgerEntryType.PURCHASE,
        reference: str | None = None,
    ) -> BatchLot:
        """
        Bring a new lot into stock.

        ``unit_cost`` defaults to the product's current cost price.

        Raises:
            ProductNotFoundError: Unknown product.
            ValidationError: Non-positive quantity, negative cost, duplicate
                lot number for the product, or a non-receipt entry type.
        """
        product = self.session.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(str(product_id))
        if quantity <= 0:
            raise ValidationError(f"Received quantity must be positive, got {quantity}", field="quantity")
        if LedgerEntryType(entry_type) not in RECEIPT_ENTRY_TYPES:
            raise ValidationError(f"{entry_type} is not a receipt entry type", field="entry_type")
        if not lot_number or not lot_number.strip():
            raise ValidationError("Lot number is required", field="lot_number")

        cost = product.cost_price if unit_cost is None else to_decimal(unit_cost)
        if cost < 0:
            raise ValidationError("unit_cost must be non-negative", field="unit_cost")

        duplicate = self.session.execute(
            select(BatchLot.id).where(
                BatchLot.product_id == product_id,
                BatchLot.lot_number == lot_number.strip(),
            )
        ).scalar_one_or_none()
        if duplicate is not None:
            raise ValidationError(
                f"Lot {lot_number} already exists for {product.name}", field="lot_number"
            )

        batch = BatchLot(
            product_id=product_id,
            lot_number=lot_number.strip(),
            quantity=0,
            unit_cost=cost,
            expiry_date=expiry_date,
            created_at=self.clock.now(),
            created_by_id=actor_id,
        )
        self.session.add(batch)
        self.session.flush()

        self._ledger.apply_movement(
            batch,
            LedgerEntryType(entry_type),
            quantity,
            unit_cost=cost,
            reference=reference or f"{LedgerEntryType(entry_type).value} {batch.lot_number}",
            actor_id=actor_id,
            source_id=batch.id,
        )

        self._auditor.record(
            "BatchLot",
            batch.id,
            AuditAction.BATCH_RECEIVED,
            actor_id,
            {
                "product_id": product_id,
                "lot_number": batch.lot_number,
                "quantity": quantity,
                "unit_cost": cost,
                "expiry_date": expiry_date,
                "entry_type": LedgerEntryType(entry_type).value,
            },
        )
        logger.info(
            "batch_received",
            extra={
                "batch_id": str(batch.id),
                "product_id": str(product_id),
                "lot_number": batch.lot_number,
                "quantity": quantity,
            },
        )
        return batch

    def lock_batches(self, batch_ids: Iterable[UUID]) -> dict[UUID, BatchLot]:
        """
        ``SELECT ... FOR UPDATE`` the given batches in id order.

        Raises:
            BatchNotFoundError: If any id does not resolve.
        """
        wanted = sorted(set(batch_ids), key=str)
        if not wanted:
            return {}
        rows = self.session.execute(
            select(BatchLot)
            .where(BatchLot.id.in_(wanted))
            .order_by(BatchLot.id)
            .with_for_update()
        ).scalars().all()
        found = {b.id: b for b in rows}
        for batch_id in wanted:
            if batch_id not in found:
                raise BatchNotFoundError(str(batch_id))
        return found

    def lock_batch(self, batch_id: UUID) -> BatchLot:
        return self.lock_batches([batch_id])[batch_id]
