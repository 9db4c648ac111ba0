"""
Module: stock_kernel.selectors.batch_selector
Responsibility: Read-only batch stock queries -- sellable batches in
    allocation order, aggregate product stock, and automated allocation
    over the current balances.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - available_batches() never returns an empty or expired batch.
    - Ordering is the allocation order: expiry ascending, undated last,
      lot number as tie-break.  Sorting happens in Python so NULL expiry
      placement does not depend on the database.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import func, or_, select

from stock_engines.allocation import AllocationMode, AllocationResult, allocate
from stock_kernel.domain.dtos import BatchSnapshot
from stock_kernel.exceptions import ProductNotFoundError
from stock_kernel.models.batch_lot import BatchLot
from stock_kernel.models.catalog import Product
from stock_kernel.selectors.base import BaseSelector


def _snapshot(batch: BatchLot) -> BatchSnapshot:
    return BatchSnapshot(
        batch_id=batch.id,
        product_id=batch.product_id,
        lot_number=batch.lot_number,
        quantity=batch.quantity,
        unit_cost=batch.unit_cost,
        expiry_date=batch.expiry_date,
    )


class BatchSelector(BaseSelector[BatchLot]):
    def get_batch(self, batch_id: UUID) -> BatchSnapshot | None:
        batch = self.session.get(BatchLot, batch_id)
        return _snapshot(batch) if batch is not None else None

    def batches_for_product(self, product_id: UUID) -> list[BatchSnapshot]:
        """Every batch of the product, empty and expired ones included."""
        rows = self.session.execute(
            select(BatchLot).where(BatchLot.product_id == product_id)
        ).scalars().all()
        return sorted((_snapshot(b) for b in rows), key=lambda s: s.sort_key)

    def available_batches(self, product_id: UUID, as_of: date) -> list[BatchSnapshot]:
        """Batches with stock that have not expired before ``as_of``."""
        rows = self.session.execute(
            select(BatchLot).where(
                BatchLot.product_id == product_id,
                BatchLot.quantity > 0,
                or_(BatchLot.expiry_date.is_(None), BatchLot.expiry_date >= as_of),
            )
        ).scalars().all()
        return sorted((_snapshot(b) for b in rows), key=lambda s: s.sort_key)

    def product_available_quantity(self, product_id: UUID, as_of: date | None = None) -> int:
        """
        Aggregate stock of a product across batches.

        With ``as_of`` only unexpired batches count.
        """
        query = select(func.coalesce(func.sum(BatchLot.quantity), 0)).where(
            BatchLot.product_id == product_id
        )
        if as_of is not None:
            query = query.where(
                or_(BatchLot.expiry_date.is_(None), BatchLot.expiry_date >= as_of)
            )
        return int(self.session.execute(query).scalar_one())

    def allocate(
        self,
        product_id: UUID,
        required: int,
        as_of: date,
        mode: AllocationMode = AllocationMode.SINGLE_BATCH,
    ) -> AllocationResult:
        """
        Run the allocation engine over the product's current batches.

        Raises:
            ProductNotFoundError: Unknown product.
            InsufficientStockError: No allocation satisfies ``required``.
        """
        product = self.session.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(str(product_id))
        return allocate(
            product_id=product_id,
            product_name=product.name,
            batches=self.available_batches(product_id, as_of),
            required=required,
            as_of=as_of,
            mode=mode,
        )
