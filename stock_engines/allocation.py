"""
stock_engines.allocation -- expiry-ordered batch selection.

Responsibility:
    Given a product's batches and a required quantity, choose which batch
    (or batches) to draw from.

    SINGLE_BATCH (default): the earliest-expiring batch that alone covers
        the requirement.  A line never spans batches, so if no single batch
        is large enough the request fails even when the batches together
        would cover it.
    MULTI_BATCH: fill across batches in expiry order.

Architecture position:
    Engines -- pure calculation, zero I/O.  Inputs are BatchSnapshot DTOs.

Invariants enforced:
    - Expired and empty batches are never offered.
    - Expiry ascending, undated batches last, lot number as tie-break.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Iterable
from uuid import UUID

from stock_engines.tracer import traced_engine
from stock_kernel.domain.dtos import BatchSnapshot
from stock_kernel.domain.expiry import is_expired
from stock_kernel.exceptions import InsufficientStockError, StockShortfall


class AllocationMode(str, Enum):
    SINGLE_BATCH = "single_batch"
    MULTI_BATCH = "multi_batch"


@dataclass(frozen=True)
class BatchAllocation:
    batch_id: UUID
    lot_number: str
    quantity: int
    expiry_date: date | None


@dataclass(frozen=True)
class AllocationResult:
    product_id: UUID
    required: int
    mode: AllocationMode
    allocations: tuple[BatchAllocation, ...]

    @property
    def allocated(self) -> int:
        return sum(a.quantity for a in self.allocations)


def order_available(batches: Iterable[BatchSnapshot], as_of: date) -> list[BatchSnapshot]:
    """Sellable batches (quantity > 0, not expired) in allocation order."""
    sellable = [b for b in batches if b.quantity > 0 and not is_expired(b.expiry_date, as_of)]
    return sorted(sellable, key=lambda b: b.sort_key)


@traced_engine(
    "allocation", "1.0", fingerprint_fields=("product_id", "required", "as_of", "mode")
)
def allocate(
    *,
    product_id: UUID,
    product_name: str,
    batches: Iterable[BatchSnapshot],
    required: int,
    as_of: date,
    mode: AllocationMode = AllocationMode.SINGLE_BATCH,
) -> AllocationResult:
    """
    Choose batches for ``required`` units of one product.

    Raises:
        ValueError: If required is not positive.
        InsufficientStockError: If the requirement cannot be met under the
            chosen mode.  For SINGLE_BATCH the reported availability is
            the largest single batch; for MULTI_BATCH it is the total.
    """
    if required <= 0:
        raise ValueError(f"Required quantity must be positive, got {required}")

    ordered = order_available(batches, as_of)

    if AllocationMode(mode) == AllocationMode.SINGLE_BATCH:
        for batch in ordered:
            if batch.quantity >= required:
                return AllocationResult(
                    product_id=product_id,
                    required=required,
                    mode=AllocationMode.SINGLE_BATCH,
                    allocations=(
                        BatchAllocation(
                            batch_id=batch.batch_id,
                            lot_number=batch.lot_number,
                            quantity=required,
                            expiry_date=batch.expiry_date,
                        ),
                    ),
                )
        largest = max((b.quantity for b in ordered), default=0)
        raise InsufficientStockError([
            StockShortfall(
                product_id=str(product_id),
                product_name=product_name,
                batch_id=None,
                lot_number=None,
                available=largest,
                required=required,
            )
        ])

    allocations: list[BatchAllocation] = []
    outstanding = required
    for batch in ordered:
        if outstanding == 0:
            break
        take = min(batch.quantity, outstanding)
        allocations.append(
            BatchAllocation(
                batch_id=batch.batch_id,
                lot_number=batch.lot_number,
                quantity=take,
                expiry_date=batch.expiry_date,
            )
        )
        outstanding -= take

    if outstanding > 0:
        raise InsufficientStockError([
            StockShortfall(
                product_id=str(product_id),
                product_name=product_name,
                batch_id=None,
                lot_number=None,
                available=required - outstanding,
                required=required,
            )
        ])

    return AllocationResult(
        product_id=product_id,
        required=required,
        mode=AllocationMode.MULTI_BATCH,
        allocations=tuple(allocations),
    )


def select_single_batch(
    *,
    product_id: UUID,
    product_name: str,
    batches: Iterable[BatchSnapshot],
    required: int,
    as_of: date,
) -> BatchAllocation:
    """Earliest-expiring batch that alone holds ``required`` units."""
    result = allocate(
        product_id=product_id,
        product_name=product_name,
        batches=batches,
        required=required,
        as_of=as_of,
        mode=AllocationMode.SINGLE_BATCH,
    )
    return result.allocations[0]
