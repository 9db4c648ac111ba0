"""
Immutable value objects passed between services, selectors and engines.

No ORM types cross these boundaries: selectors project rows into these
dataclasses and engines compute over them.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from stock_kernel.domain.expiry import expiry_sort_key


@dataclass(frozen=True)
class BatchSnapshot:
    """Point-in-time view of one batch."""

    batch_id: UUID
    product_id: UUID
    lot_number: str
    quantity: int
    unit_cost: Decimal
    expiry_date: date | None

    @property
    def sort_key(self) -> tuple[date, str]:
        return expiry_sort_key(self.expiry_date, self.lot_number)


class StockNoticeKind(str, Enum):
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"


@dataclass(frozen=True)
class StockNotice:
    """Advisory raised after a deduction; never blocks the operation."""

    kind: StockNoticeKind
    product_id: UUID
    product_name: str
    batch_id: UUID
    lot_number: str
    remaining: int
    threshold: int

    @property
    def message(self) -> str:
        if self.kind == StockNoticeKind.OUT_OF_STOCK:
            return f"{self.product_name} batch {self.lot_number} is out of stock"
        return (
            f"{self.product_name} batch {self.lot_number} is low on stock: "
            f"{self.remaining} left (threshold {self.threshold})"
        )


def stock_notice_for(
    product_id: UUID,
    product_name: str,
    batch_id: UUID,
    lot_number: str,
    remaining: int,
    threshold: int,
) -> StockNotice | None:
    """Notice for a post-deduction balance, or None when stock is healthy."""
    if remaining == 0:
        kind = StockNoticeKind.OUT_OF_STOCK
    elif 0 < remaining <= threshold:
        kind = StockNoticeKind.LOW_STOCK
    else:
        return None
    return StockNotice(
        kind=kind,
        product_id=product_id,
        product_name=product_name,
        batch_id=batch_id,
        lot_number=lot_number,
        remaining=remaining,
        threshold=threshold,
    )
