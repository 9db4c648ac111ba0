"""
Module: stock_kernel.models.stock_adjustment
Responsibility: ORM persistence for non-sale stock movements (returns,
    write-offs and count corrections).
Architecture position: Kernel > Models.  May import from db/base.py.
    MUST NOT import from services/ or selectors/.

Invariants enforced:
    - invoice_id and return_action are present iff adjustment_type == RETURN
      (CHECK constraint).
    - Immutable from creation (ORM listener).  Mistakes are undone by a new
      compensating adjustment that points back via compensates_id.
    - applied_quantity is the signed delta actually applied to the batch.
      It differs from the requested quantity only when a downward count
      correction was clamped at zero (balance_clamped is then True), and it
      is 0 for SCRAP returns, which never touch the batch.

Audit relevance:
    unit_cost is snapshotted at creation.  For returns it is the invoice
    line's cost price, so a restock reverses exactly the cost booked at
    sale; for write-offs it is the batch cost.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase, UUIDString
from stock_kernel.domain.adjustments import (
    COUNT_CORRECTION_TYPES,
    PROFIT_WRITE_OFF_TYPES,
    WRITE_OFF_TYPES,
    AdjustmentType,
    ReturnAction,
)

__all__ = [
    "AdjustmentType",
    "COUNT_CORRECTION_TYPES",
    "PROFIT_WRITE_OFF_TYPES",
    "ReturnAction",
    "StockAdjustment",
    "WRITE_OFF_TYPES",
]


class StockAdjustment(TrackedBase):
    __tablename__ = "stock_adjustments"

    __table_args__ = (
        CheckConstraint(
            "(adjustment_type = 'return' AND invoice_id IS NOT NULL "
            "AND return_action IS NOT NULL) OR "
            "(adjustment_type <> 'return' AND invoice_id IS NULL "
            "AND return_action IS NULL)",
            name="ck_adjustment_return_fields",
        ),
        CheckConstraint("quantity <> 0", name="ck_adjustment_quantity_non_zero"),
        Index("idx_adjustment_batch", "batch_id"),
        Index("idx_adjustment_invoice", "invoice_id", "product_id", "batch_id"),
        Index("idx_adjustment_type_created", "adjustment_type", "created_at"),
    )

    adjustment_type: Mapped[AdjustmentType] = mapped_column(String(20), nullable=False)

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("batch_lots.id"),
        nullable=False,
    )

    # Requested quantity: signed for FOUND/CORRECTION, positive otherwise
    quantity: Mapped[int] = mapped_column(nullable=False)

    applied_quantity: Mapped[int] = mapped_column(nullable=False)

    unit_cost: Mapped[Decimal] = mapped_column(nullable=False)

    reason: Mapped[str] = mapped_column(String(1000), nullable=False)

    invoice_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("invoices.id"),
        nullable=True,
    )

    return_action: Mapped[ReturnAction | None] = mapped_column(String(10), nullable=True)

    # Invoice credit granted for a return
    return_value: Mapped[Decimal | None] = mapped_column(nullable=True)

    balance_clamped: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    compensates_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("stock_adjustments.id"),
        nullable=True,
        unique=True,
    )

    def __repr__(self) -> str:
        return f"<StockAdjustment {self.adjustment_type} qty={self.quantity}>"

    @property
    def is_return(self) -> bool:
        return self.adjustment_type == AdjustmentType.RETURN
