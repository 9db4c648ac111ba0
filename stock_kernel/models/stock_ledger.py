"""
Module: stock_kernel.models.stock_ledger
Responsibility: ORM persistence for the append-only stock movement ledger.
Architecture position: Kernel > Models.  May import from db/base.py.
    MUST NOT import from services/ or selectors/.

Invariants enforced:
    - Append-only: UPDATE and DELETE are blocked by ORM listeners
      (db/immutability.py).
    - Exactly one of quantity_in / quantity_out is positive; the other is 0.
    - For every batch: batch.quantity == sum(quantity_in) - sum(quantity_out).
      StockLedgerService is the only writer and appends in the same flush
      as the balance change.
    - seq is unique and strictly increasing, so history reads in the
      order movements were written.

Audit relevance:
    The ledger is the movement history behind every batch balance.
    ``unit_cost`` is the batch cost basis at the moment of movement, so
    point-in-time valuation never depends on later cost edits.
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase, UUIDString


class LedgerEntryType(str, Enum):
    """Kinds of stock movement."""

    OPENING = "opening"
    PURCHASE = "purchase"
    SALE = "sale"
    RETURN = "return"
    DAMAGE = "damage"
    EXPIRED = "expired"
    LOST = "lost"
    FOUND = "found"
    CORRECTION = "correction"


class StockLedgerEntry(TrackedBase):
    """One stock movement against one batch."""

    __tablename__ = "stock_ledger_entries"

    __table_args__ = (
        CheckConstraint("quantity_in >= 0", name="ck_ledger_in_non_negative"),
        CheckConstraint("quantity_out >= 0", name="ck_ledger_out_non_negative"),
        CheckConstraint(
            "(quantity_in > 0 AND quantity_out = 0) OR (quantity_in = 0 AND quantity_out > 0)",
            name="ck_ledger_single_direction",
        ),
        Index("idx_ledger_batch", "batch_id"),
        Index("idx_ledger_product_created", "product_id", "created_at"),
        Index("idx_ledger_seq", "seq"),
    )

    # Insertion order across all batches (SequenceService)
    seq: Mapped[int] = mapped_column(nullable=False, unique=True)

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

    entry_type: Mapped[LedgerEntryType] = mapped_column(String(20), nullable=False)

    quantity_in: Mapped[int] = mapped_column(nullable=False, default=0)

    quantity_out: Mapped[int] = mapped_column(nullable=False, default=0)

    unit_cost: Mapped[Decimal] = mapped_column(nullable=False)

    # Human-readable origin, e.g. "INV-000012 (paid 5, free 3)"
    reference: Mapped[str] = mapped_column(String(500), nullable=False)

    # Invoice or adjustment that caused the movement, if any
    source_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<StockLedgerEntry {self.entry_type} in={self.quantity_in} "
            f"out={self.quantity_out}>"
        )

    @property
    def signed_quantity(self) -> int:
        return self.quantity_in - self.quantity_out
