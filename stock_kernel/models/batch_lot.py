"""
Module: stock_kernel.models.batch_lot
Responsibility: ORM persistence for batch/lot stock balances.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/expiry.py.  MUST NOT import from services/ or selectors/.

Invariants enforced:
    - quantity >= 0 (CHECK constraint; services validate before mutating).
    - quantity == sum(ledger quantity_in) - sum(ledger quantity_out) for the
      batch.  Every service that changes quantity appends the matching
      StockLedgerEntry in the same flush.
    - version increments on every UPDATE (SQLAlchemy version_id_col); a write
      based on a stale read fails with StaleDataError, translated to
      OptimisticLockError by the services.
    - (product_id, lot_number) is unique.

Failure modes:
    - IntegrityError on a negative quantity reaching the database.
    - StaleDataError on a concurrent modification.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import TrackedBase, UUIDString
from stock_kernel.domain.expiry import expiry_sort_key, is_expired
from stock_kernel.models.catalog import Product


class BatchLot(TrackedBase):
    """
    A received lot of one product with its own cost and expiry.

    ``unit_cost`` is the cost basis recorded on SALE and write-off ledger
    entries drawn from this batch.
    """

    __tablename__ = "batch_lots"

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_batch_quantity_non_negative"),
        UniqueConstraint("product_id", "lot_number", name="uq_batch_product_lot"),
        Index("idx_batch_product", "product_id"),
        Index("idx_batch_expiry", "product_id", "expiry_date"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    lot_number: Mapped[str] = mapped_column(String(100), nullable=False)

    quantity: Mapped[int] = mapped_column(nullable=False, default=0)

    unit_cost: Mapped[Decimal] = mapped_column(nullable=False)

    expiry_date: Mapped[date | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    product: Mapped[Product] = relationship(lazy="selectin")

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<BatchLot {self.lot_number} qty={self.quantity}>"

    @property
    def sort_key(self) -> tuple[date, str]:
        return expiry_sort_key(self.expiry_date, self.lot_number)

    def is_expired(self, as_of: date) -> bool:
        return is_expired(self.expiry_date, as_of)
