"""
Module: stock_kernel.models.invoice
Responsibility: ORM persistence for invoices and their priced lines.
Architecture position: Kernel > Models.  May import from db/ and domain/.
    MUST NOT import from services/ or selectors/.

Invariants enforced:
    - due == max(0, total - paid) after every settlement operation.
    - Status is one of DRAFT, CONFIRMED, PARTIAL, PAID, CANCELLED and only
      SettlementService moves it.  PAID iff due == 0 on a settled invoice;
      PARTIAL iff 0 < paid < total.
    - Invoices are never physically deleted (ORM listener).
    - Invoice lines are immutable from creation: the price snapshots
      (unit_price, tp_rate, cost_price) are frozen so later product price
      edits cannot rewrite history (ORM listener).
    - version increments on every UPDATE (optimistic locking).

Failure modes:
    - ImmutabilityViolationError on deleting an invoice or touching a line.
    - StaleDataError on a concurrent modification.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import TrackedBase, UUIDString
from stock_kernel.domain.pricing import DiscountType
from stock_kernel.models.batch_lot import BatchLot
from stock_kernel.models.catalog import Product
from stock_kernel.models.party import Customer, Seller


class InvoiceStatus(str, Enum):
    """Settlement lifecycle.

    DRAFT -> CONFIRMED -> PARTIAL / PAID, and DRAFT -> CANCELLED.
    """

    DRAFT = "draft"
    CONFIRMED = "confirmed"
    PARTIAL = "partial"
    PAID = "paid"
    CANCELLED = "cancelled"


# Statuses whose stock has been deducted and which count as sales
SETTLED_STATUSES = frozenset(
    {InvoiceStatus.CONFIRMED, InvoiceStatus.PARTIAL, InvoiceStatus.PAID}
)


class Invoice(TrackedBase):
    """
    Customer invoice.

    ``subtotal`` is the sum of line totals, ``discount`` the resolved
    invoice-level discount amount, ``total = max(0, subtotal - discount)``.
    Return credits later reduce ``total`` and ``due``.
    """

    __tablename__ = "invoices"

    __table_args__ = (
        CheckConstraint("paid >= 0", name="ck_invoice_paid_non_negative"),
        CheckConstraint("due >= 0", name="ck_invoice_due_non_negative"),
        Index("idx_invoice_customer", "customer_id"),
        Index("idx_invoice_seller", "seller_id"),
        Index("idx_invoice_status_created", "status", "created_at"),
    )

    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    customer_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("customers.id"),
        nullable=False,
    )

    seller_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("sellers.id"),
        nullable=True,
    )

    status: Mapped[InvoiceStatus] = mapped_column(
        String(20),
        default=InvoiceStatus.DRAFT,
        nullable=False,
    )

    subtotal: Mapped[Decimal] = mapped_column(nullable=False)

    discount_type: Mapped[DiscountType] = mapped_column(
        String(10),
        default=DiscountType.AMOUNT,
        nullable=False,
    )

    discount_value: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    # Resolved invoice-level discount amount
    discount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    total: Mapped[Decimal] = mapped_column(nullable=False)

    paid: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    due: Mapped[Decimal] = mapped_column(nullable=False)

    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    confirmed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    lines: Mapped[list["InvoiceLine"]] = relationship(
        back_populates="invoice",
        order_by="InvoiceLine.line_no",
        lazy="selectin",
        passive_deletes="all",
    )

    customer: Mapped[Customer] = relationship(lazy="selectin")

    seller: Mapped[Seller | None] = relationship(lazy="selectin")

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_number} status={self.status}>"

    @property
    def is_draft(self) -> bool:
        return self.status == InvoiceStatus.DRAFT

    @property
    def is_settled(self) -> bool:
        """True once stock has been deducted (CONFIRMED, PARTIAL or PAID)."""
        return InvoiceStatus(self.status) in SETTLED_STATUSES

    def recompute_balance(self) -> None:
        """
        Derive ``due`` and the settled status from ``total`` and ``paid``.

        Only meaningful once the invoice has left DRAFT.
        """
        self.due = max(Decimal("0"), self.total - self.paid)
        if self.due == 0:
            self.status = InvoiceStatus.PAID.value
        elif self.paid > 0:
            self.status = InvoiceStatus.PARTIAL.value
        else:
            self.status = InvoiceStatus.CONFIRMED.value


class InvoiceLine(TrackedBase):
    """
    One priced line: a product drawn from exactly one batch.

    ``paid_quantity + free_quantity`` units leave the batch on confirm;
    only ``paid_quantity`` bills at ``tp_rate``.
    """

    __tablename__ = "invoice_lines"

    __table_args__ = (
        CheckConstraint("paid_quantity >= 0", name="ck_line_paid_non_negative"),
        CheckConstraint("free_quantity >= 0", name="ck_line_free_non_negative"),
        CheckConstraint(
            "paid_quantity + free_quantity > 0", name="ck_line_quantity_positive"
        ),
        Index("idx_line_invoice", "invoice_id"),
        Index("idx_line_product_batch", "product_id", "batch_id"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("invoices.id"),
        nullable=False,
    )

    line_no: Mapped[int] = mapped_column(nullable=False)

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

    paid_quantity: Mapped[int] = mapped_column(nullable=False)

    free_quantity: Mapped[int] = mapped_column(nullable=False, default=0)

    # Price snapshots taken when the line was created
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)  # MRP
    tp_rate: Mapped[Decimal] = mapped_column(nullable=False)
    cost_price: Mapped[Decimal] = mapped_column(nullable=False)

    discount_type: Mapped[DiscountType] = mapped_column(
        String(10),
        default=DiscountType.AMOUNT,
        nullable=False,
    )

    discount_value: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    line_total: Mapped[Decimal] = mapped_column(nullable=False)

    invoice: Mapped[Invoice] = relationship(back_populates="lines")

    product: Mapped[Product] = relationship(lazy="selectin")

    batch: Mapped[BatchLot] = relationship(lazy="selectin")

    def __repr__(self) -> str:
        return (
            f"<InvoiceLine #{self.line_no} paid={self.paid_quantity} "
            f"free={self.free_quantity}>"
        )

    @property
    def required_quantity(self) -> int:
        """Units leaving the batch: paid plus free."""
        return self.paid_quantity + self.free_quantity
