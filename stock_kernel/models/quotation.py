"""
Quotations: priced offers that carry no stock effect until converted.

Conversion produces a DRAFT invoice whose lines are allocated to batches
automatically (earliest-expiring single batch per line).
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import TrackedBase, UUIDString
from stock_kernel.domain.pricing import DiscountType
from stock_kernel.models.catalog import Product
from stock_kernel.models.party import Customer


class QuotationStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CONVERTED = "converted"


class Quotation(TrackedBase):
    __tablename__ = "quotations"

    __table_args__ = (Index("idx_quotation_customer", "customer_id"),)

    quotation_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

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

    status: Mapped[QuotationStatus] = mapped_column(
        String(20),
        default=QuotationStatus.DRAFT,
        nullable=False,
    )

    valid_until: Mapped[date | None] = mapped_column(nullable=True)

    discount_type: Mapped[DiscountType] = mapped_column(
        String(10),
        default=DiscountType.AMOUNT,
        nullable=False,
    )

    discount_value: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    subtotal: Mapped[Decimal] = mapped_column(nullable=False)

    total: Mapped[Decimal] = mapped_column(nullable=False)

    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    converted_invoice_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("invoices.id"),
        nullable=True,
    )

    lines: Mapped[list["QuotationLine"]] = relationship(
        back_populates="quotation",
        order_by="QuotationLine.line_no",
        lazy="selectin",
    )

    customer: Mapped[Customer] = relationship(lazy="selectin")

    def __repr__(self) -> str:
        return f"<Quotation {self.quotation_number} status={self.status}>"


class QuotationLine(TrackedBase):
    __tablename__ = "quotation_lines"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_quotation_line_quantity_positive"),
        CheckConstraint("free_quantity >= 0", name="ck_quotation_line_free_non_negative"),
        Index("idx_quotation_line_quotation", "quotation_id"),
    )

    quotation_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("quotations.id"),
        nullable=False,
    )

    line_no: Mapped[int] = mapped_column(nullable=False)

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    # Billed units
    quantity: Mapped[int] = mapped_column(nullable=False)

    free_quantity: Mapped[int] = mapped_column(nullable=False, default=0)

    tp_rate: Mapped[Decimal] = mapped_column(nullable=False)

    mrp: Mapped[Decimal] = mapped_column(nullable=False)

    discount_type: Mapped[DiscountType] = mapped_column(
        String(10),
        default=DiscountType.AMOUNT,
        nullable=False,
    )

    discount_value: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    line_total: Mapped[Decimal] = mapped_column(nullable=False)

    quotation: Mapped[Quotation] = relationship(back_populates="lines")

    product: Mapped[Product] = relationship(lazy="selectin")
