"""
Catalog reference data: product categories and products.

A product carries three independent prices:

    cost_price   internal cost, drives COGS
    tp_rate      trade price billed to customers (falls back to cost_price)
    sales_price  maximum retail price (MRP), printed reference only

Invoice lines snapshot all three at creation; later price edits never
change a settled invoice.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import TrackedBase, UUIDString


class Category(TrackedBase):
    """Product grouping used by the category filter and grouped P&L view."""

    __tablename__ = "categories"

    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)

    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    def __repr__(self) -> str:
        return f"<Category {self.name}>"


class Product(TrackedBase):
    """
    Sellable product.

    Stock is not held here; it lives on the product's BatchLot rows.
    """

    __tablename__ = "products"

    __table_args__ = (
        Index("idx_product_category", "category_id"),
        Index("idx_product_name", "name"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    sku: Mapped[str | None] = mapped_column(String(100), nullable=True, unique=True)

    # Selling unit, e.g. "strip", "box", "vial"
    unit: Mapped[str] = mapped_column(String(30), nullable=False, default="pcs")

    category_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("categories.id"),
        nullable=True,
    )

    cost_price: Mapped[Decimal] = mapped_column(nullable=False)

    tp_rate: Mapped[Decimal | None] = mapped_column(nullable=True)

    sales_price: Mapped[Decimal] = mapped_column(nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    category: Mapped[Category | None] = relationship(lazy="selectin")

    def __repr__(self) -> str:
        return f"<Product {self.name}>"

    @property
    def billing_rate(self) -> Decimal:
        """Trade price, or cost price when no trade price is set."""
        if self.tp_rate is None or self.tp_rate == 0:
            return self.cost_price
        return self.tp_rate
