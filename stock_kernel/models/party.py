"""Customers billed on invoices and the sellers (sales reps) credited with them."""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase


class Customer(TrackedBase):
    __tablename__ = "customers"

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    address: Mapped[str | None] = mapped_column(String(500), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Customer {self.name}>"


class Seller(TrackedBase):
    __tablename__ = "sellers"

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Seller {self.name}>"
