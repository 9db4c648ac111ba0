"""Payments received against settled invoices.  Append-only."""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase, UUIDString


class PaymentMethod(str, Enum):
    CASH = "cash"
    BANK = "bank"
    BKASH = "bkash"
    NAGAD = "nagad"
    CHECK = "check"
    OTHER = "other"


class Payment(TrackedBase):
    """
    One receipt applied to an invoice.

    The invoice's ``paid`` is the running sum of its payments; corrections
    are made with a new record, never by editing this one.
    """

    __tablename__ = "payments"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
        Index("idx_payment_invoice", "invoice_id"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("invoices.id"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    method: Mapped[PaymentMethod] = mapped_column(
        String(20),
        default=PaymentMethod.CASH,
        nullable=False,
    )

    # Cheque number, transaction id, etc.
    reference: Mapped[str | None] = mapped_column(String(200), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    def __repr__(self) -> str:
        return f"<Payment {self.amount} via {self.method}>"
