"""
Module: stock_kernel.selectors.invoice_selector
Responsibility: Read-only invoice views for document rendering and
    receivables -- settled invoice with its frozen line snapshots, payment
    history, returned quantities and customer outstanding due.
Architecture position: Kernel > Selectors.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from stock_kernel.db.types import ZERO
from stock_kernel.domain.adjustments import AdjustmentType
from stock_kernel.domain.pricing import DiscountType
from stock_kernel.exceptions import InvoiceNotFoundError
from stock_kernel.models.invoice import SETTLED_STATUSES, Invoice, InvoiceStatus
from stock_kernel.models.payment import Payment, PaymentMethod
from stock_kernel.models.stock_adjustment import StockAdjustment
from stock_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class InvoiceLineView:
    line_no: int
    product_id: UUID
    product_name: str
    batch_id: UUID
    lot_number: str
    paid_quantity: int
    free_quantity: int
    unit_price: Decimal
    tp_rate: Decimal
    cost_price: Decimal
    discount_type: DiscountType
    discount_value: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class PaymentView:
    payment_id: UUID
    amount: Decimal
    method: PaymentMethod
    reference: str | None
    created_at: datetime


@dataclass(frozen=True)
class InvoiceView:
    invoice_id: UUID
    invoice_number: str
    status: InvoiceStatus
    customer_id: UUID
    customer_name: str
    seller_id: UUID | None
    seller_name: str | None
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    paid: Decimal
    due: Decimal
    created_at: datetime
    confirmed_at: datetime | None
    lines: tuple[InvoiceLineView, ...]


class InvoiceSelector(BaseSelector[Invoice]):
    def get_invoice(self, invoice_id: UUID) -> InvoiceView:
        invoice = self.session.get(Invoice, invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return InvoiceView(
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            status=InvoiceStatus(invoice.status),
            customer_id=invoice.customer_id,
            customer_name=invoice.customer.name,
            seller_id=invoice.seller_id,
            seller_name=invoice.seller.name if invoice.seller is not None else None,
            subtotal=invoice.subtotal,
            discount=invoice.discount,
            total=invoice.total,
            paid=invoice.paid,
            due=invoice.due,
            created_at=invoice.created_at,
            confirmed_at=invoice.confirmed_at,
            lines=tuple(
                InvoiceLineView(
                    line_no=line.line_no,
                    product_id=line.product_id,
                    product_name=line.product.name,
                    batch_id=line.batch_id,
                    lot_number=line.batch.lot_number,
                    paid_quantity=line.paid_quantity,
                    free_quantity=line.free_quantity,
                    unit_price=line.unit_price,
                    tp_rate=line.tp_rate,
                    cost_price=line.cost_price,
                    discount_type=DiscountType(line.discount_type),
                    discount_value=line.discount_value,
                    line_total=line.line_total,
                )
                for line in invoice.lines
            ),
        )

    def payments(self, invoice_id: UUID) -> list[PaymentView]:
        rows = self.session.execute(
            select(Payment)
            .where(Payment.invoice_id == invoice_id)
            .order_by(Payment.created_at, Payment.id)
        ).scalars().all()
        return [
            PaymentView(
                payment_id=p.id,
                amount=p.amount,
                method=PaymentMethod(p.method),
                reference=p.reference,
                created_at=p.created_at,
            )
            for p in rows
        ]

    def returned_quantity(self, invoice_id: UUID, product_id: UUID, batch_id: UUID) -> int:
        """Units already returned against one (invoice, product, batch)."""
        total = self.session.execute(
            select(func.coalesce(func.sum(StockAdjustment.quantity), 0)).where(
                StockAdjustment.adjustment_type == AdjustmentType.RETURN.value,
                StockAdjustment.invoice_id == invoice_id,
                StockAdjustment.product_id == product_id,
                StockAdjustment.batch_id == batch_id,
            )
        ).scalar_one()
        return int(total)

    def customer_outstanding_due(self, customer_id: UUID) -> Decimal:
        """Sum of ``due`` over the customer's settled invoices."""
        total = self.session.execute(
            select(func.coalesce(func.sum(Invoice.due), 0)).where(
                Invoice.customer_id == customer_id,
                Invoice.status.in_([s.value for s in SETTLED_STATUSES]),
            )
        ).scalar_one()
        return Decimal(total) if total else ZERO
