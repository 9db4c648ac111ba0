"""
SettlementService -- the invoice settlement state machine.

Responsibility:
    Creates draft invoices with frozen price snapshots, confirms them by
    deducting stock from the chosen batches, applies payments and cancels
    drafts.

        DRAFT --confirm--> CONFIRMED --pay--> PARTIAL --pay--> PAID
          |                    |_______________pay_____________^
          +--cancel--> CANCELLED

Architecture position:
    Kernel > Services.  Uses BatchService for row locks,
    StockLedgerService for every quantity change, SequenceService for
    invoice numbers and AuditorService for the audit chain.

Invariants enforced:
    - Confirmation is all-or-nothing: every line is validated against the
      locked batch balances (cumulatively, when lines share a batch) before
      the first deduction.  One InsufficientStockError names every
      offending line.
    - Exactly one SALE ledger entry per confirmed line.
    - due == max(0, total - paid); PAID iff due == 0; PARTIAL iff
      0 < paid < total.
    - Stock notices are advisory and never block a confirmation.

Failure modes:
    - ValidationError, PartyNotFoundError, ProductNotFoundError,
      BatchNotFoundError on bad input at creation.
    - InsufficientStockError at creation (product has no stock, or a line
      needs more than its batch holds) and at confirmation.
    - AlreadyConfirmedError / InvalidInvoiceStateError on illegal
      transitions.
    - OptimisticLockError when a batch or invoice changed under us.
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.db.types import ZERO, to_decimal
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import StockNotice, stock_notice_for
from stock_kernel.domain.pricing import (
    DiscountType,
    compute_invoice_total,
    compute_line_amounts,
)
from stock_kernel.exceptions import (
    AlreadyConfirmedError,
    BatchNotFoundError,
    InsufficientStockError,
    InvalidInvoiceStateError,
    InvoiceNotFoundError,
    PartyNotFoundError,
    ProductNotFoundError,
    StockShortfall,
    ValidationError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.audit_event import AuditAction
from stock_kernel.models.batch_lot import BatchLot
from stock_kernel.models.catalog import Product
from stock_kernel.models.invoice import Invoice, InvoiceLine, InvoiceStatus
from stock_kernel.models.party import Customer, Seller
from stock_kernel.models.payment import Payment, PaymentMethod
from stock_kernel.models.stock_ledger import LedgerEntryType
from stock_kernel.selectors.batch_selector import BatchSelector
from stock_kernel.services.auditor_service import AuditorService
from stock_kernel.services.base import BaseService
from stock_kernel.services.batch_service import BatchService
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.services.stock_ledger_service import StockLedgerService, shortfall_for

logger = get_logger("services.settlement")

DEFAULT_LOW_STOCK_THRESHOLD = 50

PAYABLE_STATUSES = frozenset({InvoiceStatus.CONFIRMED, InvoiceStatus.PARTIAL})


@dataclass(frozen=True)
class InvoiceLineInput:
    """
    One requested line.  ``tp_rate`` overrides the product's billing rate
    (quotation conversion carries the quoted rate through).
    """

    product_id: UUID
    batch_id: UUID
    paid_quantity: int
    free_quantity: int = 0
    discount_type: DiscountType = DiscountType.AMOUNT
    discount_value: Decimal = ZERO
    tp_rate: Decimal | None = None

    @property
    def required_quantity(self) -> int:
        return self.paid_quantity + self.free_quantity


@dataclass(frozen=True)
class ConfirmationResult:
    invoice: Invoice
    notices: tuple[StockNotice, ...]


@dataclass(frozen=True)
class PaymentResult:
    invoice: Invoice
    payment: Payment


class SettlementService(BaseService):
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditorService | None = None,
        low_stock_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD,
        invoice_number_prefix: str = "INV",
    ):
        super().__init__(session, clock)
        self._auditor = auditor or AuditorService(session, self.clock)
        self._ledger = StockLedgerService(session, self.clock)
        self._batches = BatchService(session, self.clock, self._auditor, self._ledger)
        self._sequence = SequenceService(session)
        self._low_stock_threshold = low_stock_threshold
        self._invoice_number_prefix = invoice_number_prefix

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_invoice(
        self,
        customer_id: UUID,
        lines: list[InvoiceLineInput],
        actor_id: UUID,
        seller_id: UUID | None = None,
        discount_type: DiscountType = DiscountType.AMOUNT,
        discount_value: Decimal = ZERO,
        notes: str | None = None,
    ) -> Invoice:
        """
        Persist a DRAFT invoice.  No stock moves.

        Each line snapshots the product's MRP, billing rate and cost price
        as they stand now.

        Raises:
            ValidationError: No lines, bad quantities, a batch of another
                product, or a discount larger than what it applies to.
            InsufficientStockError: A product has no stock at all, or a
                line needs more than its batch holds.
        """
        if not lines:
            raise ValidationError("An invoice needs at least one line", field="lines")
        if self.session.get(Customer, customer_id) is None:
            raise PartyNotFoundError("Customer", str(customer_id))
        if seller_id is not None and self.session.get(Seller, seller_id) is None:
            raise PartyNotFoundError("Seller", str(seller_id))

        stock = BatchSelector(self.session)
        today = self.clock.today()
        shortfalls: list[StockShortfall] = []
        claimed: dict[UUID, int] = {}
        priced: list[tuple[InvoiceLineInput, Product, BatchLot, Decimal, Decimal]] = []

        for position, item in enumerate(lines, start=1):
            if item.paid_quantity < 0 or item.free_quantity < 0:
                raise ValidationError(
                    f"Line {position}: quantities must be non-negative", field="quantity"
                )
            if item.required_quantity == 0:
                raise ValidationError(
                    f"Line {position}: paid plus free quantity must be positive",
                    field="quantity",
                )

            product = self.session.get(Product, item.product_id)
            if product is None:
                raise ProductNotFoundError(str(item.product_id))

            on_hand = stock.product_available_quantity(product.id, as_of=today)
            if on_hand <= 0:
                shortfalls.append(
                    StockShortfall(
                        product_id=str(product.id),
                        product_name=product.name,
                        batch_id=None,
                        lot_number=None,
                        available=0,
                        required=item.required_quantity,
                    )
                )
                continue

            batch = self.session.get(BatchLot, item.batch_id)
            if batch is None:
                raise BatchNotFoundError(str(item.batch_id))
            if batch.product_id != product.id:
                raise ValidationError(
                    f"Line {position}: batch {batch.lot_number} does not belong to {product.name}",
                    field="batch_id",
                )

            already = claimed.get(batch.id, 0)
            if already + item.required_quantity > batch.quantity:
                shortfalls.append(
                    shortfall_for(
                        batch, item.required_quantity, available=batch.quantity - already
                    )
                )
            claimed[batch.id] = already + item.required_quantity

            tp_rate = product.billing_rate if item.tp_rate is None else to_decimal(item.tp_rate)
            if tp_rate < 0:
                raise ValidationError(f"Line {position}: negative trade price", field="tp_rate")
            try:
                amounts = compute_line_amounts(
                    tp_rate,
                    item.paid_quantity,
                    item.discount_type,
                    to_decimal(item.discount_value),
                )
            except ValueError as exc:
                raise ValidationError(f"Line {position}: {exc}", field="discount_value") from exc
            priced.append((item, product, batch, tp_rate, amounts.net))

        if shortfalls:
            raise InsufficientStockError(shortfalls)

        subtotal = sum((net for *_, net in priced), ZERO)
        try:
            discount, total = compute_invoice_total(
                subtotal, discount_type, to_decimal(discount_value)
            )
        except ValueError as exc:
            raise ValidationError(str(exc), field="discount_value") from exc

        now = self.clock.now()
        invoice = Invoice(
            invoice_number=self._sequence.next_document_number(
                SequenceService.INVOICE, self._invoice_number_prefix
            ),
            customer_id=customer_id,
            seller_id=seller_id,
            status=InvoiceStatus.DRAFT.value,
            subtotal=subtotal,
            discount_type=DiscountType(discount_type).value,
            discount_value=to_decimal(discount_value),
            discount=discount,
            total=total,
            paid=ZERO,
            due=total,
            notes=notes,
            created_at=now,
            created_by_id=actor_id,
        )
        self.session.add(invoice)

        for line_no, (item, product, batch, tp_rate, net) in enumerate(priced, start=1):
            self.session.add(
                InvoiceLine(
                    invoice=invoice,
                    line_no=line_no,
                    product_id=product.id,
                    batch_id=batch.id,
                    paid_quantity=item.paid_quantity,
                    free_quantity=item.free_quantity,
                    unit_price=product.sales_price,
                    tp_rate=tp_rate,
                    cost_price=product.cost_price,
                    discount_type=DiscountType(item.discount_type).value,
                    discount_value=to_decimal(item.discount_value),
                    line_total=net,
                    created_at=now,
                    created_by_id=actor_id,
                )
            )
        self.session.flush()

        self._auditor.record(
            "Invoice",
            invoice.id,
            AuditAction.INVOICE_CREATED,
            actor_id,
            {
                "invoice_number": invoice.invoice_number,
                "customer_id": customer_id,
                "subtotal": subtotal,
                "discount": discount,
                "total": total,
                "line_count": len(priced),
            },
        )
        logger.info(
            "invoice_created",
            extra={
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.invoice_number,
                "total": str(total),
                "line_count": len(priced),
            },
        )
        return invoice

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _lock_invoice(self, invoice_id: UUID) -> Invoice:
        invoice = self.session.execute(
            select(Invoice).where(Invoice.id == invoice_id).with_for_update()
        ).scalar_one_or_none()
        if invoice is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return invoice

    def confirm_invoice(self, invoice_id: UUID, actor_id: UUID) -> ConfirmationResult:
        """
        Deduct every line from its batch and mark the invoice CONFIRMED.

        An invoice whose total is zero settles straight to PAID.

        Raises:
            AlreadyConfirmedError: The invoice already left DRAFT.
            InvalidInvoiceStateError: The invoice was cancelled.
            InsufficientStockError: One or more lines exceed their batch;
                nothing is changed.
        """
        with LogContext.bind(invoice_id=str(invoice_id), actor_id=str(actor_id)):
            invoice = self._lock_invoice(invoice_id)
            status = InvoiceStatus(invoice.status)
            if status == InvoiceStatus.CANCELLED:
                raise InvalidInvoiceStateError(str(invoice_id), status.value, "confirm")
            if status != InvoiceStatus.DRAFT:
                logger.info(
                    "invoice_confirm_rejected",
                    extra={"invoice_number": invoice.invoice_number, "status": status.value},
                )
                raise AlreadyConfirmedError(str(invoice_id), status.value)

            batches = self._batches.lock_batches(line.batch_id for line in invoice.lines)

            remaining = {batch_id: batch.quantity for batch_id, batch in batches.items()}
            shortfalls: list[StockShortfall] = []
            for line in invoice.lines:
                available = remaining[line.batch_id]
                if line.required_quantity > available:
                    shortfalls.append(
                        shortfall_for(batches[line.batch_id], line.required_quantity, available)
                    )
                remaining[line.batch_id] = available - line.required_quantity

            if shortfalls:
                logger.warning(
                    "invoice_confirm_insufficient_stock",
                    extra={
                        "invoice_number": invoice.invoice_number,
                        "offending_lines": len(shortfalls),
                    },
                )
                raise InsufficientStockError(shortfalls)

            for line in invoice.lines:
                batch = batches[line.batch_id]
                self._ledger.apply_movement(
                    batch,
                    LedgerEntryType.SALE,
                    -line.required_quantity,
                    unit_cost=batch.unit_cost,
                    reference=(
                        f"{invoice.invoice_number} "
                        f"(paid {line.paid_quantity} + free {line.free_quantity})"
                    ),
                    actor_id=actor_id,
                    source_id=invoice.id,
                )

            invoice.status = InvoiceStatus.CONFIRMED.value
            invoice.confirmed_at = self.clock.now()
            invoice.updated_by_id = actor_id
            invoice.recompute_balance()
            self._flush("Invoice", invoice.id)

            notices = self._stock_notices(batches.values())

            self._auditor.record(
                "Invoice",
                invoice.id,
                AuditAction.INVOICE_CONFIRMED,
                actor_id,
                {
                    "invoice_number": invoice.invoice_number,
                    "status": invoice.status,
                    "deductions": [
                        {"batch_id": line.batch_id, "quantity": line.required_quantity}
                        for line in invoice.lines
                    ],
                },
            )
            logger.info(
                "invoice_confirmed",
                extra={
                    "invoice_number": invoice.invoice_number,
                    "status": invoice.status,
                    "batches": len(batches),
                    "notices": len(notices),
                },
            )
            return ConfirmationResult(invoice=invoice, notices=notices)

    def _stock_notices(self, batches) -> tuple[StockNotice, ...]:
        notices = []
        for batch in sorted(batches, key=lambda b: b.sort_key):
            notice = stock_notice_for(
                product_id=batch.product_id,
                product_name=batch.product.name,
                batch_id=batch.id,
                lot_number=batch.lot_number,
                remaining=batch.quantity,
                threshold=self._low_stock_threshold,
            )
            if notice is None:
                continue
            logger.warning(
                "low_stock_notice",
                extra={
                    "kind": notice.kind.value,
                    "batch_id": str(batch.id),
                    "lot_number": batch.lot_number,
                    "remaining": batch.quantity,
                    "threshold": self._low_stock_threshold,
                },
            )
            notices.append(notice)
        return tuple(notices)

    def apply_payment(
        self,
        invoice_id: UUID,
        amount: Decimal,
        actor_id: UUID,
        method: PaymentMethod = PaymentMethod.CASH,
        reference: str | None = None,
        notes: str | None = None,
    ) -> PaymentResult:
        """
        Record a payment and move the invoice to PARTIAL or PAID.

        Overpayment is accepted; due floors at zero.

        Raises:
            ValidationError: Non-positive amount or unknown method.
            InvalidInvoiceStateError: Invoice is not CONFIRMED or PARTIAL.
        """
        amount = to_decimal(amount)
        if amount <= 0:
            raise ValidationError(f"Payment amount must be positive, got {amount}", field="amount")
        try:
            method = PaymentMethod(method)
        except ValueError as exc:
            raise ValidationError(f"Unknown payment method: {method!r}", field="method") from exc

        with LogContext.bind(invoice_id=str(invoice_id), actor_id=str(actor_id)):
            invoice = self._lock_invoice(invoice_id)
            status = InvoiceStatus(invoice.status)
            if status not in PAYABLE_STATUSES:
                raise InvalidInvoiceStateError(str(invoice_id), status.value, "apply payment to")

            payment = Payment(
                invoice_id=invoice.id,
                amount=amount,
                method=method.value,
                reference=reference,
                notes=notes,
                created_at=self.clock.now(),
                created_by_id=actor_id,
            )
            self.session.add(payment)

            invoice.paid = invoice.paid + amount
            invoice.updated_by_id = actor_id
            invoice.recompute_balance()
            self._flush("Invoice", invoice.id)

            self._auditor.record(
                "Invoice",
                invoice.id,
                AuditAction.PAYMENT_APPLIED,
                actor_id,
                {
                    "payment_id": payment.id,
                    "amount": amount,
                    "method": method.value,
                    "paid": invoice.paid,
                    "due": invoice.due,
                    "status": invoice.status,
                },
            )
            logger.info(
                "payment_applied",
                extra={
                    "invoice_number": invoice.invoice_number,
                    "amount": str(amount),
                    "method": method.value,
                    "status": invoice.status,
                },
            )
            return PaymentResult(invoice=invoice, payment=payment)

    def cancel_invoice(self, invoice_id: UUID, actor_id: UUID, reason: str | None = None) -> Invoice:
        """
        Cancel a DRAFT invoice.  No stock ever moved, so none is restored.

        Raises:
            InvalidInvoiceStateError: The invoice is not a draft.
        """
        with LogContext.bind(invoice_id=str(invoice_id), actor_id=str(actor_id)):
            invoice = self._lock_invoice(invoice_id)
            status = InvoiceStatus(invoice.status)
            if status != InvoiceStatus.DRAFT:
                raise InvalidInvoiceStateError(str(invoice_id), status.value, "cancel")

            invoice.status = InvoiceStatus.CANCELLED.value
            invoice.cancelled_at = self.clock.now()
            invoice.updated_by_id = actor_id
            self._flush("Invoice", invoice.id)

            self._auditor.record(
                "Invoice",
                invoice.id,
                AuditAction.INVOICE_CANCELLED,
                actor_id,
                {"invoice_number": invoice.invoice_number, "reason": reason},
            )
            logger.info("invoice_cancelled", extra={"invoice_number": invoice.invoice_number})
            return invoice
