"""
QuotationService -- priced offers and their conversion into invoices.

Quotations never touch stock.  Converting one allocates each line to
batches automatically, earliest expiry first, and creates a DRAFT invoice
through SettlementService; the quotation is then marked CONVERTED.

    DRAFT -> SENT -> ACCEPTED -> CONVERTED
    DRAFT, SENT or ACCEPTED -> REJECTED or EXPIRED
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_engines.allocation import AllocationMode
from stock_kernel.db.types import ZERO, to_decimal
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.pricing import (
    DiscountType,
    allocate_invoice_discount,
    compute_invoice_total,
    compute_line_amounts,
)
from stock_kernel.exceptions import (
    InsufficientStockError,
    PartyNotFoundError,
    ProductNotFoundError,
    QuotationNotFoundError,
    QuotationStateError,
    StockShortfall,
    ValidationError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.audit_event import AuditAction
from stock_kernel.models.catalog import Product
from stock_kernel.models.invoice import Invoice
from stock_kernel.models.party import Customer, Seller
from stock_kernel.models.quotation import Quotation, QuotationLine, QuotationStatus
from stock_kernel.selectors.batch_selector import BatchSelector
from stock_kernel.services.auditor_service import AuditorService
from stock_kernel.services.base import BaseService
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.services.settlement_service import InvoiceLineInput, SettlementService

logger = get_logger("services.quotation")

_TRANSITIONS: dict[QuotationStatus, frozenset[QuotationStatus]] = {
    QuotationStatus.DRAFT: frozenset(
        {QuotationStatus.SENT, QuotationStatus.ACCEPTED, QuotationStatus.REJECTED, QuotationStatus.EXPIRED}
    ),
    QuotationStatus.SENT: frozenset(
        {QuotationStatus.ACCEPTED, QuotationStatus.REJECTED, QuotationStatus.EXPIRED}
    ),
    QuotationStatus.ACCEPTED: frozenset({QuotationStatus.REJECTED, QuotationStatus.EXPIRED}),
}

CONVERTIBLE_STATUSES = frozenset(
    {QuotationStatus.DRAFT, QuotationStatus.SENT, QuotationStatus.ACCEPTED}
)


@dataclass(frozen=True)
class QuotationLineInput:
    product_id: UUID
    quantity: int
    free_quantity: int = 0
    tp_rate: Decimal | None = None
    discount_type: DiscountType = DiscountType.AMOUNT
    discount_value: Decimal = ZERO


class QuotationService(BaseService):
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditorService | None = None,
        settlement: SettlementService | None = None,
        allocation_mode: AllocationMode = AllocationMode.SINGLE_BATCH,
        quotation_number_prefix: str = "QTN",
    ):
        super().__init__(session, clock)
        self._auditor = auditor or AuditorService(session, self.clock)
        self._settlement = settlement or SettlementService(session, self.clock, self._auditor)
        self._sequence = SequenceService(session)
        self._allocation_mode = AllocationMode(allocation_mode)
        self._prefix = quotation_number_prefix

    def create_quotation(
        self,
        customer_id: UUID,
        lines: list[QuotationLineInput],
        actor_id: UUID,
        seller_id: UUID | None = None,
        valid_until: date | None = None,
        discount_type: DiscountType = DiscountType.AMOUNT,
        discount_value: Decimal = ZERO,
        notes: str | None = None,
    ) -> Quotation:
        if not lines:
            raise ValidationError("A quotation needs at least one line", field="lines")
        if self.session.get(Customer, customer_id) is None:
            raise PartyNotFoundError("Customer", str(customer_id))
        if seller_id is not None and self.session.get(Seller, seller_id) is None:
            raise PartyNotFoundError("Seller", str(seller_id))

        now = self.clock.now()
        priced = []
        for position, item in enumerate(lines, start=1):
            if item.quantity <= 0 or item.free_quantity < 0:
                raise ValidationError(
                    f"Line {position}: quantity must be positive and free quantity non-negative",
                    field="quantity",
                )
            product = self.session.get(Product, item.product_id)
            if product is None:
                raise ProductNotFoundError(str(item.product_id))
            tp_rate = product.billing_rate if item.tp_rate is None else to_decimal(item.tp_rate)
            try:
                amounts = compute_line_amounts(
                    tp_rate, item.quantity, item.discount_type, to_decimal(item.discount_value)
                )
            except ValueError as exc:
                raise ValidationError(f"Line {position}: {exc}", field="discount_value") from exc
            priced.append((item, product, tp_rate, amounts.net))

        subtotal = sum((net for *_, net in priced), ZERO)
        try:
            _, total = compute_invoice_total(subtotal, discount_type, to_decimal(discount_value))
        except ValueError as exc:
            raise ValidationError(str(exc), field="discount_value") from exc

        quotation = Quotation(
            quotation_number=self._sequence.next_document_number(
                SequenceService.QUOTATION, self._prefix
            ),
            customer_id=customer_id,
            seller_id=seller_id,
            status=QuotationStatus.DRAFT.value,
            valid_until=valid_until,
            discount_type=DiscountType(discount_type).value,
            discount_value=to_decimal(discount_value),
            subtotal=subtotal,
            total=total,
            notes=notes,
            created_at=now,
            created_by_id=actor_id,
        )
        self.session.add(quotation)
        for line_no, (item, product, tp_rate, net) in enumerate(priced, start=1):
            self.session.add(
                QuotationLine(
                    quotation=quotation,
                    line_no=line_no,
                    product_id=product.id,
                    quantity=item.quantity,
                    free_quantity=item.free_quantity,
                    tp_rate=tp_rate,
                    mrp=product.sales_price,
                    discount_type=DiscountType(item.discount_type).value,
                    discount_value=to_decimal(item.discount_value),
                    line_total=net,
                    created_at=now,
                    created_by_id=actor_id,
                )
            )
        self.session.flush()

        self._auditor.record(
            "Quotation",
            quotation.id,
            AuditAction.QUOTATION_CREATED,
            actor_id,
            {"quotation_number": quotation.quotation_number, "total": total},
        )
        logger.info(
            "quotation_created",
            extra={"quotation_number": quotation.quotation_number, "total": str(total)},
        )
        return quotation

    def _get(self, quotation_id: UUID) -> Quotation:
        quotation = self.session.execute(
            select(Quotation).where(Quotation.id == quotation_id).with_for_update()
        ).scalar_one_or_none()
        if quotation is None:
            raise QuotationNotFoundError(str(quotation_id))
        return quotation

    def set_status(self, quotation_id: UUID, status: QuotationStatus, actor_id: UUID) -> Quotation:
        """
        Move a quotation along its lifecycle.  CONVERTED is reached only
        through convert_to_invoice().

        Raises:
            QuotationStateError: Transition not allowed from the current status.
        """
        quotation = self._get(quotation_id)
        current = QuotationStatus(quotation.status)
        target = QuotationStatus(status)
        if target not in _TRANSITIONS.get(current, frozenset()):
            raise QuotationStateError(str(quotation_id), current.value, f"move to {target.value}")

        quotation.status = target.value
        quotation.updated_by_id = actor_id
        self.session.flush()

        self._auditor.record(
            "Quotation",
            quotation.id,
            AuditAction.QUOTATION_STATUS_CHANGED,
            actor_id,
            {"from": current.value, "to": target.value},
        )
        return quotation

    def convert_to_invoice(self, quotation_id: UUID, actor_id: UUID) -> Invoice:
        """
        Allocate every quotation line to batches and create a DRAFT invoice.

        Raises:
            QuotationStateError: Quotation is rejected, expired or converted.
            InsufficientStockError: Lines that cannot be allocated, all listed.
        """
        quotation = self._get(quotation_id)
        current = QuotationStatus(quotation.status)
        if current not in CONVERTIBLE_STATUSES:
            raise QuotationStateError(str(quotation_id), current.value, "convert")

        stock = BatchSelector(self.session)
        today = self.clock.today()
        invoice_lines: list[InvoiceLineInput] = []
        shortfalls: list[StockShortfall] = []
        for line in quotation.lines:
            try:
                allocation = stock.allocate(
                    line.product_id,
                    line.quantity + line.free_quantity,
                    as_of=today,
                    mode=self._allocation_mode,
                )
            except InsufficientStockError as exc:
                shortfalls.extend(exc.shortfalls)
                continue
            invoice_lines.extend(self._split_line(line, allocation.allocations))

        if shortfalls:
            logger.warning(
                "quotation_conversion_insufficient_stock",
                extra={
                    "quotation_number": quotation.quotation_number,
                    "offending_lines": len(shortfalls),
                },
            )
            raise InsufficientStockError(shortfalls)

        invoice = self._settlement.create_invoice(
            customer_id=quotation.customer_id,
            lines=invoice_lines,
            actor_id=actor_id,
            seller_id=quotation.seller_id,
            discount_type=DiscountType(quotation.discount_type),
            discount_value=quotation.discount_value,
            notes=f"Converted from {quotation.quotation_number}",
        )

        quotation.status = QuotationStatus.CONVERTED.value
        quotation.converted_invoice_id = invoice.id
        quotation.updated_by_id = actor_id
        self.session.flush()

        self._auditor.record(
            "Quotation",
            quotation.id,
            AuditAction.QUOTATION_CONVERTED,
            actor_id,
            {"invoice_id": invoice.id, "invoice_number": invoice.invoice_number},
        )
        logger.info(
            "quotation_converted",
            extra={
                "quotation_number": quotation.quotation_number,
                "invoice_number": invoice.invoice_number,
            },
        )
        return invoice

    @staticmethod
    def _split_line(line: QuotationLine, allocations) -> list[InvoiceLineInput]:
        """
        One invoice line per allocated batch.  Paid units fill batches
        first, free units after; an AMOUNT discount is spread over the
        pieces in proportion to their billed value.
        """
        paid_left = line.quantity
        pieces: list[tuple[UUID, int, int]] = []
        for allocation in allocations:
            paid = min(paid_left, allocation.quantity)
            paid_left -= paid
            pieces.append((allocation.batch_id, paid, allocation.quantity - paid))

        kind = DiscountType(line.discount_type)
        if kind == DiscountType.AMOUNT and len(pieces) > 1:
            discounts = allocate_invoice_discount(
                line.discount_value, [line.tp_rate * paid for _, paid, _ in pieces]
            )
        else:
            discounts = [line.discount_value] * len(pieces)

        return [
            InvoiceLineInput(
                product_id=line.product_id,
                batch_id=batch_id,
                paid_quantity=paid,
                free_quantity=free,
                discount_type=kind,
                discount_value=discount,
                tp_rate=line.tp_rate,
            )
            for (batch_id, paid, free), discount in zip(pieces, discounts)
        ]
