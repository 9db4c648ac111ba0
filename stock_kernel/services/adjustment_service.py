"""
AdjustmentService -- returns, write-offs and count corrections.

Responsibility:
    Records every non-sale stock movement as an immutable StockAdjustment,
    applies its quantity effect through StockLedgerService, and credits the
    invoice for customer returns.  Mistakes are reversed with
    ``compensate()``, which writes an opposite adjustment; nothing is ever
    edited or deleted.

Architecture position:
    Kernel > Services.

Request variants (stock_kernel.domain.adjustments):
    ReturnRequest           RESTOCK: batch += qty, RETURN ledger entry.
                            SCRAP: no stock or ledger effect.
                            Both credit the invoice by the return value.
    WriteOffRequest         DAMAGE / EXPIRED / LOST: batch -= qty, never
                            below zero.
    CountCorrectionRequest  FOUND / CORRECTION: signed delta; a decrease
                            past zero is clamped and reported with a
                            NegativeBalanceClampedWarning.

Invariants enforced:
    - Returns are only accepted against CONFIRMED/PARTIAL/PAID invoices
      and never exceed sold (paid + free) less already returned for the
      same invoice, product and batch.
    - applied_quantity on the adjustment equals the ledger delta written
      for it (0 when nothing moved).
    - An adjustment is compensated at most once.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.db.types import ZERO, round_money
from stock_kernel.domain.adjustments import (
    AdjustmentRequest,
    AdjustmentType,
    CountCorrectionRequest,
    ReturnAction,
    ReturnRequest,
    WriteOffRequest,
)
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.pricing import allocate_invoice_discount
from stock_kernel.exceptions import (
    AdjustmentNotFoundError,
    ExceedsReturnableQuantityError,
    InsufficientStockError,
    InvalidInvoiceStateError,
    InvoiceLineNotFoundError,
    InvoiceNotFoundError,
    NegativeBalanceClampedWarning,
    ValidationError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.audit_event import AuditAction
from stock_kernel.models.batch_lot import BatchLot
from stock_kernel.models.invoice import Invoice, InvoiceStatus
from stock_kernel.models.stock_adjustment import StockAdjustment
from stock_kernel.models.stock_ledger import LedgerEntryType
from stock_kernel.selectors.invoice_selector import InvoiceSelector
from stock_kernel.services.auditor_service import AuditorService
from stock_kernel.services.base import BaseService
from stock_kernel.services.batch_service import BatchService
from stock_kernel.services.stock_ledger_service import StockLedgerService, shortfall_for

logger = get_logger("services.adjustment")


@dataclass(frozen=True)
class AdjustmentResult:
    adjustment: StockAdjustment
    invoice: Invoice | None = None
    warnings: tuple[NegativeBalanceClampedWarning, ...] = ()

    @property
    def clamped(self) -> bool:
        return bool(self.warnings)


class AdjustmentService(BaseService):
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditorService | None = None,
    ):
        super().__init__(session, clock)
        self._auditor = auditor or AuditorService(session, self.clock)
        self._ledger = StockLedgerService(session, self.clock)
        self._batches = BatchService(session, self.clock, self._auditor, self._ledger)

    def record(self, request: AdjustmentRequest, actor_id: UUID) -> AdjustmentResult:
        """
        Record one adjustment.

        Raises:
            ValidationError: Batch does not belong to the product, or the
                request is not an adjustment variant.
            InsufficientStockError: A write-off larger than the batch.
            ExceedsReturnableQuantityError: Return above what is returnable.
            InvalidInvoiceStateError: Return against an unsettled invoice.
        """
        with LogContext.bind(actor_id=str(actor_id), batch_id=str(request.batch_id)):
            if isinstance(request, ReturnRequest):
                result = self._record_return(request, actor_id)
            elif isinstance(request, WriteOffRequest):
                result = self._record_write_off(request, actor_id)
            elif isinstance(request, CountCorrectionRequest):
                result = self._record_count_correction(request, actor_id)
            else:
                raise ValidationError(
                    f"Unsupported adjustment request: {type(request).__name__}"
                )

            adjustment = result.adjustment
            self._auditor.record(
                "StockAdjustment",
                adjustment.id,
                AuditAction.ADJUSTMENT_RECORDED,
                actor_id,
                {
                    "adjustment_type": adjustment.adjustment_type,
                    "batch_id": adjustment.batch_id,
                    "quantity": adjustment.quantity,
                    "applied_quantity": adjustment.applied_quantity,
                    "invoice_id": adjustment.invoice_id,
                    "return_action": adjustment.return_action,
                    "return_value": adjustment.return_value,
                },
            )
            logger.info(
                "adjustment_recorded",
                extra={
                    "adjustment_id": str(adjustment.id),
                    "adjustment_type": adjustment.adjustment_type,
                    "quantity": adjustment.quantity,
                    "applied_quantity": adjustment.applied_quantity,
                },
            )
            return result

    # ------------------------------------------------------------------
    # Variants
    # ------------------------------------------------------------------

    def _locked_batch_for(self, batch_id: UUID, product_id: UUID) -> BatchLot:
        batch = self._batches.lock_batch(batch_id)
        if batch.product_id != product_id:
            raise ValidationError(
                f"Batch {batch.lot_number} does not belong to product {product_id}",
                field="batch_id",
            )
        return batch

    def _new_adjustment(self, actor_id: UUID, **fields) -> StockAdjustment:
        adjustment = StockAdjustment(
            created_at=self.clock.now(),
            created_by_id=actor_id,
            **fields,
        )
        self.session.add(adjustment)
        self.session.flush()
        return adjustment

    def _record_return(self, request: ReturnRequest, actor_id: UUID) -> AdjustmentResult:
        invoice = self.session.execute(
            select(Invoice).where(Invoice.id == request.invoice_id).with_for_update()
        ).scalar_one_or_none()
        if invoice is None:
            raise InvoiceNotFoundError(str(request.invoice_id))
        if not invoice.is_settled:
            raise InvalidInvoiceStateError(
                str(invoice.id), InvoiceStatus(invoice.status).value, "return goods against"
            )

        discount_shares = allocate_invoice_discount(
            invoice.discount, [line.line_total for line in invoice.lines]
        )
        matched = [
            (line, share)
            for line, share in zip(invoice.lines, discount_shares)
            if line.product_id == request.product_id and line.batch_id == request.batch_id
        ]
        lines = [line for line, _ in matched]
        if not lines:
            raise InvoiceLineNotFoundError(
                str(invoice.id), str(request.product_id), str(request.batch_id)
            )

        sold = sum(line.required_quantity for line in lines)
        already_returned = InvoiceSelector(self.session).returned_quantity(
            invoice.id, request.product_id, request.batch_id
        )
        max_returnable = sold - already_returned
        if request.quantity > max_returnable:
            raise ExceedsReturnableQuantityError(
                str(invoice.id), request.quantity, max_returnable
            )

        batch = self._locked_batch_for(request.batch_id, request.product_id)
        action = ReturnAction(request.action)
        # Net of the line's share of the invoice discount
        billed = sum((line.line_total - share for line, share in matched), ZERO)
        return_value = round_money(billed * request.quantity / sold)
        unit_cost = batch.unit_cost

        adjustment = self._new_adjustment(
            actor_id,
            adjustment_type=AdjustmentType.RETURN.value,
            product_id=request.product_id,
            batch_id=batch.id,
            quantity=request.quantity,
            applied_quantity=request.quantity if action == ReturnAction.RESTOCK else 0,
            unit_cost=unit_cost,
            reason=request.reason,
            invoice_id=invoice.id,
            return_action=action.value,
            return_value=return_value,
            balance_clamped=False,
        )

        if action == ReturnAction.RESTOCK:
            self._ledger.apply_movement(
                batch,
                LedgerEntryType.RETURN,
                request.quantity,
                unit_cost=unit_cost,
                reference=f"Return against {invoice.invoice_number}",
                actor_id=actor_id,
                source_id=adjustment.id,
            )

        invoice.total = max(ZERO, invoice.total - return_value)
        invoice.updated_by_id = actor_id
        invoice.recompute_balance()
        self._flush("Invoice", invoice.id)

        logger.info(
            "invoice_credited_for_return",
            extra={
                "invoice_number": invoice.invoice_number,
                "return_value": str(return_value),
                "return_action": action.value,
                "due": str(invoice.due),
            },
        )
        return AdjustmentResult(adjustment=adjustment, invoice=invoice)

    def _record_write_off(self, request: WriteOffRequest, actor_id: UUID) -> AdjustmentResult:
        batch = self._locked_batch_for(request.batch_id, request.product_id)
        if request.quantity > batch.quantity:
            raise InsufficientStockError([shortfall_for(batch, request.quantity)])

        kind = AdjustmentType(request.kind)
        adjustment = self._new_adjustment(
            actor_id,
            adjustment_type=kind.value,
            product_id=request.product_id,
            batch_id=batch.id,
            quantity=request.quantity,
            applied_quantity=-request.quantity,
            unit_cost=batch.unit_cost,
            reason=request.reason,
            balance_clamped=False,
        )
        self._ledger.apply_movement(
            batch,
            LedgerEntryType(kind.value),
            -request.quantity,
            unit_cost=batch.unit_cost,
            reference=f"{kind.value.title()}: {request.reason}",
            actor_id=actor_id,
            source_id=adjustment.id,
        )
        return AdjustmentResult(adjustment=adjustment)

    def _record_count_correction(
        self, request: CountCorrectionRequest, actor_id: UUID
    ) -> AdjustmentResult:
        batch = self._locked_batch_for(request.batch_id, request.product_id)
        kind = AdjustmentType(request.kind)

        applied = request.quantity
        warnings: tuple[NegativeBalanceClampedWarning, ...] = ()
        if batch.quantity + applied < 0:
            applied = -batch.quantity
            warning = NegativeBalanceClampedWarning(str(batch.id), request.quantity, applied)
            warnings = (warning,)
            logger.warning(
                "negative_balance_clamped",
                extra={
                    "batch_id": str(batch.id),
                    "requested": request.quantity,
                    "applied": applied,
                    "balance_before": batch.quantity,
                },
            )

        adjustment = self._new_adjustment(
            actor_id,
            adjustment_type=kind.value,
            product_id=request.product_id,
            batch_id=batch.id,
            quantity=request.quantity,
            applied_quantity=applied,
            unit_cost=batch.unit_cost,
            reason=request.reason,
            balance_clamped=bool(warnings),
        )
        if applied != 0:
            self._ledger.apply_movement(
                batch,
                LedgerEntryType(kind.value),
                applied,
                unit_cost=batch.unit_cost,
                reference=f"{kind.value.title()}: {request.reason}",
                actor_id=actor_id,
                source_id=adjustment.id,
            )
        return AdjustmentResult(adjustment=adjustment, warnings=warnings)

    # ------------------------------------------------------------------
    # Compensation
    # ------------------------------------------------------------------

    def compensate(self, adjustment_id: UUID, reason: str, actor_id: UUID) -> AdjustmentResult:
        """
        Reverse a recorded write-off or correction with a new CORRECTION.

        The new adjustment applies the opposite of the original's applied
        quantity and points back at it through ``compensates_id``.

        Raises:
            AdjustmentNotFoundError: Unknown adjustment.
            ValidationError: The adjustment is a return, moved nothing, or
                was already compensated.
            InsufficientStockError: Reversing an increase would take the
                batch below zero.
        """
        original = self.session.get(StockAdjustment, adjustment_id)
        if original is None:
            raise AdjustmentNotFoundError(str(adjustment_id))
        if AdjustmentType(original.adjustment_type) == AdjustmentType.RETURN:
            raise ValidationError(
                "Returns are settled against the invoice and cannot be compensated",
                field="adjustment_id",
            )
        if original.applied_quantity == 0:
            raise ValidationError(
                f"Adjustment {adjustment_id} moved no stock; nothing to compensate",
                field="adjustment_id",
            )
        existing = self.session.execute(
            select(StockAdjustment.id).where(StockAdjustment.compensates_id == original.id)
        ).scalar_one_or_none()
        if existing is not None:
            raise ValidationError(
                f"Adjustment {adjustment_id} was already compensated by {existing}",
                field="adjustment_id",
            )

        with LogContext.bind(actor_id=str(actor_id), batch_id=str(original.batch_id)):
            batch = self._batches.lock_batch(original.batch_id)
            reversal = -original.applied_quantity
            if batch.quantity + reversal < 0:
                raise InsufficientStockError([shortfall_for(batch, -reversal)])

            adjustment = self._new_adjustment(
                actor_id,
                adjustment_type=AdjustmentType.CORRECTION.value,
                product_id=original.product_id,
                batch_id=batch.id,
                quantity=reversal,
                applied_quantity=reversal,
                unit_cost=original.unit_cost,
                reason=f"Compensates adjustment {original.id}: {reason}",
                balance_clamped=False,
                compensates_id=original.id,
            )
            self._ledger.apply_movement(
                batch,
                LedgerEntryType.CORRECTION,
                reversal,
                unit_cost=original.unit_cost,
                reference=f"Compensation of {AdjustmentType(original.adjustment_type).value}",
                actor_id=actor_id,
                source_id=adjustment.id,
            )

            self._auditor.record(
                "StockAdjustment",
                adjustment.id,
                AuditAction.ADJUSTMENT_COMPENSATED,
                actor_id,
                {
                    "compensates_id": original.id,
                    "original_type": original.adjustment_type,
                    "quantity": reversal,
                    "reason": reason,
                },
            )
            logger.info(
                "adjustment_compensated",
                extra={
                    "adjustment_id": str(adjustment.id),
                    "compensates_id": str(original.id),
                    "quantity": reversal,
                },
            )
            return AdjustmentResult(adjustment=adjustment)

