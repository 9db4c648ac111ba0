"""
Tests for AdjustmentService.

Covers:
- Customer returns: RESTOCK vs SCRAP, invoice credit, returnable ceiling
- Write-offs: DAMAGE / EXPIRED / LOST never take a batch below zero
- Count corrections: FOUND / CORRECTION, clamping with a warning
- Compensation of a recorded adjustment
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from stock_kernel.domain.adjustments import (
    AdjustmentType,
    CountCorrectionRequest,
    ReturnAction,
    ReturnRequest,
    WriteOffRequest,
)
from stock_kernel.exceptions import (
    AdjustmentNotFoundError,
    ExceedsReturnableQuantityError,
    InsufficientStockError,
    InvalidInvoiceStateError,
    InvoiceLineNotFoundError,
    NegativeBalanceClampedWarning,
    ValidationError,
)
from stock_kernel.models.invoice import InvoiceStatus
from stock_kernel.models.stock_ledger import LedgerEntryType
from stock_kernel.selectors.invoice_selector import InvoiceSelector
from stock_kernel.selectors.ledger_selector import LedgerSelector


def _return(invoice, batch, quantity, action=ReturnAction.RESTOCK) -> ReturnRequest:
    return ReturnRequest(
        invoice_id=invoice.id,
        product_id=batch.product_id,
        batch_id=batch.id,
        quantity=quantity,
        action=action,
    )


def _write_off(batch, quantity, kind=AdjustmentType.DAMAGE) -> WriteOffRequest:
    return WriteOffRequest(
        kind=kind,
        product_id=batch.product_id,
        batch_id=batch.id,
        quantity=quantity,
        reason="broken strips",
    )


def _correction(batch, quantity, kind=AdjustmentType.CORRECTION) -> CountCorrectionRequest:
    return CountCorrectionRequest(
        kind=kind,
        product_id=batch.product_id,
        batch_id=batch.id,
        quantity=quantity,
        reason="stock count",
    )


class TestReturns:
    def test_restock_return(self, adjustments, session, create_invoice, batch, test_actor_id):
        invoice = create_invoice([(batch, 10, 0)])

        result = adjustments.record(_return(invoice, batch, 4), test_actor_id)

        adjustment = result.adjustment
        assert adjustment.adjustment_type == AdjustmentType.RETURN
        assert adjustment.applied_quantity == 4
        assert adjustment.return_value == Decimal("240")
        assert adjustment.unit_cost == Decimal("40")
        assert batch.quantity == 94

        entries = LedgerSelector(session).entries_for_source(adjustment.id)
        assert [(e.entry_type, e.quantity_in) for e in entries] == [(LedgerEntryType.RETURN, 4)]

        assert result.invoice.total == Decimal("360")
        assert result.invoice.due == Decimal("360")
        assert result.invoice.status == InvoiceStatus.CONFIRMED

    def test_scrap_return_credits_without_restocking(
        self, adjustments, session, create_invoice, batch, test_actor_id
    ):
        invoice = create_invoice([(batch, 10, 0)])

        result = adjustments.record(
            _return(invoice, batch, 4, ReturnAction.SCRAP), test_actor_id
        )

        assert result.adjustment.applied_quantity == 0
        assert batch.quantity == 90
        assert LedgerSelector(session).entries_for_source(result.adjustment.id) == []
        assert result.invoice.total == Decimal("360")

    def test_return_on_paid_invoice_keeps_it_paid(
        self, adjustments, settlement, create_invoice, batch, test_actor_id
    ):
        invoice = create_invoice([(batch, 10, 0)])
        settlement.apply_payment(invoice.id, Decimal("600"), test_actor_id)

        result = adjustments.record(_return(invoice, batch, 5), test_actor_id)

        assert result.invoice.total == Decimal("300")
        assert result.invoice.due == Decimal("0")
        assert result.invoice.status == InvoiceStatus.PAID

    def test_free_units_count_towards_returnable(
        self, adjustments, session, create_invoice, batch, test_actor_id
    ):
        invoice = create_invoice([(batch, 10, 2)])
        adjustments.record(_return(invoice, batch, 8), test_actor_id)

        with pytest.raises(ExceedsReturnableQuantityError) as exc_info:
            adjustments.record(_return(invoice, batch, 5), test_actor_id)

        assert exc_info.value.max_returnable == 4
        assert exc_info.value.requested == 5
        assert InvoiceSelector(session).returned_quantity(
            invoice.id, batch.product_id, batch.id
        ) == 8

    def test_whole_sale_returned_leaves_nothing_returnable(
        self, adjustments, create_invoice, batch, test_actor_id
    ):
        invoice = create_invoice([(batch, 10, 2)])
        adjustments.record(_return(invoice, batch, 12), test_actor_id)

        with pytest.raises(ExceedsReturnableQuantityError) as exc_info:
            adjustments.record(_return(invoice, batch, 1), test_actor_id)

        assert exc_info.value.max_returnable == 0
        assert batch.quantity == 100

    def test_return_credit_is_net_of_invoice_discount(
        self, adjustments, create_invoice, batch, test_actor_id
    ):
        invoice = create_invoice([(batch, 10, 0)], discount_value=Decimal("300"))
        assert invoice.total == Decimal("300")

        result = adjustments.record(_return(invoice, batch, 5), test_actor_id)

        assert result.adjustment.return_value == Decimal("150")
        assert result.invoice.total == Decimal("150")
        assert result.invoice.due == Decimal("150")

    def test_invoice_discount_shared_across_lines(
        self, adjustments, create_invoice, receive_batch, create_product, batch, test_actor_id
    ):
        other = receive_batch(create_product(name="Cetirizine 10mg", tp_rate="20"), quantity=50)
        # 600 + 200 billed, 80 invoice discount split 60 / 20
        invoice = create_invoice([(batch, 10, 0), (other, 10, 0)], discount_value=Decimal("80"))

        result = adjustments.record(_return(invoice, batch, 10), test_actor_id)

        assert result.adjustment.return_value == Decimal("540")
        assert result.invoice.total == Decimal("180")

    def test_restock_uses_batch_cost(
        self, adjustments, session, create_invoice, receive_batch, product, test_actor_id
    ):
        cheap = receive_batch(product, quantity=50, lot_number="PCM-035", unit_cost=Decimal("35"))
        invoice = create_invoice([(cheap, 10, 0)])

        result = adjustments.record(_return(invoice, cheap, 2), test_actor_id)

        assert result.adjustment.unit_cost == Decimal("35")
        entries = LedgerSelector(session).entries_for_batch(cheap.id)
        assert [(e.entry_type, e.unit_cost) for e in entries] == [
            (LedgerEntryType.PURCHASE, Decimal("35")),
            (LedgerEntryType.SALE, Decimal("35")),
            (LedgerEntryType.RETURN, Decimal("35")),
        ]

    def test_return_value_uses_sold_units(self, adjustments, create_invoice, batch, test_actor_id):
        invoice = create_invoice([(batch, 10, 2)])

        result = adjustments.record(_return(invoice, batch, 6), test_actor_id)

        # 600 billed over 12 units sold
        assert result.adjustment.return_value == Decimal("300")

    def test_draft_invoice_rejects_return(self, adjustments, create_invoice, batch, test_actor_id):
        invoice = create_invoice([(batch, 10, 0)], confirm=False)

        with pytest.raises(InvalidInvoiceStateError):
            adjustments.record(_return(invoice, batch, 1), test_actor_id)

    def test_batch_not_on_invoice(
        self, adjustments, create_invoice, receive_batch, product, batch, test_actor_id
    ):
        other = receive_batch(product, quantity=10, lot_number="PCM-002")
        invoice = create_invoice([(batch, 10, 0)])

        with pytest.raises(InvoiceLineNotFoundError):
            adjustments.record(_return(invoice, other, 1), test_actor_id)

    def test_unknown_action_rejected(self, batch):
        with pytest.raises(ValidationError):
            ReturnRequest(
                invoice_id=uuid4(),
                product_id=batch.product_id,
                batch_id=batch.id,
                quantity=1,
                action="resell",
            )


class TestWriteOffs:
    @pytest.mark.parametrize(
        "kind", [AdjustmentType.DAMAGE, AdjustmentType.EXPIRED, AdjustmentType.LOST]
    )
    def test_write_off_reduces_batch(self, adjustments, session, batch, test_actor_id, kind):
        result = adjustments.record(_write_off(batch, 7, kind), test_actor_id)

        assert batch.quantity == 93
        assert result.adjustment.applied_quantity == -7
        assert result.adjustment.unit_cost == Decimal("40")
        entries = LedgerSelector(session).entries_for_source(result.adjustment.id)
        assert entries[0].entry_type == LedgerEntryType(kind.value)
        assert entries[0].quantity_out == 7

    def test_write_off_larger_than_batch(self, adjustments, batch, test_actor_id):
        with pytest.raises(InsufficientStockError):
            adjustments.record(_write_off(batch, 101), test_actor_id)
        assert batch.quantity == 100

    def test_batch_of_other_product(
        self, adjustments, create_product, receive_batch, batch, test_actor_id
    ):
        other = receive_batch(create_product(name="Cetirizine 10mg"), quantity=10)
        request = WriteOffRequest(
            kind=AdjustmentType.LOST,
            product_id=other.product_id,
            batch_id=batch.id,
            quantity=1,
            reason="missing",
        )

        with pytest.raises(ValidationError):
            adjustments.record(request, test_actor_id)


class TestCountCorrections:
    def test_found_adds_stock(self, adjustments, batch, test_actor_id):
        result = adjustments.record(_correction(batch, 6, AdjustmentType.FOUND), test_actor_id)

        assert batch.quantity == 106
        assert not result.clamped

    def test_decrease_past_zero_is_clamped(self, adjustments, session, batch, test_actor_id):
        result = adjustments.record(_correction(batch, -150), test_actor_id)

        assert batch.quantity == 0
        assert result.clamped
        warning = result.warnings[0]
        assert isinstance(warning, NegativeBalanceClampedWarning)
        assert warning.requested == -150
        assert warning.applied == -100
        assert result.adjustment.quantity == -150
        assert result.adjustment.applied_quantity == -100
        assert result.adjustment.balance_clamped is True
        assert LedgerSelector(session).reconcile_batch(batch.id).is_consistent

    def test_clamp_to_nothing_writes_no_ledger_entry(
        self, adjustments, session, create_invoice, batch, test_actor_id
    ):
        create_invoice([(batch, 100, 0)])

        result = adjustments.record(_correction(batch, -5), test_actor_id)

        assert result.adjustment.applied_quantity == 0
        assert LedgerSelector(session).entries_for_source(result.adjustment.id) == []

    def test_clamp_is_logged(self, captured_logs, adjustments, batch, test_actor_id):
        adjustments.record(_correction(batch, -150), test_actor_id)

        clamped = [r for r in captured_logs() if r["message"] == "negative_balance_clamped"]
        assert clamped[0]["applied"] == -100
        assert clamped[0]["balance_before"] == 100


class TestCompensation:
    def test_compensate_write_off(self, adjustments, batch, test_actor_id):
        original = adjustments.record(_write_off(batch, 5), test_actor_id).adjustment

        result = adjustments.compensate(original.id, "counted twice", test_actor_id)

        assert batch.quantity == 100
        assert result.adjustment.adjustment_type == AdjustmentType.CORRECTION
        assert result.adjustment.compensates_id == original.id
        assert result.adjustment.applied_quantity == 5
        assert result.adjustment.reason == f"Compensates adjustment {original.id}: counted twice"

    def test_compensate_only_once(self, adjustments, batch, test_actor_id):
        original = adjustments.record(_write_off(batch, 5), test_actor_id).adjustment
        adjustments.compensate(original.id, "mistake", test_actor_id)

        with pytest.raises(ValidationError):
            adjustments.compensate(original.id, "again", test_actor_id)

    def test_returns_cannot_be_compensated(
        self, adjustments, create_invoice, batch, test_actor_id
    ):
        invoice = create_invoice([(batch, 10, 0)])
        returned = adjustments.record(_return(invoice, batch, 1), test_actor_id).adjustment

        with pytest.raises(ValidationError):
            adjustments.compensate(returned.id, "oops", test_actor_id)

    def test_reversing_an_increase_needs_stock(
        self, adjustments, create_invoice, batch, test_actor_id
    ):
        found = adjustments.record(
            _correction(batch, 10, AdjustmentType.FOUND), test_actor_id
        ).adjustment
        create_invoice([(batch, 105, 0)])

        with pytest.raises(InsufficientStockError):
            adjustments.compensate(found.id, "miscount", test_actor_id)
        assert batch.quantity == 5

    def test_unknown_adjustment(self, adjustments, test_actor_id):
        with pytest.raises(AdjustmentNotFoundError):
            adjustments.compensate(uuid4(), "nothing", test_actor_id)
