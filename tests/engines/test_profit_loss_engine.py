"""
Tests for the profit and loss engine.

Covers:
- Free goods: cost counted, revenue not, free cost reported separately
- Line and invoice discounts
- Settled-status and window selection
- Return, damage and compensation effects on net profit
- Margin guard
- Product/category filters with prorated paid and due
- Grouped views re-aggregating the same line figures
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from stock_engines.profit_loss import (
    UNASSIGNED_SELLER,
    UNCATEGORIZED,
    AdjustmentFact,
    InvoiceFact,
    LineFact,
    ProfitLossFilters,
    compute_profit_loss,
    line_profits,
    margin,
)
from stock_engines.report_window import ReportWindow
from stock_kernel.domain.adjustments import AdjustmentType, ReturnAction
from stock_kernel.domain.pricing import DiscountType

CUSTOMER_A = uuid4()
CUSTOMER_B = uuid4()
SELLER = uuid4()
PRODUCT_X = uuid4()
PRODUCT_Y = uuid4()
CATEGORY = uuid4()

WHEN = datetime(2024, 3, 10, 9, 0, tzinfo=timezone.utc)


def _line(
    product_id=PRODUCT_X,
    paid=10,
    free=0,
    tp="60",
    cost="40",
    category_id=None,
    discount_type=DiscountType.AMOUNT,
    discount_value="0",
    name=None,
):
    return LineFact(
        product_id=product_id,
        product_name=name or ("X" if product_id == PRODUCT_X else "Y"),
        category_id=category_id,
        category_name="Antibiotics" if category_id else None,
        paid_quantity=paid,
        free_quantity=free,
        tp_rate=Decimal(tp),
        cost_price=Decimal(cost),
        discount_type=discount_type,
        discount_value=Decimal(discount_value),
    )


def _invoice(
    lines,
    status="confirmed",
    created_at=WHEN,
    customer_id=CUSTOMER_A,
    customer_name="City Pharmacy",
    seller_id=None,
    seller_name=None,
    discount="0",
    total=None,
    paid="0",
    due=None,
    number=None,
):
    line_nets = sum(
        (l.tp_rate * l.paid_quantity for l in lines), Decimal("0")
    )
    total = Decimal(total) if total is not None else line_nets - Decimal(discount)
    paid = Decimal(paid)
    return InvoiceFact(
        invoice_id=uuid4(),
        invoice_number=number or f"INV-{uuid4().hex[:6]}",
        status=status,
        created_at=created_at,
        customer_id=customer_id,
        customer_name=customer_name,
        seller_id=seller_id,
        seller_name=seller_name,
        discount=Decimal(discount),
        total=total,
        paid=paid,
        due=Decimal(due) if due is not None else total - paid,
        lines=tuple(lines),
    )


def _adjustment(kind, applied, quantity=None, unit_cost="4", product_id=PRODUCT_X, **kwargs):
    return AdjustmentFact(
        adjustment_type=kind,
        created_at=kwargs.pop("created_at", WHEN),
        product_id=product_id,
        category_id=kwargs.pop("category_id", None),
        quantity=abs(applied) if quantity is None else quantity,
        applied_quantity=applied,
        unit_cost=Decimal(unit_cost),
        **kwargs,
    )


class TestFreeGoods:
    def test_free_quantity_costs_money_but_earns_nothing(self):
        invoice = _invoice([_line(paid=5, free=3, tp="10", cost="4")])

        metrics = compute_profit_loss(invoices=[invoice]).metrics

        assert metrics.net_sales == Decimal("50.00")
        assert metrics.total_cogs == Decimal("32.00")
        assert metrics.gross_profit == Decimal("18.00")
        assert metrics.free_quantity == 3
        assert metrics.free_cost == Decimal("12.00")

    def test_free_cost_not_subtracted_twice(self):
        invoice = _invoice([_line(paid=5, free=3, tp="10", cost="4")])

        metrics = compute_profit_loss(invoices=[invoice]).metrics

        assert metrics.net_profit == metrics.net_sales - metrics.total_cogs


class TestSales:
    def test_end_to_end_figures(self):
        invoice = _invoice([_line(paid=10, tp="60", cost="40")])

        result = compute_profit_loss(invoices=[invoice])

        assert result.metrics.net_sales == Decimal("600.00")
        assert result.metrics.total_cogs == Decimal("400.00")
        assert result.metrics.gross_profit == Decimal("200.00")
        assert result.metrics.profit_margin == Decimal("33.33")
        assert result.metrics.invoice_count == 1

    def test_line_and_invoice_discounts(self):
        invoice = _invoice(
            [
                _line(paid=10, tp="10", cost="5", discount_type=DiscountType.PERCENT, discount_value="10"),
                _line(product_id=PRODUCT_Y, paid=5, tp="20", cost="10", discount_value="10"),
            ],
            discount="18",
            total="162",
        )

        metrics = compute_profit_loss(invoices=[invoice]).metrics

        assert metrics.gross_revenue == Decimal("200.00")
        assert metrics.line_discounts == Decimal("20.00")
        assert metrics.invoice_discounts == Decimal("18.00")
        assert metrics.net_sales == Decimal("162.00")
        assert metrics.total_cogs == Decimal("100.00")

    def test_invoice_discount_shares_follow_line_net(self):
        invoice = _invoice(
            [_line(paid=3, tp="100"), _line(product_id=PRODUCT_Y, paid=1, tp="100")],
            discount="40",
        )

        shares = [lp.invoice_discount_share for lp in line_profits(invoice)]

        assert shares == [Decimal("30.00"), Decimal("10.00")]

    @pytest.mark.parametrize("status", ["draft", "cancelled"])
    def test_unsettled_invoices_ignored(self, status):
        invoice = _invoice([_line()], status=status)

        result = compute_profit_loss(invoices=[invoice])

        assert result.metrics.invoice_count == 0
        assert result.metrics.net_sales == Decimal("0.00")
        assert result.invoices == ()

    @pytest.mark.parametrize("status", ["confirmed", "partial", "paid"])
    def test_settled_invoices_counted(self, status):
        result = compute_profit_loss(invoices=[_invoice([_line()], status=status)])
        assert result.metrics.invoice_count == 1

    def test_window_excludes_outside_invoices(self):
        inside = _invoice([_line()], created_at=WHEN)
        outside = _invoice([_line()], created_at=datetime(2024, 2, 1, tzinfo=timezone.utc))

        result = compute_profit_loss(
            invoices=[inside, outside],
            window=ReportWindow(date(2024, 3, 1), date(2024, 3, 31)),
        )

        assert result.metrics.invoice_count == 1
        assert result.invoices[0].invoice_id == inside.invoice_id

    def test_paid_and_due_totals(self):
        invoices = [
            _invoice([_line()], paid="600", status="paid"),
            _invoice([_line()], paid="100", status="partial"),
        ]

        metrics = compute_profit_loss(invoices=invoices).metrics

        assert metrics.total_paid == Decimal("700.00")
        assert metrics.total_due == Decimal("500.00")

    def test_invoice_rows_sorted_by_creation(self):
        later = _invoice([_line()], created_at=datetime(2024, 3, 12, tzinfo=timezone.utc), number="INV-2")
        earlier = _invoice([_line()], created_at=datetime(2024, 3, 11, tzinfo=timezone.utc), number="INV-1")

        rows = compute_profit_loss(invoices=[later, earlier]).invoices

        assert [r.invoice_number for r in rows] == ["INV-1", "INV-2"]


class TestMargin:
    def test_zero_sales_gives_zero_margin(self):
        assert margin(Decimal("-20"), Decimal("0")) == Decimal("0")

    def test_free_only_invoice_has_zero_margin(self):
        invoice = _invoice([_line(paid=0, free=5, tp="10", cost="4")])

        result = compute_profit_loss(invoices=[invoice])

        assert result.metrics.net_sales == Decimal("0.00")
        assert result.metrics.gross_profit == Decimal("-20.00")
        assert result.metrics.profit_margin == Decimal("0")
        assert result.invoices[0].profit_margin == Decimal("0")

    def test_negative_margin(self):
        invoice = _invoice([_line(paid=10, tp="30", cost="40")])
        assert compute_profit_loss(invoices=[invoice]).metrics.profit_margin == Decimal("-33.33")


class TestAdjustments:
    def test_restocked_return_adds_cost_back(self):
        restock = _adjustment(
            AdjustmentType.RETURN, applied=2, return_action=ReturnAction.RESTOCK
        )
        scrap = _adjustment(
            AdjustmentType.RETURN, applied=0, quantity=5, return_action=ReturnAction.SCRAP
        )

        metrics = compute_profit_loss(invoices=[], adjustments=[restock, scrap]).metrics

        assert metrics.return_adjustment == Decimal("8.00")
        assert metrics.net_profit == Decimal("8.00")

    def test_damage_and_expiry_written_off(self):
        adjustments = [
            _adjustment(AdjustmentType.DAMAGE, applied=-3),
            _adjustment(AdjustmentType.EXPIRED, applied=-2, unit_cost="10"),
            _adjustment(AdjustmentType.LOST, applied=-7),
            _adjustment(AdjustmentType.FOUND, applied=4),
        ]

        metrics = compute_profit_loss(invoices=[], adjustments=adjustments).metrics

        assert metrics.damage_write_off == Decimal("32.00")
        assert metrics.net_profit == Decimal("-32.00")

    def test_compensated_damage_cancels_write_off(self):
        adjustments = [
            _adjustment(AdjustmentType.DAMAGE, applied=-3),
            _adjustment(
                AdjustmentType.CORRECTION, applied=3, compensated_type=AdjustmentType.DAMAGE
            ),
        ]

        metrics = compute_profit_loss(invoices=[], adjustments=adjustments).metrics

        assert metrics.damage_write_off == Decimal("0.00")

    def test_net_profit_formula(self):
        invoice = _invoice([_line(paid=10, tp="60", cost="40")])
        adjustments = [
            _adjustment(AdjustmentType.RETURN, applied=1, unit_cost="40", return_action=ReturnAction.RESTOCK),
            _adjustment(AdjustmentType.DAMAGE, applied=-2, unit_cost="40"),
        ]

        metrics = compute_profit_loss(invoices=[invoice], adjustments=adjustments).metrics

        assert metrics.net_profit == Decimal("200") + Decimal("40") - Decimal("80")
        assert metrics.profit_margin == Decimal("26.67")

    def test_adjustments_outside_window_ignored(self):
        old = _adjustment(
            AdjustmentType.DAMAGE, applied=-3, created_at=datetime(2023, 1, 1, tzinfo=timezone.utc)
        )

        metrics = compute_profit_loss(
            invoices=[],
            adjustments=[old],
            window=ReportWindow(date(2024, 1, 1), date(2024, 12, 31)),
        ).metrics

        assert metrics.damage_write_off == Decimal("0.00")


class TestFilters:
    def _two_product_invoice(self):
        return _invoice(
            [
                _line(product_id=PRODUCT_X, paid=10, tp="10", cost="6", category_id=CATEGORY),
                _line(product_id=PRODUCT_Y, paid=10, tp="10", cost="5"),
            ],
            paid="50",
        )

    def test_product_filter_prorates_paid_and_due(self):
        invoice = self._two_product_invoice()

        result = compute_profit_loss(
            invoices=[invoice], filters=ProfitLossFilters(product_id=PRODUCT_X)
        )

        assert result.metrics.net_sales == Decimal("100.00")
        assert result.metrics.total_cogs == Decimal("60.00")
        assert result.metrics.total_paid == Decimal("25.00")
        assert result.metrics.total_due == Decimal("75.00")

    def test_proration_uses_line_total_before_invoice_discount(self):
        invoice = _invoice([_line(paid=10, tp="60")], discount="100", paid="250")

        metrics = compute_profit_loss(
            invoices=[invoice], filters=ProfitLossFilters(product_id=PRODUCT_X)
        ).metrics

        # 600 of line total over an invoice total of 500
        assert metrics.net_sales == Decimal("500.00")
        assert metrics.total_paid == Decimal("300.00")
        assert metrics.total_due == Decimal("300.00")

    def test_category_filter_selects_lines(self):
        invoice = self._two_product_invoice()

        result = compute_profit_loss(
            invoices=[invoice], filters=ProfitLossFilters(category_id=CATEGORY)
        )

        assert [g.key for g in result.by_product] == [PRODUCT_X]

    def test_invoice_without_matching_lines_dropped(self):
        invoice = _invoice([_line(product_id=PRODUCT_Y)])

        result = compute_profit_loss(
            invoices=[invoice], filters=ProfitLossFilters(product_id=PRODUCT_X)
        )

        assert result.metrics.invoice_count == 0

    def test_zero_total_invoice_prorates_to_zero(self):
        invoice = _invoice([_line(paid=0, free=2)], total="0")

        result = compute_profit_loss(
            invoices=[invoice], filters=ProfitLossFilters(product_id=PRODUCT_X)
        )

        assert result.metrics.total_paid == Decimal("0.00")
        assert result.metrics.total_due == Decimal("0.00")

    def test_customer_and_seller_filters(self):
        a = _invoice([_line()], customer_id=CUSTOMER_A, seller_id=SELLER, seller_name="Rahim")
        b = _invoice([_line()], customer_id=CUSTOMER_B)

        by_customer = compute_profit_loss(
            invoices=[a, b], filters=ProfitLossFilters(customer_id=CUSTOMER_B)
        )
        by_seller = compute_profit_loss(
            invoices=[a, b], filters=ProfitLossFilters(seller_id=SELLER)
        )

        assert by_customer.invoices[0].invoice_id == b.invoice_id
        assert by_seller.invoices[0].invoice_id == a.invoice_id

    def test_product_filter_applies_to_adjustments(self):
        damage_y = _adjustment(AdjustmentType.DAMAGE, applied=-3, product_id=PRODUCT_Y)

        metrics = compute_profit_loss(
            invoices=[],
            adjustments=[damage_y],
            filters=ProfitLossFilters(product_id=PRODUCT_X),
        ).metrics

        assert metrics.damage_write_off == Decimal("0.00")


class TestGroupedViews:
    def test_groups_sum_to_window_totals(self):
        invoices = [
            _invoice([_line(paid=10, tp="60", cost="40")], customer_id=CUSTOMER_A, customer_name="A"),
            _invoice(
                [_line(product_id=PRODUCT_Y, paid=5, free=1, tp="20", cost="8", category_id=CATEGORY)],
                customer_id=CUSTOMER_B,
                customer_name="B",
                seller_id=SELLER,
                seller_name="Rahim",
            ),
        ]

        result = compute_profit_loss(invoices=invoices)

        for groups in (result.by_customer, result.by_seller, result.by_product, result.by_category):
            assert sum(g.net_sales for g in groups) == result.metrics.net_sales
            assert sum(g.cogs for g in groups) == result.metrics.total_cogs
            assert sum(g.free_quantity for g in groups) == result.metrics.free_quantity

    def test_sorted_by_profit_descending(self):
        invoices = [
            _invoice([_line(paid=1, tp="50", cost="40")], customer_id=CUSTOMER_A, customer_name="Low"),
            _invoice([_line(paid=1, tp="90", cost="40")], customer_id=CUSTOMER_B, customer_name="High"),
        ]

        names = [g.name for g in compute_profit_loss(invoices=invoices).by_customer]

        assert names == ["High", "Low"]

    def test_missing_seller_and_category_labels(self):
        result = compute_profit_loss(invoices=[_invoice([_line()])])

        assert result.by_seller[0].name == UNASSIGNED_SELLER
        assert result.by_seller[0].key is None
        assert result.by_category[0].name == UNCATEGORIZED
        assert result.invoices[0].seller_name == UNASSIGNED_SELLER


def test_decimal_places_honoured():
    invoice = _invoice([_line(paid=3, tp="10", cost="3.333")])

    result = compute_profit_loss(invoices=[invoice], places=3)

    assert result.metrics.total_cogs == Decimal("9.999")
