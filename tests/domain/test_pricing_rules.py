"""Tests for line and invoice amount arithmetic."""

from decimal import Decimal

import pytest

from stock_kernel.domain.pricing import (
    DiscountType,
    allocate_invoice_discount,
    compute_invoice_total,
    compute_line_amounts,
    discount_amount,
)


class TestLineAmounts:
    def test_revenue_is_trade_price_times_paid(self):
        amounts = compute_line_amounts(Decimal("60"), 10)
        assert amounts.gross == Decimal("600.00")
        assert amounts.net == Decimal("600.00")

    def test_percent_discount(self):
        amounts = compute_line_amounts(Decimal("12.50"), 4, DiscountType.PERCENT, Decimal("10"))
        assert amounts.discount == Decimal("5.00")
        assert amounts.net == Decimal("45.00")

    def test_amount_discount(self):
        amounts = compute_line_amounts(Decimal("10"), 5, "amount", Decimal("7.5"))
        assert amounts.net == Decimal("42.50")

    def test_negative_quantity_rejected(self):
        with pytest.raises(ValueError):
            compute_line_amounts(Decimal("10"), -1)


class TestDiscountLimits:
    def test_percent_above_hundred_rejected(self):
        with pytest.raises(ValueError):
            discount_amount(Decimal("100"), DiscountType.PERCENT, Decimal("101"))

    def test_amount_above_base_rejected(self):
        with pytest.raises(ValueError):
            discount_amount(Decimal("100"), DiscountType.AMOUNT, Decimal("100.01"))

    def test_negative_discount_rejected(self):
        with pytest.raises(ValueError):
            discount_amount(Decimal("100"), DiscountType.AMOUNT, Decimal("-1"))

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            discount_amount(Decimal("100"), "coupon", Decimal("1"))


class TestInvoiceTotal:
    def test_total_after_invoice_discount(self):
        discount, total = compute_invoice_total(Decimal("600"), DiscountType.PERCENT, Decimal("5"))
        assert discount == Decimal("30.00")
        assert total == Decimal("570.00")

    def test_full_discount_floors_at_zero(self):
        _, total = compute_invoice_total(Decimal("50"), DiscountType.PERCENT, Decimal("100"))
        assert total == Decimal("0")


class TestDiscountAllocation:
    def test_shares_sum_exactly(self):
        shares = allocate_invoice_discount(Decimal("10"), [Decimal("1"), Decimal("1"), Decimal("1")])
        assert sum(shares) == Decimal("10")
        assert shares[:2] == [Decimal("3.33"), Decimal("3.33")]

    def test_zero_nets_split_evenly(self):
        shares = allocate_invoice_discount(Decimal("4"), [Decimal("0"), Decimal("0")])
        assert shares == [Decimal("2.00"), Decimal("2.00")]

    def test_no_lines(self):
        assert allocate_invoice_discount(Decimal("4"), []) == []
