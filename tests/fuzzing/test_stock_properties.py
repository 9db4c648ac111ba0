"""
Property-based tests for the pure stock and profit engines.

Properties:
- Allocation never uses expired or empty batches and meets the
  requirement exactly or raises.
- Invoice discount shares always sum to the discount.
- Grouped profit views always add up to the window totals.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from hypothesis import given, settings
from hypothesis import strategies as st

from stock_engines.allocation import AllocationMode, allocate, order_available
from stock_engines.profit_loss import InvoiceFact, LineFact, compute_profit_loss
from stock_kernel.domain.dtos import BatchSnapshot
from stock_kernel.domain.pricing import (
    DiscountType,
    allocate_invoice_discount,
    compute_invoice_total,
    compute_line_amounts,
)
from stock_kernel.exceptions import InsufficientStockError

AS_OF = date(2024, 1, 1)
PRODUCT_ID = uuid4()

CUSTOMERS = [uuid4() for _ in range(3)]
SELLERS = [None, uuid4(), uuid4()]
CATEGORIES = [None, uuid4(), uuid4()]
PRODUCTS = [(uuid4(), CATEGORIES[i % 3]) for i in range(4)]

money = st.integers(min_value=0, max_value=100_000).map(lambda cents: Decimal(cents) / 100)


@st.composite
def batches(draw) -> list[BatchSnapshot]:
    count = draw(st.integers(min_value=0, max_value=8))
    result = []
    for i in range(count):
        offset = draw(st.one_of(st.none(), st.integers(min_value=-30, max_value=400)))
        result.append(
            BatchSnapshot(
                batch_id=uuid4(),
                product_id=PRODUCT_ID,
                lot_number=f"LOT-{i:02d}",
                quantity=draw(st.integers(min_value=0, max_value=50)),
                unit_cost=Decimal("1"),
                expiry_date=None if offset is None else AS_OF + timedelta(days=offset),
            )
        )
    return result


@st.composite
def invoices(draw) -> list[InvoiceFact]:
    result = []
    for n in range(draw(st.integers(min_value=0, max_value=6))):
        lines = []
        subtotal = Decimal("0")
        for _ in range(draw(st.integers(min_value=1, max_value=4))):
            product_id, category_id = draw(st.sampled_from(PRODUCTS))
            tp_rate = draw(money)
            paid = draw(st.integers(min_value=0, max_value=20))
            percent = Decimal(draw(st.integers(min_value=0, max_value=100)))
            lines.append(
                LineFact(
                    product_id=product_id,
                    product_name=str(product_id),
                    category_id=category_id,
                    category_name=None if category_id is None else str(category_id),
                    paid_quantity=paid,
                    free_quantity=draw(st.integers(min_value=0, max_value=5)),
                    tp_rate=tp_rate,
                    cost_price=draw(money),
                    discount_type=DiscountType.PERCENT,
                    discount_value=percent,
                )
            )
            subtotal += compute_line_amounts(tp_rate, paid, DiscountType.PERCENT, percent).net
        discount, total = compute_invoice_total(
            subtotal, DiscountType.PERCENT, Decimal(draw(st.integers(min_value=0, max_value=100)))
        )
        paid_amount = draw(st.integers(min_value=0, max_value=int(total))) if total else 0
        seller_id = draw(st.sampled_from(SELLERS))
        result.append(
            InvoiceFact(
                invoice_id=uuid4(),
                invoice_number=f"INV-{n:06d}",
                status=draw(st.sampled_from(["confirmed", "partial", "paid", "draft", "cancelled"])),
                created_at=datetime(2024, 1, 1, 12, tzinfo=timezone.utc),
                customer_id=draw(st.sampled_from(CUSTOMERS)),
                customer_name="customer",
                seller_id=seller_id,
                seller_name=None if seller_id is None else str(seller_id),
                discount=discount,
                total=total,
                paid=Decimal(paid_amount),
                due=total - Decimal(paid_amount),
                lines=tuple(lines),
            )
        )
    return result


class TestAllocationProperties:
    @given(stock=batches(), required=st.integers(min_value=1, max_value=120))
    @settings(max_examples=200)
    def test_multi_batch_meets_requirement_or_raises(self, stock, required):
        sellable = {b.batch_id: b for b in order_available(stock, AS_OF)}
        try:
            result = allocate(
                product_id=PRODUCT_ID,
                product_name="Paracetamol",
                batches=stock,
                required=required,
                as_of=AS_OF,
                mode=AllocationMode.MULTI_BATCH,
            )
        except InsufficientStockError as exc:
            assert sum(b.quantity for b in sellable.values()) < required
            assert exc.available == sum(b.quantity for b in sellable.values())
            return

        assert result.allocated == required
        for allocation in result.allocations:
            batch = sellable[allocation.batch_id]
            assert 0 < allocation.quantity <= batch.quantity
        # every batch but the last is drained
        for allocation in result.allocations[:-1]:
            assert allocation.quantity == sellable[allocation.batch_id].quantity

    @given(stock=batches(), required=st.integers(min_value=1, max_value=60))
    @settings(max_examples=200)
    def test_single_batch_picks_earliest_sufficient(self, stock, required):
        ordered = order_available(stock, AS_OF)
        candidates = [b for b in ordered if b.quantity >= required]
        try:
            result = allocate(
                product_id=PRODUCT_ID,
                product_name="Paracetamol",
                batches=stock,
                required=required,
                as_of=AS_OF,
                mode=AllocationMode.SINGLE_BATCH,
            )
        except InsufficientStockError as exc:
            assert candidates == []
            assert exc.available == max((b.quantity for b in ordered), default=0)
            return

        [allocation] = result.allocations
        assert allocation.batch_id == candidates[0].batch_id
        assert allocation.quantity == required

    @given(stock=batches())
    def test_ordered_batches_are_sellable(self, stock):
        for batch in order_available(stock, AS_OF):
            assert batch.quantity > 0
            assert batch.expiry_date is None or batch.expiry_date >= AS_OF


class TestDiscountProperties:
    @given(
        discount=money,
        nets=st.lists(money, min_size=1, max_size=10),
    )
    def test_shares_sum_to_discount(self, discount, nets):
        shares = allocate_invoice_discount(discount, nets)

        assert len(shares) == len(nets)
        assert sum(shares, Decimal("0")) == discount


class TestProfitLossProperties:
    @given(facts=invoices())
    @settings(max_examples=150, deadline=None)
    def test_groups_add_up_to_totals(self, facts):
        result = compute_profit_loss(invoices=facts)
        metrics = result.metrics

        for groups in (result.by_customer, result.by_seller, result.by_product, result.by_category):
            assert sum((g.net_sales for g in groups), Decimal("0")) == metrics.net_sales
            assert sum((g.profit for g in groups), Decimal("0")) == metrics.gross_profit
            assert sum(g.free_quantity for g in groups) == metrics.free_quantity

        assert (
            metrics.gross_revenue - metrics.line_discounts - metrics.invoice_discounts
            == metrics.net_sales
        )
        assert metrics.invoice_count == sum(
            1 for f in facts if f.status in ("confirmed", "partial", "paid")
        )

    @given(facts=invoices())
    @settings(max_examples=100, deadline=None)
    def test_invoice_rows_add_up(self, facts):
        result = compute_profit_loss(invoices=facts)

        assert sum((r.net_sales for r in result.invoices), Decimal("0")) == result.metrics.net_sales
        assert sum((r.paid for r in result.invoices), Decimal("0")) == result.metrics.total_paid
