"""
stock_engines.profit_loss -- profit and loss aggregation over sales facts.

Responsibility:
    Computes window metrics, per-invoice figures and grouped views
    (customer, seller, product, category) from immutable invoice, line and
    adjustment facts.  Every view re-aggregates the same per-line figures,
    so the groups always add up to the window totals.

Architecture position:
    Engines -- pure calculation, zero I/O.  Facts are loaded by
    ``stock_modules.reporting.service.ProfitLossService``.

Cost policy:
    COGS includes free quantity: ``cost_total = cost_price x (paid + free)``.
    Free goods never produce revenue, and their cost is additionally
    reported as ``free_cost`` for visibility; it is not subtracted twice.

Per line:
    revenue        = tp_rate x paid
    line_discount  = AMOUNT value, or revenue x value / 100
    invoice share  = invoice discount allocated by line net
    net_sales      = revenue - line_discount - invoice share

Per window:
    gross_profit      = net_sales - cogs
    return_adjustment = sum(unit_cost x quantity) over RESTOCK returns
    damage_write_off  = sum(unit_cost x quantity) over DAMAGE / EXPIRED,
                        less any compensated write-offs
    net_profit        = gross_profit + return_adjustment - damage_write_off
    profit_margin     = net_profit / net_sales x 100, or 0 without sales

Filters:
    Customer and seller filters select invoices.  Product and category
    filters select lines (and adjustments); paid and due are then prorated
    by ``filtered_line_total / invoice_total``, which is an approximation
    because payments are not attributed to lines.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from stock_engines.report_window import ALL_TIME, ReportWindow
from stock_engines.tracer import traced_engine
from stock_kernel.db.types import HUNDRED, MONEY_DECIMAL_PLACES, ZERO, round_money
from stock_kernel.domain.adjustments import (
    PROFIT_WRITE_OFF_TYPES,
    AdjustmentType,
    ReturnAction,
)
from stock_kernel.domain.pricing import (
    DiscountType,
    allocate_invoice_discount,
    compute_line_amounts,
)

SETTLED = frozenset({"confirmed", "partial", "paid"})

UNASSIGNED_SELLER = "Unassigned"
UNCATEGORIZED = "Uncategorized"


# ---------------------------------------------------------------------------
# Input facts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LineFact:
    product_id: UUID
    product_name: str
    category_id: UUID | None
    category_name: str | None
    paid_quantity: int
    free_quantity: int
    tp_rate: Decimal
    cost_price: Decimal
    discount_type: DiscountType = DiscountType.AMOUNT
    discount_value: Decimal = ZERO


@dataclass(frozen=True)
class InvoiceFact:
    invoice_id: UUID
    invoice_number: str
    status: str
    created_at: datetime
    customer_id: UUID
    customer_name: str
    seller_id: UUID | None
    seller_name: str | None
    discount: Decimal
    total: Decimal
    paid: Decimal
    due: Decimal
    lines: tuple[LineFact, ...] = ()


@dataclass(frozen=True)
class AdjustmentFact:
    adjustment_type: AdjustmentType
    created_at: datetime
    product_id: UUID
    category_id: UUID | None
    quantity: int
    applied_quantity: int
    unit_cost: Decimal
    return_action: ReturnAction | None = None
    # Type of the adjustment this one compensates, if any
    compensated_type: AdjustmentType | None = None


@dataclass(frozen=True)
class ProfitLossFilters:
    customer_id: UUID | None = None
    seller_id: UUID | None = None
    product_id: UUID | None = None
    category_id: UUID | None = None

    @property
    def filters_lines(self) -> bool:
        return self.product_id is not None or self.category_id is not None

    def accepts_invoice(self, invoice: InvoiceFact) -> bool:
        if self.customer_id is not None and invoice.customer_id != self.customer_id:
            return False
        if self.seller_id is not None and invoice.seller_id != self.seller_id:
            return False
        return True

    def accepts_product(self, product_id: UUID, category_id: UUID | None) -> bool:
        if self.product_id is not None and product_id != self.product_id:
            return False
        if self.category_id is not None and category_id != self.category_id:
            return False
        return True


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LineProfit:
    """Per-line figures every view is built from."""

    product_id: UUID
    product_name: str
    category_id: UUID | None
    category_name: str
    paid_quantity: int
    free_quantity: int
    revenue: Decimal
    line_discount: Decimal
    invoice_discount_share: Decimal
    net_sales: Decimal
    cogs: Decimal
    free_cost: Decimal

    @property
    def profit(self) -> Decimal:
        return self.net_sales - self.cogs


@dataclass(frozen=True)
class ProfitLossMetrics:
    net_sales: Decimal
    gross_revenue: Decimal
    line_discounts: Decimal
    invoice_discounts: Decimal
    total_paid: Decimal
    total_due: Decimal
    total_cogs: Decimal
    gross_profit: Decimal
    return_adjustment: Decimal
    damage_write_off: Decimal
    net_profit: Decimal
    profit_margin: Decimal
    invoice_count: int
    free_quantity: int
    free_cost: Decimal


@dataclass(frozen=True)
class InvoiceWithPL:
    invoice_id: UUID
    invoice_number: str
    created_at: datetime
    customer_name: str
    seller_name: str
    net_sales: Decimal
    paid: Decimal
    due: Decimal
    cogs: Decimal
    profit: Decimal
    profit_margin: Decimal
    free_quantity: int
    free_cost: Decimal


@dataclass(frozen=True)
class ProfitByGroup:
    key: UUID | None
    name: str
    net_sales: Decimal
    cogs: Decimal
    profit: Decimal
    paid_quantity: int
    free_quantity: int
    free_cost: Decimal


@dataclass(frozen=True)
class ProfitLossResult:
    metrics: ProfitLossMetrics
    invoices: tuple[InvoiceWithPL, ...]
    by_customer: tuple[ProfitByGroup, ...]
    by_seller: tuple[ProfitByGroup, ...]
    by_product: tuple[ProfitByGroup, ...]
    by_category: tuple[ProfitByGroup, ...]


# ---------------------------------------------------------------------------
# Calculation
# ---------------------------------------------------------------------------


def margin(
    profit: Decimal,
    net_sales: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
) -> Decimal:
    """Profit as a percentage of net sales; zero when there are no sales."""
    if net_sales <= 0:
        return ZERO
    return round_money(profit / net_sales * HUNDRED, decimal_places)


def line_profits(invoice: InvoiceFact) -> list[LineProfit]:
    """Price every line of ``invoice`` and spread its invoice discount."""
    amounts = [
        compute_line_amounts(
            line.tp_rate, line.paid_quantity, line.discount_type, line.discount_value
        )
        for line in invoice.lines
    ]
    shares = allocate_invoice_discount(invoice.discount, [a.net for a in amounts])

    result = []
    for line, amount, share in zip(invoice.lines, amounts, shares):
        result.append(
            LineProfit(
                product_id=line.product_id,
                product_name=line.product_name,
                category_id=line.category_id,
                category_name=line.category_name or UNCATEGORIZED,
                paid_quantity=line.paid_quantity,
                free_quantity=line.free_quantity,
                revenue=amount.gross,
                line_discount=amount.discount,
                invoice_discount_share=share,
                net_sales=amount.net - share,
                cogs=line.cost_price * (line.paid_quantity + line.free_quantity),
                free_cost=line.cost_price * line.free_quantity,
            )
        )
    return result


@dataclass
class _Bucket:
    key: UUID | None
    name: str
    net_sales: Decimal = ZERO
    cogs: Decimal = ZERO
    paid_quantity: int = 0
    free_quantity: int = 0
    free_cost: Decimal = ZERO

    def add(self, line: LineProfit) -> None:
        self.net_sales += line.net_sales
        self.cogs += line.cogs
        self.paid_quantity += line.paid_quantity
        self.free_quantity += line.free_quantity
        self.free_cost += line.free_cost

    def freeze(self, places: int) -> ProfitByGroup:
        return ProfitByGroup(
            key=self.key,
            name=self.name,
            net_sales=round_money(self.net_sales, places),
            cogs=round_money(self.cogs, places),
            profit=round_money(self.net_sales - self.cogs, places),
            paid_quantity=self.paid_quantity,
            free_quantity=self.free_quantity,
            free_cost=round_money(self.free_cost, places),
        )


@dataclass
class _Grouping:
    buckets: dict = field(default_factory=dict)

    def add(self, key: UUID | None, name: str, line: LineProfit) -> None:
        bucket = self.buckets.get(key)
        if bucket is None:
            bucket = self.buckets[key] = _Bucket(key=key, name=name)
        bucket.add(line)

    def ranked(self, places: int) -> tuple[ProfitByGroup, ...]:
        groups = [b.freeze(places) for b in self.buckets.values()]
        return tuple(sorted(groups, key=lambda g: (-g.profit, g.name)))


def _adjustment_effects(
    adjustments: Iterable[AdjustmentFact],
    window: ReportWindow,
    filters: ProfitLossFilters,
) -> tuple[Decimal, Decimal]:
    return_adjustment = ZERO
    damage_write_off = ZERO
    for adj in adjustments:
        if not window.contains(adj.created_at):
            continue
        if not filters.accepts_product(adj.product_id, adj.category_id):
            continue
        kind = AdjustmentType(adj.adjustment_type)
        if kind == AdjustmentType.RETURN:
            if adj.return_action is not None and ReturnAction(adj.return_action) == ReturnAction.RESTOCK:
                return_adjustment += adj.unit_cost * adj.quantity
        elif kind in PROFIT_WRITE_OFF_TYPES:
            damage_write_off += adj.unit_cost * abs(adj.applied_quantity)
        elif (
            adj.compensated_type is not None
            and AdjustmentType(adj.compensated_type) in PROFIT_WRITE_OFF_TYPES
        ):
            # Reversal of a damage/expiry write-off
            damage_write_off -= adj.unit_cost * abs(adj.applied_quantity)
    return return_adjustment, damage_write_off


@traced_engine("profit_loss", "1.0", fingerprint_fields=("window", "filters"))
def compute_profit_loss(
    *,
    invoices: Iterable[InvoiceFact],
    adjustments: Iterable[AdjustmentFact] = (),
    window: ReportWindow = ALL_TIME,
    filters: ProfitLossFilters | None = None,
    places: int = MONEY_DECIMAL_PLACES,
) -> ProfitLossResult:
    """
    Aggregate profit and loss for settled invoices created in ``window``.

    DRAFT and CANCELLED invoices are ignored whatever the caller passes.
    With a product or category filter, invoices without a matching line
    drop out entirely.
    """
    filters = filters or ProfitLossFilters()

    gross_revenue = ZERO
    line_discounts = ZERO
    invoice_discounts = ZERO
    net_sales = ZERO
    total_cogs = ZERO
    total_paid = ZERO
    total_due = ZERO
    free_quantity = 0
    free_cost = ZERO
    rows: list[InvoiceWithPL] = []

    by_customer = _Grouping()
    by_seller = _Grouping()
    by_product = _Grouping()
    by_category = _Grouping()

    for invoice in invoices:
        if str(getattr(invoice.status, "value", invoice.status)) not in SETTLED:
            continue
        if not window.contains(invoice.created_at) or not filters.accepts_invoice(invoice):
            continue

        lines = [
            lp for lp in line_profits(invoice)
            if filters.accepts_product(lp.product_id, lp.category_id)
        ]
        if filters.filters_lines and not lines:
            continue

        inv_sales = sum((lp.net_sales for lp in lines), ZERO)
        inv_cogs = sum((lp.cogs for lp in lines), ZERO)
        inv_free_qty = sum(lp.free_quantity for lp in lines)
        inv_free_cost = sum((lp.free_cost for lp in lines), ZERO)

        if filters.filters_lines:
            line_total = sum((lp.revenue - lp.line_discount for lp in lines), ZERO)
            ratio = line_total / invoice.total if invoice.total > 0 else ZERO
            paid = round_money(invoice.paid * ratio, places)
            due = round_money(invoice.due * ratio, places)
        else:
            paid, due = invoice.paid, invoice.due

        gross_revenue += sum((lp.revenue for lp in lines), ZERO)
        line_discounts += sum((lp.line_discount for lp in lines), ZERO)
        invoice_discounts += sum((lp.invoice_discount_share for lp in lines), ZERO)
        net_sales += inv_sales
        total_cogs += inv_cogs
        total_paid += paid
        total_due += due
        free_quantity += inv_free_qty
        free_cost += inv_free_cost

        seller_name = invoice.seller_name or UNASSIGNED_SELLER
        for lp in lines:
            by_customer.add(invoice.customer_id, invoice.customer_name, lp)
            by_seller.add(invoice.seller_id, seller_name, lp)
            by_product.add(lp.product_id, lp.product_name, lp)
            by_category.add(lp.category_id, lp.category_name, lp)

        rows.append(
            InvoiceWithPL(
                invoice_id=invoice.invoice_id,
                invoice_number=invoice.invoice_number,
                created_at=invoice.created_at,
                customer_name=invoice.customer_name,
                seller_name=seller_name,
                net_sales=round_money(inv_sales, places),
                paid=round_money(paid, places),
                due=round_money(due, places),
                cogs=round_money(inv_cogs, places),
                profit=round_money(inv_sales - inv_cogs, places),
                profit_margin=margin(inv_sales - inv_cogs, inv_sales, places),
                free_quantity=inv_free_qty,
                free_cost=round_money(inv_free_cost, places),
            )
        )

    return_adjustment, damage_write_off = _adjustment_effects(adjustments, window, filters)

    gross_profit = net_sales - total_cogs
    net_profit = gross_profit + return_adjustment - damage_write_off

    metrics = ProfitLossMetrics(
        net_sales=round_money(net_sales, places),
        gross_revenue=round_money(gross_revenue, places),
        line_discounts=round_money(line_discounts, places),
        invoice_discounts=round_money(invoice_discounts, places),
        total_paid=round_money(total_paid, places),
        total_due=round_money(total_due, places),
        total_cogs=round_money(total_cogs, places),
        gross_profit=round_money(gross_profit, places),
        return_adjustment=round_money(return_adjustment, places),
        damage_write_off=round_money(damage_write_off, places),
        net_profit=round_money(net_profit, places),
        profit_margin=margin(net_profit, net_sales, places),
        invoice_count=len(rows),
        free_quantity=free_quantity,
        free_cost=round_money(free_cost, places),
    )

    rows.sort(key=lambda r: (r.created_at, r.invoice_number))
    return ProfitLossResult(
        metrics=metrics,
        invoices=tuple(rows),
        by_customer=by_customer.ranked(places),
        by_seller=by_seller.ranked(places),
        by_product=by_product.ranked(places),
        by_category=by_category.ranked(places),
    )
