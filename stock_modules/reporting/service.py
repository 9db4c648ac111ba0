"""
Profit & Loss Service (``stock_modules.reporting.service``).

Responsibility
--------------
Loads settled invoices, their line snapshots and stock adjustments for a
reporting window, converts them into engine facts and returns a
``ProfitLossReport``.

Architecture position
---------------------
**Modules layer** -- read-only orchestration.  Queries kernel ORM models,
delegates every calculation to ``compute_profit_loss`` and never mutates
the session.

Invariants enforced
-------------------
* Only CONFIRMED, PARTIAL and PAID invoices are loaded.
* The window comes from the injected clock, never the system date.
* Product and category filters apply to lines and to adjustments alike.

Failure modes
-------------
* Unknown period or ``start`` after ``end``  -> ``ValueError``.
* Reads tolerate eventually consistent data; a report generated while
  invoices are being confirmed reflects whatever was committed.

Audit relevance
---------------
Each report logs ``profit_loss_report_generated`` with its window,
filters and headline figures.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, aliased

from stock_engines.profit_loss import (
    AdjustmentFact,
    InvoiceFact,
    LineFact,
    ProfitLossFilters,
    compute_profit_loss,
)
from stock_engines.report_window import (
    DEFAULT_WEEK_START,
    ReportPeriod,
    ReportWindow,
    resolve_window,
)
from stock_kernel.db.types import MONEY_DECIMAL_PLACES
from stock_kernel.domain.adjustments import AdjustmentType, ReturnAction
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.pricing import DiscountType
from stock_kernel.logging_config import get_logger
from stock_kernel.models.catalog import Product
from stock_kernel.models.invoice import SETTLED_STATUSES, Invoice
from stock_kernel.models.stock_adjustment import StockAdjustment
from stock_modules.reporting.models import ProfitLossReport, ReportRequest

logger = get_logger("modules.reporting.service")


def _utc(moment: datetime | None) -> datetime | None:
    """Naive values are UTC; aware values are converted to UTC."""
    if moment is None:
        return None
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class ProfitLossService:
    """
    Profit and loss report generation.

    Contract
    --------
    * ``generate`` returns a ``ProfitLossReport``; an empty window yields
      zero metrics and empty views, never an error.
    * Read-only: no flush, no audit events.

    Non-goals
    ---------
    * Does NOT attribute payments to lines.  Paid and due under a product
      or category filter are prorated by the engine.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        week_start: str = DEFAULT_WEEK_START,
        decimal_places: int = MONEY_DECIMAL_PLACES,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._week_start = week_start
        self._decimal_places = decimal_places

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _resolve(self, request: ReportRequest) -> ReportWindow:
        return resolve_window(
            request.period,
            self._clock.today(),
            start=request.start,
            end=request.end,
            week_start=self._week_start,
        )

    def _load_invoices(
        self,
        window: ReportWindow,
        filters: ProfitLossFilters,
    ) -> list[InvoiceFact]:
        lower, upper = window.bounds
        query = select(Invoice).where(
            Invoice.status.in_([s.value for s in SETTLED_STATUSES])
        )
        if lower is not None:
            query = query.where(Invoice.created_at >= _utc(lower))
        if upper is not None:
            query = query.where(Invoice.created_at < _utc(upper))
        if filters.customer_id is not None:
            query = query.where(Invoice.customer_id == filters.customer_id)
        if filters.seller_id is not None:
            query = query.where(Invoice.seller_id == filters.seller_id)

        facts = []
        for invoice in self._session.execute(query).scalars().all():
            lines = []
            for line in invoice.lines:
                category = line.product.category
                lines.append(
                    LineFact(
                        product_id=line.product_id,
                        product_name=line.product.name,
                        category_id=category.id if category else None,
                        category_name=category.name if category else None,
                        paid_quantity=line.paid_quantity,
                        free_quantity=line.free_quantity,
                        tp_rate=line.tp_rate,
                        cost_price=line.cost_price,
                        discount_type=DiscountType(line.discount_type),
                        discount_value=line.discount_value,
                    )
                )
            facts.append(
                InvoiceFact(
                    invoice_id=invoice.id,
                    invoice_number=invoice.invoice_number,
                    status=invoice.status,
                    created_at=_utc(invoice.created_at),
                    customer_id=invoice.customer_id,
                    customer_name=invoice.customer.name,
                    seller_id=invoice.seller_id,
                    seller_name=invoice.seller.name if invoice.seller else None,
                    discount=invoice.discount,
                    total=invoice.total,
                    paid=invoice.paid,
                    due=invoice.due,
                    lines=tuple(lines),
                )
            )

        logger.debug(
            "invoices_loaded_for_reporting",
            extra={"invoice_count": len(facts)},
        )
        return facts

    def _load_adjustments(
        self,
        window: ReportWindow,
        filters: ProfitLossFilters,
    ) -> list[AdjustmentFact]:
        compensated = aliased(StockAdjustment)
        query = (
            select(StockAdjustment, Product.category_id, compensated.adjustment_type)
            .join(Product, Product.id == StockAdjustment.product_id)
            .outerjoin(compensated, compensated.id == StockAdjustment.compensates_id)
        )
        lower, upper = window.bounds
        if lower is not None:
            query = query.where(StockAdjustment.created_at >= _utc(lower))
        if upper is not None:
            query = query.where(StockAdjustment.created_at < _utc(upper))
        if filters.product_id is not None:
            query = query.where(StockAdjustment.product_id == filters.product_id)
        if filters.category_id is not None:
            query = query.where(Product.category_id == filters.category_id)

        facts = []
        for adj, category_id, compensated_type in self._session.execute(query).all():
            facts.append(
                AdjustmentFact(
                    adjustment_type=AdjustmentType(adj.adjustment_type),
                    created_at=_utc(adj.created_at),
                    product_id=adj.product_id,
                    category_id=category_id,
                    quantity=adj.quantity,
                    applied_quantity=adj.applied_quantity,
                    unit_cost=adj.unit_cost,
                    return_action=(
                        ReturnAction(adj.return_action) if adj.return_action else None
                    ),
                    compensated_type=(
                        AdjustmentType(compensated_type) if compensated_type else None
                    ),
                )
            )
        return facts

    # =========================================================================
    # Public API
    # =========================================================================

    def generate(self, request: ReportRequest | None = None) -> ProfitLossReport:
        """
        Build the profit and loss report described by ``request``.

        Defaults to all time with no filters.
        """
        request = request or ReportRequest()
        window = self._resolve(request)
        filters = request.filters

        invoices = self._load_invoices(window, filters)
        adjustments = self._load_adjustments(window, filters)
        result = compute_profit_loss(
            invoices=invoices,
            adjustments=adjustments,
            window=window,
            filters=filters,
            places=self._decimal_places,
        )

        report = ProfitLossReport(
            period=request.period,
            window=window,
            filters=filters,
            generated_at=self._clock.now(),
            metrics=result.metrics,
            invoices=result.invoices,
            by_customer=result.by_customer,
            by_seller=result.by_seller,
            by_product=result.by_product,
            by_category=result.by_category,
            adjustment_count=len(adjustments),
        )

        logger.info(
            "profit_loss_report_generated",
            extra={
                "period": request.period.value,
                "window_start": str(window.start) if window.start else None,
                "window_end": str(window.end) if window.end else None,
                "invoice_count": result.metrics.invoice_count,
                "net_sales": str(result.metrics.net_sales),
                "net_profit": str(result.metrics.net_profit),
            },
        )
        return report

    def for_period(
        self,
        period: ReportPeriod | str = ReportPeriod.ALL,
        *,
        start: date | None = None,
        end: date | None = None,
        customer_id: UUID | None = None,
        seller_id: UUID | None = None,
        product_id: UUID | None = None,
        category_id: UUID | None = None,
    ) -> ProfitLossReport:
        """Keyword form of ``generate``."""
        return self.generate(
            ReportRequest(
                period=ReportPeriod(period),
                start=start,
                end=end,
                customer_id=customer_id,
                seller_id=seller_id,
                product_id=product_id,
                category_id=category_id,
            )
        )
