"""
Profit & Loss Report Models (``stock_modules.reporting.models``).

Responsibility
--------------
Frozen value objects for report requests and report output.  Figures
themselves are the engine's DTOs (``ProfitLossMetrics``, ``InvoiceWithPL``,
``ProfitByGroup``); ``ProfitLossReport`` bundles them with the parameters
that produced them.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All monetary fields are ``Decimal``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from uuid import UUID

from stock_engines.profit_loss import (
    InvoiceWithPL,
    ProfitByGroup,
    ProfitLossFilters,
    ProfitLossMetrics,
)
from stock_engines.report_window import ReportPeriod, ReportWindow


@dataclass(frozen=True)
class ReportRequest:
    """Parameters of a profit and loss report."""

    period: ReportPeriod = ReportPeriod.ALL
    start: date | None = None
    end: date | None = None
    customer_id: UUID | None = None
    seller_id: UUID | None = None
    product_id: UUID | None = None
    category_id: UUID | None = None

    def __post_init__(self) -> None:
        period = ReportPeriod(self.period)
        if period != ReportPeriod.CUSTOM and (self.start or self.end):
            raise ValueError("start and end are only accepted for a custom period")
        object.__setattr__(self, "period", period)

    @property
    def filters(self) -> ProfitLossFilters:
        return ProfitLossFilters(
            customer_id=self.customer_id,
            seller_id=self.seller_id,
            product_id=self.product_id,
            category_id=self.category_id,
        )


@dataclass(frozen=True)
class ProfitLossReport:
    """A generated report: window metrics, invoice rows and grouped views."""

    period: ReportPeriod
    window: ReportWindow
    filters: ProfitLossFilters
    generated_at: datetime
    metrics: ProfitLossMetrics
    invoices: tuple[InvoiceWithPL, ...] = ()
    by_customer: tuple[ProfitByGroup, ...] = ()
    by_seller: tuple[ProfitByGroup, ...] = ()
    by_product: tuple[ProfitByGroup, ...] = ()
    by_category: tuple[ProfitByGroup, ...] = ()
    adjustment_count: int = field(default=0)

    @property
    def is_empty(self) -> bool:
        return self.metrics.invoice_count == 0 and self.adjustment_count == 0
