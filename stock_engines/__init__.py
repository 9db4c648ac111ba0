"""
Module: stock_engines
Responsibility:
    Package entrypoint that re-exports the pure calculation engines: batch
    allocation, report window resolution and profit & loss aggregation.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import stock_kernel.domain, stock_kernel.db.types and
    stock_kernel.exceptions.  MUST NOT import services, selectors or
    stock_modules.

Invariants enforced:
    - Purity: engines never read the clock.  "today" and "as of" dates are
      passed in by the calling service.
    - Decimal-only arithmetic for money.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Every engine invocation is traced via ``@traced_engine``, emitting a
    STOCK_ENGINE_TRACE log record with the engine name, version, input
    fingerprint and duration.
"""

from stock_engines.allocation import (
    AllocationMode,
    AllocationResult,
    BatchAllocation,
    allocate,
    order_available,
    select_single_batch,
)
from stock_engines.profit_loss import (
    AdjustmentFact,
    InvoiceFact,
    InvoiceWithPL,
    LineFact,
    LineProfit,
    ProfitByGroup,
    ProfitLossFilters,
    ProfitLossMetrics,
    ProfitLossResult,
    compute_profit_loss,
    line_profits,
    margin,
)
from stock_engines.report_window import (
    ALL_TIME,
    ReportPeriod,
    ReportWindow,
    resolve_window,
    start_of_week,
)
from stock_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "ALL_TIME",
    "AdjustmentFact",
    "AllocationMode",
    "AllocationResult",
    "BatchAllocation",
    "InvoiceFact",
    "InvoiceWithPL",
    "LineFact",
    "LineProfit",
    "ProfitByGroup",
    "ProfitLossFilters",
    "ProfitLossMetrics",
    "ProfitLossResult",
    "ReportPeriod",
    "ReportWindow",
    "allocate",
    "compute_input_fingerprint",
    "compute_profit_loss",
    "line_profits",
    "margin",
    "order_available",
    "resolve_window",
    "select_single_batch",
    "start_of_week",
    "traced_engine",
]
