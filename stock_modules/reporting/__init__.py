"""
Profit & Loss Reporting Module (``stock_modules.reporting``).

Responsibility
--------------
Read-only module that produces profit and loss reports for a period
preset or a custom date range, optionally narrowed to one customer,
seller, product or category.

Architecture position
---------------------
**Modules layer** -- never writes.  Loading happens in
``ProfitLossService``; all arithmetic is delegated to
``stock_engines.profit_loss.compute_profit_loss``.

Invariants enforced
-------------------
* Only CONFIRMED, PARTIAL and PAID invoices count as sales.
* COGS includes free quantity (cost policy A).
* Grouped views add up to the window metrics.

Audit relevance
---------------
Every report carries its resolved window, filters and generation
timestamp, so a figure can be regenerated from the same inputs.
"""

from stock_modules.reporting.models import ProfitLossReport, ReportRequest
from stock_modules.reporting.service import ProfitLossService

__all__ = [
    "ProfitLossReport",
    "ProfitLossService",
    "ReportRequest",
]
