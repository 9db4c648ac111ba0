"""
Stock Modules.

Thin orchestration layers over the stock kernel and engines.  A module
loads facts through the kernel's ORM models, hands them to a pure engine
and returns frozen DTOs.  No stock arithmetic lives here.

Modules:
- Reporting: profit and loss by period, customer, seller, product and
  category
"""

from stock_modules import reporting

__all__ = ["reporting"]
