"""
Configuration schema (``stock_config.schema``).

Responsibility
--------------
Defines the frozen ``StockConfig`` dataclass that every runtime consumer
receives, and validates values on construction.

Invariants enforced
-------------------
* Frozen: a loaded configuration is never mutated.
* ``cogs_policy`` is ``A`` (free quantity counts toward COGS); other
  policies are rejected rather than silently ignored.
* Thresholds, pool sizes and timeouts are positive.
"""

from __future__ import annotations

from dataclasses import dataclass

from stock_engines.allocation import AllocationMode
from stock_engines.report_window import WEEKDAYS

SUPPORTED_COGS_POLICIES = frozenset({"A"})


@dataclass(frozen=True)
class StockConfig:
    config_id: str
    version: int
    database_url: str
    echo_sql: bool
    pool_size: int
    store_timeout_seconds: float
    low_stock_threshold: int
    allocation_mode: AllocationMode
    cogs_policy: str
    week_start: str
    money_decimal_places: int
    invoice_number_prefix: str
    quotation_number_prefix: str
    checksum: str = ""

    def __post_init__(self) -> None:
        if not self.database_url:
            raise ValueError("database_url is required")
        if self.pool_size < 1:
            raise ValueError(f"pool_size must be at least 1, got {self.pool_size}")
        if self.store_timeout_seconds <= 0:
            raise ValueError(
                f"store_timeout_seconds must be positive, got {self.store_timeout_seconds}"
            )
        if self.low_stock_threshold < 0:
            raise ValueError(
                f"low_stock_threshold must be non-negative, got {self.low_stock_threshold}"
            )
        if self.cogs_policy not in SUPPORTED_COGS_POLICIES:
            raise ValueError(
                f"Unsupported cogs_policy {self.cogs_policy!r}; "
                f"supported: {sorted(SUPPORTED_COGS_POLICIES)}"
            )
        if self.week_start not in WEEKDAYS:
            raise ValueError(f"Unknown week_start {self.week_start!r}")
        if self.money_decimal_places < 0:
            raise ValueError("money_decimal_places must be non-negative")
        if not self.invoice_number_prefix or not self.quotation_number_prefix:
            raise ValueError("Document number prefixes must be non-empty")
