"""
Pure domain layer.

Value objects and rules with no dependency on the ORM, the database, the
clock or any I/O: pricing arithmetic, expiry ordering, adjustment request
variants and the DTOs passed between services, selectors and engines.
"""

from stock_kernel.domain.adjustments import (
    COUNT_CORRECTION_TYPES,
    PROFIT_WRITE_OFF_TYPES,
    WRITE_OFF_TYPES,
    AdjustmentRequest,
    AdjustmentType,
    CountCorrectionRequest,
    ReturnAction,
    ReturnRequest,
    WriteOffRequest,
)
from stock_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from stock_kernel.domain.dtos import (
    BatchSnapshot,
    StockNotice,
    StockNoticeKind,
    stock_notice_for,
)
from stock_kernel.domain.expiry import (
    NEVER_EXPIRES,
    effective_expiry,
    expiry_sort_key,
    is_expired,
)
from stock_kernel.domain.pricing import (
    DiscountType,
    LineAmounts,
    allocate_invoice_discount,
    compute_invoice_total,
    compute_line_amounts,
    discount_amount,
)

__all__ = [
    "AdjustmentRequest",
    "AdjustmentType",
    "BatchSnapshot",
    "COUNT_CORRECTION_TYPES",
    "Clock",
    "CountCorrectionRequest",
    "DeterministicClock",
    "DiscountType",
    "LineAmounts",
    "NEVER_EXPIRES",
    "PROFIT_WRITE_OFF_TYPES",
    "ReturnAction",
    "ReturnRequest",
    "StockNotice",
    "StockNoticeKind",
    "SystemClock",
    "WRITE_OFF_TYPES",
    "WriteOffRequest",
    "allocate_invoice_discount",
    "compute_invoice_total",
    "compute_line_amounts",
    "discount_amount",
    "effective_expiry",
    "expiry_sort_key",
    "is_expired",
    "stock_notice_for",
]
