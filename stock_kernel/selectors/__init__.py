"""Read-only selectors: the query side of the kernel."""

from stock_kernel.selectors.base import BaseSelector
from stock_kernel.selectors.batch_selector import BatchSelector
from stock_kernel.selectors.invoice_selector import (
    InvoiceLineView,
    InvoiceSelector,
    InvoiceView,
    PaymentView,
)
from stock_kernel.selectors.ledger_selector import (
    BatchReconciliation,
    LedgerEntryView,
    LedgerSelector,
)

__all__ = [
    "BaseSelector",
    "BatchReconciliation",
    "BatchSelector",
    "InvoiceLineView",
    "InvoiceSelector",
    "InvoiceView",
    "LedgerEntryView",
    "LedgerSelector",
    "PaymentView",
]
