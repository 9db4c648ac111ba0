"""Domain models for the stock kernel."""

from stock_kernel.models.audit_event import AuditAction, AuditEvent
from stock_kernel.models.batch_lot import BatchLot
from stock_kernel.models.catalog import Category, Product
from stock_kernel.models.invoice import (
    SETTLED_STATUSES,
    Invoice,
    InvoiceLine,
    InvoiceStatus,
)
from stock_kernel.models.party import Customer, Seller
from stock_kernel.models.payment import Payment, PaymentMethod
from stock_kernel.models.quotation import Quotation, QuotationLine, QuotationStatus
from stock_kernel.models.stock_adjustment import (
    COUNT_CORRECTION_TYPES,
    PROFIT_WRITE_OFF_TYPES,
    WRITE_OFF_TYPES,
    AdjustmentType,
    ReturnAction,
    StockAdjustment,
)
from stock_kernel.models.stock_ledger import LedgerEntryType, StockLedgerEntry
from stock_kernel.models.sequence import SequenceCounter

__all__ = [
    "AuditAction",
    "AuditEvent",
    "BatchLot",
    "Category",
    "Product",
    "SETTLED_STATUSES",
    "Invoice",
    "InvoiceLine",
    "InvoiceStatus",
    "Customer",
    "Seller",
    "Payment",
    "PaymentMethod",
    "Quotation",
    "QuotationLine",
    "QuotationStatus",
    "COUNT_CORRECTION_TYPES",
    "PROFIT_WRITE_OFF_TYPES",
    "WRITE_OFF_TYPES",
    "AdjustmentType",
    "ReturnAction",
    "StockAdjustment",
    "LedgerEntryType",
    "StockLedgerEntry",
    "SequenceCounter",
]
