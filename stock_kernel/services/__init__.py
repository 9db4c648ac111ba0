"""Services for the stock kernel (write side)."""

from stock_kernel.services.adjustment_service import AdjustmentResult, AdjustmentService
from stock_kernel.services.auditor_service import AuditorService, AuditTrace, AuditTraceEntry
from stock_kernel.services.batch_service import BatchService
from stock_kernel.services.catalog_service import CatalogService
from stock_kernel.services.quotation_service import QuotationLineInput, QuotationService
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.services.settlement_service import (
    ConfirmationResult,
    InvoiceLineInput,
    PaymentResult,
    SettlementService,
)
from stock_kernel.services.stock_ledger_service import StockLedgerService

__all__ = [
    "AdjustmentResult",
    "AdjustmentService",
    "AuditTrace",
    "AuditTraceEntry",
    "AuditorService",
    "BatchService",
    "CatalogService",
    "ConfirmationResult",
    "InvoiceLineInput",
    "PaymentResult",
    "QuotationLineInput",
    "QuotationService",
    "SequenceService",
    "SettlementService",
    "StockLedgerService",
]
