"""
Typed exception hierarchy for the stock kernel.

Every failure a caller may need to react to has its own class, a
machine-readable ``code`` class attribute, and structured attributes.
Callers catch by type and read attributes; they never parse messages.

    try:
        settlement.confirm_invoice(invoice_id, actor_id)
    except InsufficientStockError as e:
        for shortfall in e.shortfalls:
            show(shortfall.product_name, shortfall.available, shortfall.required)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockKernelError (base)
    |
    +-- ValidationError
    |
    +-- NotFoundError
    |   +-- ProductNotFoundError
    |   +-- BatchNotFoundError
    |   +-- InvoiceNotFoundError
    |   +-- InvoiceLineNotFoundError
    |   +-- AdjustmentNotFoundError
    |   +-- QuotationNotFoundError
    |   +-- PartyNotFoundError
    |
    +-- StockError
    |   +-- InsufficientStockError
    |   +-- ExceedsReturnableQuantityError
    |
    +-- InvoiceStateError
    |   +-- AlreadyConfirmedError
    |   +-- InvalidInvoiceStateError
    |
    +-- QuotationStateError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

    NegativeBalanceClampedWarning (UserWarning, never raised)

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                          | When Raised
--------------|-------------------------------|------------------------------------
Validation    | VALIDATION_ERROR              | Malformed request, bad quantity
NotFound      | PRODUCT_NOT_FOUND             | Product id unknown
              | BATCH_NOT_FOUND               | Batch id unknown
              | INVOICE_NOT_FOUND             | Invoice id unknown
              | INVOICE_LINE_NOT_FOUND        | No line for (invoice, product, batch)
              | ADJUSTMENT_NOT_FOUND          | Adjustment id unknown
              | QUOTATION_NOT_FOUND           | Quotation id unknown
              | PARTY_NOT_FOUND               | Customer/seller/category unknown
Stock         | INSUFFICIENT_STOCK            | Batch balance below requirement
              | EXCEEDS_RETURNABLE_QUANTITY   | Return above sold - returned
Invoice       | ALREADY_CONFIRMED             | Confirm on a settled invoice
              | INVALID_INVOICE_STATE         | Operation not allowed in status
Quotation     | INVALID_QUOTATION_STATE       | Transition not allowed
Audit         | AUDIT_CHAIN_BROKEN            | Hash chain validation failed
Concurrency   | OPTIMISTIC_LOCK_CONFLICT      | Row changed by another writer
Immutability  | IMMUTABILITY_VIOLATION        | Ledger/adjustment/line modified
"""

from dataclasses import dataclass


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses must define a ``code`` class attribute.
    """

    code: str = "STOCK_KERNEL_ERROR"


class ValidationError(StockKernelError):
    """A request failed validation before any state was touched."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


# Not-found exceptions


class NotFoundError(StockKernelError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"
    entity_type: str = "Record"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class ProductNotFoundError(NotFoundError):
    code: str = "PRODUCT_NOT_FOUND"
    entity_type: str = "Product"


class BatchNotFoundError(NotFoundError):
    code: str = "BATCH_NOT_FOUND"
    entity_type: str = "Batch"


class InvoiceNotFoundError(NotFoundError):
    code: str = "INVOICE_NOT_FOUND"
    entity_type: str = "Invoice"


class InvoiceLineNotFoundError(NotFoundError):
    """No invoice line matches (invoice, product, batch)."""

    code: str = "INVOICE_LINE_NOT_FOUND"
    entity_type: str = "Invoice line"

    def __init__(self, invoice_id: str, product_id: str, batch_id: str):
        self.entity_id = invoice_id
        self.invoice_id = invoice_id
        self.product_id = product_id
        self.batch_id = batch_id
        StockKernelError.__init__(
            self,
            f"Invoice {invoice_id} has no line for product {product_id} "
            f"from batch {batch_id}"
        )


class AdjustmentNotFoundError(NotFoundError):
    code: str = "ADJUSTMENT_NOT_FOUND"
    entity_type: str = "Stock adjustment"


class QuotationNotFoundError(NotFoundError):
    code: str = "QUOTATION_NOT_FOUND"
    entity_type: str = "Quotation"


class PartyNotFoundError(NotFoundError):
    """Customer, seller or category reference does not resolve."""

    code: str = "PARTY_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        super().__init__(entity_id)


# Stock exceptions


class StockError(StockKernelError):
    """Base exception for stock quantity violations."""

    code: str = "STOCK_ERROR"


@dataclass(frozen=True)
class StockShortfall:
    """One offending line in an insufficient-stock failure."""

    product_id: str
    product_name: str
    batch_id: str | None
    lot_number: str | None
    available: int
    required: int

    def describe(self) -> str:
        where = f" (batch {self.lot_number})" if self.lot_number else ""
        return (
            f"insufficient stock for {self.product_name}{where}: "
            f"available {self.available}, required {self.required}"
        )


class InsufficientStockError(StockError):
    """
    One or more lines require more units than their batch holds.

    Confirmation validates every line first and raises a single error
    listing all shortfalls, so the caller can fix them in one pass.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, shortfalls: list[StockShortfall] | tuple[StockShortfall, ...]):
        if not shortfalls:
            raise ValueError("InsufficientStockError requires at least one shortfall")
        self.shortfalls = tuple(shortfalls)
        super().__init__("; ".join(s.describe() for s in self.shortfalls))

    @property
    def available(self) -> int:
        """Available quantity of the first offending line."""
        return self.shortfalls[0].available

    @property
    def required(self) -> int:
        """Required quantity of the first offending line."""
        return self.shortfalls[0].required


class ExceedsReturnableQuantityError(StockError):
    """Return quantity above what was sold less what was already returned."""

    code: str = "EXCEEDS_RETURNABLE_QUANTITY"

    def __init__(self, invoice_id: str, requested: int, max_returnable: int):
        self.invoice_id = invoice_id
        self.requested = requested
        self.max_returnable = max_returnable
        super().__init__(
            f"Cannot return {requested} unit(s) against invoice {invoice_id}: "
            f"at most {max_returnable} returnable"
        )


# Invoice state exceptions


class InvoiceStateError(StockKernelError):
    """Base exception for invoice lifecycle violations."""

    code: str = "INVOICE_STATE_ERROR"


class AlreadyConfirmedError(InvoiceStateError):
    """Confirmation requested for an invoice that has already left DRAFT."""

    code: str = "ALREADY_CONFIRMED"

    def __init__(self, invoice_id: str, status: str):
        self.invoice_id = invoice_id
        self.status = status
        super().__init__(
            f"Invoice {invoice_id} is already confirmed (status {status})"
        )


class InvalidInvoiceStateError(InvoiceStateError):
    """Operation not permitted for the invoice's current status."""

    code: str = "INVALID_INVOICE_STATE"

    def __init__(self, invoice_id: str, status: str, operation: str):
        self.invoice_id = invoice_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} invoice {invoice_id} in status {status}"
        )


class QuotationStateError(StockKernelError):
    """Quotation transition or conversion not permitted."""

    code: str = "INVALID_QUOTATION_STATE"

    def __init__(self, quotation_id: str, status: str, operation: str):
        self.quotation_id = quotation_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} quotation {quotation_id} in status {status}"
        )


# Audit exceptions


class AuditError(StockKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """The audit hash chain has been tampered with."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at event {audit_event_id}: "
            f"expected {expected_hash}, got {actual_hash}"
        )


# Concurrency exceptions


class ConcurrencyError(StockKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability exceptions


class ImmutabilityError(StockKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Ledger entries, adjustments, payments, invoice lines and audit
    events are immutable once created.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Warnings


class NegativeBalanceClampedWarning(UserWarning):
    """
    A downward correction was larger than the batch balance.

    The applied delta was reduced so the balance lands on zero. This is
    surfaced in the adjustment result and logged; it is never raised.
    """

    code: str = "NEGATIVE_BALANCE_CLAMPED"

    def __init__(self, batch_id: str, requested: int, applied: int):
        self.batch_id = batch_id
        self.requested = requested
        self.applied = applied
        super().__init__(
            f"Correction of {requested} on batch {batch_id} clamped to {applied} "
            "to keep the balance non-negative"
        )
