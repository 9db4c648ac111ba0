"""
ORM-level immutability enforcement.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | When Immutable          | Why
--------------------|-------------------------|-----------------------------------
StockLedgerEntry    | ALWAYS (from creation)  | Movement history behind balances
StockAdjustment     | ALWAYS (from creation)  | Undone only by compensation
Payment             | ALWAYS (from creation)  | Invoice paid is their running sum
InvoiceLine         | ALWAYS (from creation)  | Price snapshots must not drift
AuditEvent          | ALWAYS (from creation)  | Hash chain
Invoice             | Never deleted           | Settled documents stay on record

SQLAlchemy fires ``before_update`` / ``before_delete`` during flush, before
any SQL reaches the database.  The listeners below raise
ImmutabilityViolationError and the flush aborts.

``updated_at`` and ``updated_by_id`` are metadata, not stock data, and may
change on any record.

===============================================================================
USAGE
===============================================================================

    from stock_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

    # TESTS ONLY
    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_METADATA_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _changed_fields(target) -> list[str]:
    """Column attributes with pending changes, metadata excluded."""
    state = inspect(target)
    changed = []
    for attr in state.mapper.column_attrs:
        if attr.key in _METADATA_FIELDS:
            continue
        if state.attrs[attr.key].history.has_changes():
            changed.append(attr.key)
    return changed


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "reason": reason,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _append_only_update(entity_type: str, reason: str):
    def _check(mapper, connection, target):
        changed = _changed_fields(target)
        if changed:
            _block(entity_type, target, "UPDATE", f"{reason} (changed: {', '.join(changed)})")

    return _check


def _append_only_delete(entity_type: str, reason: str):
    def _check(mapper, connection, target):
        _block(entity_type, target, "DELETE", reason)

    return _check


def _registrations():
    from stock_kernel.models.audit_event import AuditEvent
    from stock_kernel.models.invoice import Invoice, InvoiceLine
    from stock_kernel.models.payment import Payment
    from stock_kernel.models.stock_adjustment import StockAdjustment
    from stock_kernel.models.stock_ledger import StockLedgerEntry

    return [
        (StockLedgerEntry, "before_update",
         _append_only_update("StockLedgerEntry", "stock ledger is append-only")),
        (StockLedgerEntry, "before_delete",
         _append_only_delete("StockLedgerEntry", "stock ledger is append-only")),
        (StockAdjustment, "before_update",
         _append_only_update("StockAdjustment", "adjustments are reversed by compensation")),
        (StockAdjustment, "before_delete",
         _append_only_delete("StockAdjustment", "adjustments are reversed by compensation")),
        (Payment, "before_update",
         _append_only_update("Payment", "payments are immutable")),
        (Payment, "before_delete",
         _append_only_delete("Payment", "payments are immutable")),
        (InvoiceLine, "before_update",
         _append_only_update("InvoiceLine", "invoice line snapshots are immutable")),
        (InvoiceLine, "before_delete",
         _append_only_delete("InvoiceLine", "invoice line snapshots are immutable")),
        (AuditEvent, "before_update",
         _append_only_update("AuditEvent", "audit events are immutable")),
        (AuditEvent, "before_delete",
         _append_only_delete("AuditEvent", "audit events are immutable")),
        (Invoice, "before_delete",
         _append_only_delete("Invoice", "invoices are cancelled, never deleted")),
    ]


_registered: list = []


def register_immutability_listeners() -> None:
    """Register all immutability listeners.  Safe to call more than once."""
    if _registered:
        return
    for model, event_name, listener in _registrations():
        event.listen(model, event_name, listener)
        _registered.append((model, event_name, listener))


def unregister_immutability_listeners() -> None:
    """Remove all immutability listeners.  FOR TESTING ONLY."""
    while _registered:
        model, event_name, listener = _registered.pop()
        if event.contains(model, event_name, listener):
            event.remove(model, event_name, listener)
