"""
Module: stock_kernel.models.audit_event
Responsibility: ORM persistence for hash-chained audit events.
Architecture position: Kernel > Models.  May import from db/base.py.

Invariants enforced:
    - Append-only (ORM listener blocks UPDATE and DELETE).
    - seq is unique and strictly increasing (SequenceService).
    - hash = H(entity_type | entity_id | action | payload_hash | prev_hash);
      prev_hash is None only for the genesis event.

Audit relevance:
    Every invoice, payment, adjustment, batch receipt and quotation action
    leaves one event here.  AuditorService.validate_chain() recomputes the
    chain to detect tampering.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Auditable actions.  One member per kind of state change."""

    CREATE = "create"
    UPDATE = "update"

    BATCH_RECEIVED = "batch_received"

    INVOICE_CREATED = "invoice_created"
    INVOICE_CONFIRMED = "invoice_confirmed"
    INVOICE_CANCELLED = "invoice_cancelled"
    PAYMENT_APPLIED = "payment_applied"

    ADJUSTMENT_RECORDED = "adjustment_recorded"
    ADJUSTMENT_COMPENSATED = "adjustment_compensated"

    QUOTATION_CREATED = "quotation_created"
    QUOTATION_STATUS_CHANGED = "quotation_status_changed"
    QUOTATION_CONVERTED = "quotation_converted"


class AuditEvent(Base):
    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_seq", "seq"),
    )

    seq: Mapped[int] = mapped_column(nullable=False, unique=True)

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    action: Mapped[AuditAction] = mapped_column(String(50), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent {self.action} on {self.entity_type}:{self.entity_id}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None
