"""
AuditorService -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Creates immutable, hash-chained audit events for every state change in
    the kernel: batch receipts, invoice lifecycle, payments, adjustments,
    quotations and catalog records.  Provides chain validation and
    per-entity traces.

Architecture position:
    Kernel > Services -- called by every other write-side service.

Invariants enforced:
    - seq comes from SequenceService (locked counter, never max+1).
    - hash = H(entity_type | entity_id | action | payload_hash | prev_hash).
    - Append-only (ORM listener on AuditEvent).

Failure modes:
    - AuditChainBrokenError from validate_chain() when a stored hash or a
      prev_hash link does not match.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.exceptions import AuditChainBrokenError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.audit_event import AuditAction, AuditEvent
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.utils.hashing import hash_audit_event, hash_payload, to_json_safe

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTraceEntry:
    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: UUID
    payload: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """All audit events for one entity, oldest first."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(e.action for e in self.entries)


class AuditorService:
    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        return self._session.execute(
            select(AuditEvent.hash).order_by(AuditEvent.seq.desc()).limit(1)
        ).scalar_one_or_none()

    def record(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """
        Append one audit event linked to its predecessor.

        The payload is canonicalized (Decimals, UUIDs, dates to strings)
        before it is hashed and stored, so the stored JSON re-hashes to the
        recorded payload_hash.
        """
        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._get_last_hash()

        payload_data = to_json_safe(payload or {})
        computed_payload_hash = hash_payload(payload_data)

        event_hash = hash_audit_event(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=AuditAction(action).value,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
        )

        audit_event = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            action=AuditAction(action).value,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload=payload_data,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
            hash=event_hash,
        )
        self._session.add(audit_event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": AuditAction(action).value,
                "seq": seq,
            },
        )
        return audit_event

    def validate_chain(self) -> bool:
        """
        Recompute every event's payload hash, event hash and prev_hash link.

        Returns True when the whole chain verifies.

        Raises:
            AuditChainBrokenError: At the first event that does not verify.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        previous: AuditEvent | None = None
        for event in events:
            expected_prev = previous.hash if previous is not None else None
            if event.prev_hash != expected_prev:
                logger.critical(
                    "audit_chain_broken",
                    extra={"audit_event_id": str(event.id), "check": "prev_hash"},
                )
                raise AuditChainBrokenError(
                    str(event.id), expected_prev or "None", event.prev_hash or "None"
                )

            if hash_payload(event.payload or {}) != event.payload_hash:
                logger.critical(
                    "audit_chain_broken",
                    extra={"audit_event_id": str(event.id), "check": "payload_hash"},
                )
                raise AuditChainBrokenError(
                    str(event.id), hash_payload(event.payload or {}), event.payload_hash
                )

            expected_hash = hash_audit_event(
                entity_type=event.entity_type,
                entity_id=str(event.entity_id),
                action=AuditAction(event.action).value,
                payload_hash=event.payload_hash,
                prev_hash=event.prev_hash,
            )
            if event.hash != expected_hash:
                logger.critical(
                    "audit_chain_broken",
                    extra={"audit_event_id": str(event.id), "check": "hash"},
                )
                raise AuditChainBrokenError(str(event.id), expected_hash, event.hash)

            previous = event

        logger.info("audit_chain_validated", extra={"event_count": len(events)})
        return True

    def get_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == entity_id,
            )
            .order_by(AuditEvent.seq)
        ).scalars().all()

        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=tuple(
                AuditTraceEntry(
                    seq=e.seq,
                    action=AuditAction(e.action),
                    occurred_at=e.occurred_at,
                    actor_id=e.actor_id,
                    payload=e.payload or {},
                    hash=e.hash,
                )
                for e in events
            ),
        )
