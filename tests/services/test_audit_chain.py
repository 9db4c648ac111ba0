"""
Tests for AuditorService: hash chain integrity and per-entity traces.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import update

from stock_kernel.exceptions import AuditChainBrokenError
from stock_kernel.models.audit_event import AuditAction, AuditEvent


class TestAuditChain:
    def test_events_are_linked(self, auditor, test_actor_id):
        first = auditor.record("Product", uuid4(), AuditAction.CREATE, test_actor_id, {"a": 1})
        second = auditor.record("Product", uuid4(), AuditAction.UPDATE, test_actor_id, {"b": 2})

        assert first.prev_hash is None
        assert second.prev_hash == first.hash
        assert second.seq == first.seq + 1
        assert len(second.hash) == 64

    def test_full_workflow_chain_validates(
        self, auditor, create_invoice, settlement, batch, test_actor_id
    ):
        invoice = create_invoice([(batch, 10, 0)])
        settlement.apply_payment(invoice.id, Decimal("100"), test_actor_id)

        assert auditor.validate_chain() is True

    def test_payload_is_canonicalized(self, auditor, batch, test_actor_id):
        trace = auditor.get_trace("BatchLot", batch.id)

        payload = trace.entries[0].payload
        assert payload["lot_number"] == "PCM-001"
        assert payload["product_id"] == str(batch.product_id)
        assert payload["expiry_date"] == "2025-12-31"

    def test_tampered_payload_detected(self, auditor, session, test_actor_id):
        event = auditor.record("Product", uuid4(), AuditAction.CREATE, test_actor_id, {"name": "A"})
        auditor.record("Product", uuid4(), AuditAction.CREATE, test_actor_id, {"name": "B"})

        session.execute(
            update(AuditEvent.__table__)
            .where(AuditEvent.__table__.c.id == event.id)
            .values(payload={"name": "Z"})
        )
        session.expire_all()

        with pytest.raises(AuditChainBrokenError) as exc_info:
            auditor.validate_chain()
        assert exc_info.value.audit_event_id == str(event.id)

    def test_broken_link_detected(self, auditor, session, test_actor_id):
        auditor.record("Product", uuid4(), AuditAction.CREATE, test_actor_id, {})
        second = auditor.record("Product", uuid4(), AuditAction.CREATE, test_actor_id, {})

        session.execute(
            update(AuditEvent.__table__)
            .where(AuditEvent.__table__.c.id == second.id)
            .values(prev_hash="0" * 64)
        )
        session.expire_all()

        with pytest.raises(AuditChainBrokenError):
            auditor.validate_chain()


class TestAuditTrace:
    def test_invoice_lifecycle_trace(self, auditor, create_invoice, settlement, batch, test_actor_id):
        invoice = create_invoice([(batch, 10, 0)])
        settlement.apply_payment(invoice.id, Decimal("600"), test_actor_id)

        trace = auditor.get_trace("Invoice", invoice.id)

        assert trace.actions == (
            AuditAction.INVOICE_CREATED,
            AuditAction.INVOICE_CONFIRMED,
            AuditAction.PAYMENT_APPLIED,
        )
        assert trace.entries[-1].payload["status"] == "paid"
        assert all(e.actor_id == test_actor_id for e in trace.entries)

    def test_unknown_entity_has_empty_trace(self, auditor):
        assert auditor.get_trace("Invoice", uuid4()).entries == ()
