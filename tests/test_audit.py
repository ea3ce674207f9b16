"""
Test suite for audit module

Tests hash-chained audit trail, tamper detection and integrity verification.
"""

import pytest
from decimal import Decimal
from datetime import date, datetime, timezone

from core_lending.storage import InMemoryStorage
from core_lending.audit import AuditTrail, AuditEvent, AuditEventType


class TestAuditEvent:
    """Test AuditEvent functionality"""

    def make_event(self, **overrides) -> AuditEvent:
        now = datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc)
        fields = dict(
            id="AUDIT001",
            created_at=now,
            updated_at=now,
            event_type=AuditEventType.LOAN_CREATED,
            entity_type="loan",
            entity_id="LOAN001",
            sequence=1,
            previous_hash="",
            current_hash="",
            metadata={"loan_amount": Decimal('1050.00'), "create_date": date(2024, 1, 15)},
            user_id="admin"
        )
        fields.update(overrides)
        return AuditEvent(**fields)

    def test_metadata_is_json_safe(self):
        event = self.make_event()

        assert event.metadata == {"loan_amount": "1050.00", "create_date": "2024-01-15"}

    def test_hash_is_deterministic(self):
        first = self.make_event()
        second = self.make_event()

        assert first.calculate_hash() == second.calculate_hash()
        assert len(first.calculate_hash()) == 64

    def test_hash_covers_fields(self):
        base = self.make_event().calculate_hash()

        assert self.make_event(entity_id="LOAN002").calculate_hash() != base
        assert self.make_event(previous_hash="abc").calculate_hash() != base
        assert self.make_event(metadata={"loan_amount": "1050.01"}).calculate_hash() != base

    def test_verify_hash(self):
        event = self.make_event()
        event.current_hash = event.calculate_hash()

        assert event.verify_hash()
        event.metadata["loan_amount"] = "1.00"
        assert not event.verify_hash()

    def test_dict_round_trip(self):
        event = self.make_event()
        event.current_hash = event.calculate_hash()

        restored = AuditEvent.from_dict(event.to_dict())

        assert restored.event_type == AuditEventType.LOAN_CREATED
        assert restored.verify_hash()


class TestAuditTrail:
    """Test AuditTrail chaining and verification"""

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)

    def test_events_are_chained(self):
        first = self.audit_trail.log_event(AuditEventType.CUSTOMER_CREATED, "customer", "C1")
        second = self.audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", "L1", user_id="admin")

        assert first.sequence == 1
        assert first.previous_hash == ""
        assert second.sequence == 2
        assert second.previous_hash == first.current_hash

    def test_verify_integrity(self):
        for index in range(5):
            self.audit_trail.log_event(AuditEventType.LOAN_PAYMENT_MADE, "loan", f"L{index}")

        result = self.audit_trail.verify_integrity()

        assert result['valid']
        assert result['total_events'] == 5
        assert result['hash_errors'] == []
        assert result['chain_breaks'] == []

    def test_tampering_detected(self):
        self.audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", "L1", {"loan_amount": "600.00"})
        event = self.audit_trail.log_event(AuditEventType.LOAN_PAID_OFF, "loan", "L1")

        record = self.storage.load("audit_events", event.id)
        record["metadata"] = {"loan_amount": "0.00"}
        self.storage.save("audit_events", event.id, record)

        result = self.audit_trail.verify_integrity()
        assert not result['valid']
        assert [e['event_id'] for e in result['hash_errors']] == [event.id]

    def test_broken_chain_detected(self):
        self.audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", "L1")
        second = self.audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", "L2")

        record = self.storage.load("audit_events", second.id)
        record["previous_hash"] = "0" * 64
        self.storage.save("audit_events", second.id, record)

        result = self.audit_trail.verify_integrity()
        assert not result['valid']
        assert result['chain_breaks'][0]['event_id'] == second.id

    def test_events_for_entity(self):
        self.audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", "L1")
        self.audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", "L2")
        self.audit_trail.log_event(AuditEventType.LOAN_PAYMENT_MADE, "loan", "L1")

        events = self.audit_trail.get_events_for_entity("loan", "L1")

        assert [e.event_type for e in events] == [
            AuditEventType.LOAN_CREATED, AuditEventType.LOAN_PAYMENT_MADE
        ]

    def test_events_by_type(self):
        self.audit_trail.log_event(AuditEventType.LOGIN_SUCCESS, "auth", "admin")
        self.audit_trail.log_event(AuditEventType.LOGIN_FAILED, "auth", "mallory")

        events = self.audit_trail.get_events_by_type(AuditEventType.LOGIN_FAILED)

        assert [e.entity_id for e in events] == ["mallory"]

    def test_rolled_back_event_leaves_chain_intact(self):
        self.audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", "L1")

        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", "L2")
                raise RuntimeError("boom")

        self.audit_trail.log_event(AuditEventType.LOAN_CREATED, "loan", "L3")
        result = self.audit_trail.verify_integrity()
        assert result['valid']
        assert result['total_events'] == 2
