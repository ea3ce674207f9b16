"""
Audit Module

Append-only log of lending state changes. Each event stores the SHA-256 of
its own content and the hash of the event before it, so editing or removing
any stored event breaks the chain. Events are written inside the caller's
unit of work and disappear with it on rollback.
"""

import hashlib
import json
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from .storage import StorageInterface, StorageRecord


class AuditEventType(Enum):
    """Kinds of recorded state changes"""
    CUSTOMER_CREATED = "customer_created"
    CREDIT_LIMIT_USED = "credit_limit_used"
    CREDIT_LIMIT_RELEASED = "credit_limit_released"
    LOAN_CREATED = "loan_created"
    LOAN_PAYMENT_MADE = "loan_payment_made"
    LOAN_PAID_OFF = "loan_paid_off"
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILED = "login_failed"


def _json_safe(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


@dataclass
class AuditEvent(StorageRecord):
    """One link of the audit chain"""
    event_type: AuditEventType
    entity_type: str  # customer, loan or auth
    entity_id: str
    sequence: int  # 1 for the first event
    previous_hash: str  # Empty for the first event
    current_hash: str
    metadata: Dict[str, Any]
    user_id: Optional[str] = None  # Acting username

    def __post_init__(self):
        self.metadata = _json_safe(self.metadata or {})

    def content(self) -> Dict[str, Any]:
        """Hashed fields: everything but current_hash and updated_at"""
        return {
            'id': self.id,
            'sequence': self.sequence,
            'created_at': self.created_at.isoformat(),
            'event_type': self.event_type.value,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'user_id': self.user_id,
            'previous_hash': self.previous_hash,
            'metadata': self.metadata,
        }

    def calculate_hash(self) -> str:
        canonical = json.dumps(self.content(), sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(canonical.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        return self.calculate_hash() == self.current_hash

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data['event_type'] = self.event_type.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEvent':
        fields = dict(data)
        fields['event_type'] = AuditEventType(fields['event_type'])
        for key in ('created_at', 'updated_at'):
            fields[key] = datetime.fromisoformat(fields[key])
        return cls(**fields)


class AuditTrail:
    """
    Writes and verifies the audit chain

    Appending reads the current chain head, so every append runs in a storage
    unit of work; concurrent appends are serialized by the storage backend.
    """

    def __init__(self, storage: StorageInterface, table_name: str = "audit_events"):
        self.storage = storage
        self.table_name = table_name

    def log_event(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        metadata: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None
    ) -> AuditEvent:
        """
        Append an event to the chain

        Args:
            event_type: What happened
            entity_type: Kind of record affected
            entity_id: Identifier of the affected record
            metadata: Event details; Decimals, dates and enums are stored as strings
            user_id: Username that caused the event

        Returns:
            The stored AuditEvent
        """
        with self.storage.atomic():
            events = self._ordered_events()
            head = events[-1] if events else None
            now = datetime.now(timezone.utc)

            event = AuditEvent(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                sequence=(head.sequence if head else 0) + 1,
                previous_hash=head.current_hash if head else "",
                current_hash="",
                metadata=metadata or {},
                user_id=user_id
            )
            event.current_hash = event.calculate_hash()
            self.storage.save(self.table_name, event.id, event.to_dict())

        return event

    def get_events_for_entity(self, entity_type: str, entity_id: str) -> List[AuditEvent]:
        """Events touching one record, in chain order"""
        matches = self.storage.find(
            self.table_name, {'entity_type': entity_type, 'entity_id': entity_id}
        )
        return sorted((AuditEvent.from_dict(data) for data in matches), key=lambda e: e.sequence)

    def get_events_by_type(self, event_type: AuditEventType) -> List[AuditEvent]:
        """Events of one kind, in chain order"""
        return [event for event in self._ordered_events() if event.event_type == event_type]

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Recompute every hash and check every link

        Returns:
            ``valid`` flag, ``total_events``, plus ``hash_errors`` (events whose
            content no longer matches their hash) and ``chain_breaks`` (events
            whose previous_hash does not match the event before them)
        """
        events = self._ordered_events()
        hash_errors = []
        chain_breaks = []

        expected_previous = ""
        for position, event in enumerate(events):
            recomputed = event.calculate_hash()
            if recomputed != event.current_hash:
                hash_errors.append({
                    'event_id': event.id,
                    'position': position,
                    'expected_hash': recomputed,
                    'actual_hash': event.current_hash,
                })
            if event.previous_hash != expected_previous:
                chain_breaks.append({
                    'event_id': event.id,
                    'position': position,
                    'expected_previous_hash': expected_previous,
                    'actual_previous_hash': event.previous_hash,
                })
            expected_previous = event.current_hash

        return {
            'valid': not hash_errors and not chain_breaks,
            'total_events': len(events),
            'hash_errors': hash_errors,
            'chain_breaks': chain_breaks,
        }

    def _ordered_events(self) -> List[AuditEvent]:
        events = [AuditEvent.from_dict(data) for data in self.storage.load_all(self.table_name)]
        return sorted(events, key=lambda e: e.sequence)
