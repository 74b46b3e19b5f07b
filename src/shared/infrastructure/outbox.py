"""Outbox writer: persists domain events next to the business data."""

from __future__ import annotations

import json
from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List
from uuid import UUID

import structlog

from modules.core.models import OutboxEvent
from shared.domain.events import DomainEvent

logger = structlog.get_logger(__name__)


def record_events(events: Iterable[DomainEvent], topic: str) -> List[OutboxEvent]:
    """Persist *events* as ``PENDING`` outbox rows in one batched insert."""
    rows = [
        OutboxEvent(
            event_type=event.event_name,
            aggregate_id=str(event.aggregate_id),
            payload=_serialize_event_payload(event),
            topic=topic,
        )
        for event in events
    ]
    if not rows:
        return []
    created = OutboxEvent.objects.bulk_create(rows)
    logger.info("outbox.events_recorded", topic=topic, event_count=len(created))
    return created


def _serialize_event_payload(event: Any) -> Dict[str, Any]:
    data = asdict(event)
    normalized = _normalize_for_json(data)
    return json.loads(json.dumps(normalized))


def _normalize_for_json(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, list):
        return [_normalize_for_json(item) for item in value]
    if isinstance(value, dict):
        return {key: _normalize_for_json(val) for key, val in value.items()}
    return value
