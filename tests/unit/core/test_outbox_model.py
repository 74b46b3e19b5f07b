"""Unit tests for the OutboxEvent model and the outbox writer.

Covers:
- Event creation with all required fields.
- Default status is PENDING.
- JSON payload persistence and retrieval.
- __str__ representation.
- record_events(): one row per domain event, JSON-safe payloads.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import pytest

from modules.core.models import EventStatus, OutboxEvent
from modules.orders.events import OrderStatusChanged
from shared.infrastructure.outbox import record_events

pytestmark = pytest.mark.unit


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_event(**overrides) -> OutboxEvent:
    """Create and persist an OutboxEvent with sensible defaults."""
    defaults = {
        "event_type": "OrderStatusChanged",
        "payload": {"aggregate_id": 12, "new_status_key": "ordered"},
        "aggregate_id": "12",
        "topic": "orders",
    }
    defaults.update(overrides)
    return OutboxEvent.objects.create(**defaults)


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


class TestOutboxEventCreation:
    """Happy-path event creation."""

    def test_create_event_with_defaults(self):
        event = _make_event()
        event.refresh_from_db()
        assert event.event_type == "OrderStatusChanged"
        assert event.aggregate_id == "12"
        assert event.topic == "orders"
        assert event.status == EventStatus.PENDING
        assert event.processed_at is None

    def test_id_is_uuid7(self):
        event = _make_event()
        assert isinstance(event.id, uuid.UUID)
        assert event.id.version == 7

    def test_payload_round_trip(self):
        payload = {"items": [1, 2, 3], "nested": {"key": "value"}, "flag": True}
        event = _make_event(payload=payload)
        event.refresh_from_db()
        assert event.payload == payload

    def test_str_representation(self):
        event = _make_event()
        assert str(event) == "OrderStatusChanged [PENDING] (12)"


# ---------------------------------------------------------------------------
# Writer
# ---------------------------------------------------------------------------


class TestRecordEvents:
    def test_one_pending_row_per_event(self):
        events = [
            OrderStatusChanged(aggregate_id=3, old_status_key="", new_status_key="processing"),
            OrderStatusChanged(aggregate_id=4, old_status_key="ordered", new_status_key="shipped_to_wh"),
        ]

        created = record_events(events, "orders")

        assert len(created) == 2
        rows = OutboxEvent.objects.order_by("aggregate_id")
        assert [row.aggregate_id for row in rows] == ["3", "4"]
        assert {row.status for row in rows} == {EventStatus.PENDING}
        assert {row.topic for row in rows} == {"orders"}

    def test_payload_is_json_safe(self):
        occurred = datetime(2026, 5, 4, 10, 0, tzinfo=timezone.utc)
        event = OrderStatusChanged(
            aggregate_id=9,
            occurred_on=occurred,
            old_status_key="processing",
            new_status_key="ordered",
            new_status_label="Ordered",
        )

        (row,) = record_events([event], "orders")
        row.refresh_from_db()

        assert row.event_type == "OrderStatusChanged"
        assert row.payload["event_id"] == str(event.event_id)
        assert row.payload["occurred_on"] == "2026-05-04T10:00:00+00:00"
        assert row.payload["new_status_label"] == "Ordered"

    def test_no_events_writes_nothing(self):
        assert record_events([], "orders") == []
        assert not OutboxEvent.objects.exists()
