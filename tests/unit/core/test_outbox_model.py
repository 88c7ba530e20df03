"""Unit tests for the OutboxEvent model.

Covers:
- Defaults of a freshly written row.
- Payload written from a real domain event survives the round trip.
- mark_as_published() / mark_as_failed() transitions and retry counter.
"""

from __future__ import annotations

import uuid

import pytest

from modules.core.models import EventStatus, OutboxEvent
from modules.orders.events import OrderPaid

pytestmark = pytest.mark.unit


def _make_row(**overrides) -> OutboxEvent:
    defaults = {
        "event_type": "OrderPaid",
        "payload": {"aggregate_id": str(uuid.uuid4()), "total_amount": "99.90"},
        "aggregate_id": "abc-123",
        "topic": "orders",
    }
    defaults.update(overrides)
    return OutboxEvent.objects.create(**defaults)


class TestOutboxEventDefaults:
    def test_new_row_is_pending(self):
        row = _make_row()
        row.refresh_from_db()
        assert row.status == EventStatus.PENDING
        assert row.processed_at is None
        assert row.error_message is None
        assert row.retry_count == 0

    def test_id_is_uuid7(self):
        row = _make_row()
        assert isinstance(row.id, uuid.UUID)
        assert row.id.version == 7


class TestOutboxEventPayload:
    def test_event_payload_survives_round_trip(self):
        order_id = uuid.uuid4()
        event = OrderPaid(aggregate_id=order_id, actor_id="7", total_amount="10.00")
        row = _make_row(
            payload={
                "aggregate_id": str(order_id),
                "event_id": str(event.event_id),
                "occurred_on": event.occurred_on.isoformat(),
                "actor_id": "7",
                "total_amount": "10.00",
            }
        )
        row.refresh_from_db()

        from shared.domain.events import DomainEvent

        rebuilt = DomainEvent.from_payload(row.event_type, row.payload)
        assert rebuilt == event


class TestOutboxEventTransitions:
    def test_mark_as_published(self):
        row = _make_row()
        row.mark_as_published()
        row.refresh_from_db()

        assert row.status == EventStatus.PUBLISHED
        assert row.processed_at is not None

    def test_mark_as_failed_increments_retry(self):
        row = _make_row()
        row.mark_as_failed("Error 1")
        row.mark_as_failed("Error 2")
        row.refresh_from_db()

        assert row.status == EventStatus.FAILED
        assert row.retry_count == 2
        assert row.error_message == "Error 2"

    def test_publish_after_failure_clears_error(self):
        row = _make_row()
        row.mark_as_failed("handler exploded")
        row.mark_as_published()
        row.refresh_from_db()

        assert row.status == EventStatus.PUBLISHED
        assert row.error_message is None
        assert row.retry_count == 1

    def test_str_shows_type_status_and_aggregate(self):
        row = _make_row(event_type="OrderCancelled", aggregate_id="order-456")
        assert str(row) == "OrderCancelled [PENDING] (order-456)"
