"""Celery tasks of the orders module."""

from __future__ import annotations

import structlog
from celery import shared_task
from django.db import transaction
from django.db.models import QuerySet

from modules.core.models import EventStatus, OutboxEvent
from modules.orders.constants import (
    OUTBOX_BATCH_SIZE,
    OUTBOX_MAX_RETRIES,
    OUTBOX_TOPIC,
)
from shared.domain.events import DomainEvent
from shared.infrastructure.bus import event_bus

logger = structlog.get_logger(__name__)


def claim_outbox_batch(batch_size: int = OUTBOX_BATCH_SIZE) -> QuerySet:
    """Rows due for dispatch, oldest first, locked for the caller.

    Must be evaluated inside a transaction.  Rows already locked by a
    concurrent relay run are skipped, so no row is dispatched twice.
    """
    return (
        OutboxEvent.objects.select_for_update(skip_locked=True)
        .filter(
            topic=OUTBOX_TOPIC,
            status__in=[EventStatus.PENDING, EventStatus.FAILED],
            retry_count__lt=OUTBOX_MAX_RETRIES,
        )
        .order_by("created_at")[:batch_size]
    )


@shared_task(name="orders.publish_outbox_events")
def publish_outbox_events(batch_size: int = OUTBOX_BATCH_SIZE) -> dict:
    """Relay pending outbox rows to the in-process event bus.

    Rows are dispatched oldest first.  A row whose event cannot be rebuilt
    or whose handler raises is marked ``FAILED`` and retried on later runs
    until ``OUTBOX_MAX_RETRIES`` is reached.
    """
    published = failed = 0
    with transaction.atomic():
        for row in claim_outbox_batch(batch_size):
            log = logger.bind(
                outbox_id=str(row.id),
                event_type=row.event_type,
                aggregate_id=row.aggregate_id,
            )
            try:
                with transaction.atomic():
                    event = DomainEvent.from_payload(row.event_type, row.payload)
                    event_bus.publish(event)
            except Exception as exc:
                row.mark_as_failed(f"{type(exc).__name__}: {exc}")
                log.error(
                    "outbox.publish_failed",
                    error=str(exc),
                    retry_count=row.retry_count,
                )
                failed += 1
                continue
            row.mark_as_published()
            log.info("outbox.published")
            published += 1

    logger.info("outbox.relay_finished", published=published, failed=failed)
    return {"published": published, "failed": failed}
