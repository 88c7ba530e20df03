"""Order domain constants.

Defines status choices and the transition table for the order state
machine.  ``VALID_TRANSITIONS`` is the only authority on legal status
changes; ``paid -> paid`` and ``cancelled -> cancelled`` are idempotent
no-ops handled by the service, not transitions.
"""

from django.db import models


class OrderStatus(models.TextChoices):
    CREATED = "created", "Created"
    PAID = "paid", "Paid"
    CANCELLED = "cancelled", "Cancelled"


VALID_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.CREATED: {OrderStatus.PAID, OrderStatus.CANCELLED},
    OrderStatus.PAID: {OrderStatus.CANCELLED},
    OrderStatus.CANCELLED: set(),
}

TERMINAL_STATES: set[str] = {OrderStatus.CANCELLED}

# Statuses from which cancellation returns reserved stock.
STOCK_HOLDING_STATES: set[str] = {OrderStatus.CREATED, OrderStatus.PAID}


class OrderOutcome(models.TextChoices):
    CREATED = "created", "Order created successfully"
    ALREADY_CREATED = "already_created", "Order already exists for this idempotency key"
    PAID = "paid", "Payment successful"
    ALREADY_PAID = "already_paid", "Order is already paid"
    CANCELLED = "cancelled", "Order cancelled successfully"
    ALREADY_CANCELLED = "already_cancelled", "Order is already cancelled"


ORDER_NUMBER_MAX_RETRIES = 5

IDEMPOTENCY_KEY_MAX_LENGTH = 255

OUTBOX_TOPIC = "orders"

# Outbox relay
OUTBOX_BATCH_SIZE = 100
OUTBOX_MAX_RETRIES = 5
