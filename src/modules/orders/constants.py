"""Order domain constants.

Defines status choices, the order state machine, assignment methods and
queue priority tiers.
"""

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    CONFIRMED = "confirmed", "Confirmed"
    PREPARING = "preparing", "Preparing"
    READY = "ready", "Ready"
    SERVED = "served", "Served"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"
    QUEUED = "queued", "Queued"
    EXPIRED = "expired", "Expired"


VALID_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.PENDING: {
        OrderStatus.CONFIRMED,
        OrderStatus.PREPARING,
        OrderStatus.QUEUED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.QUEUED: {
        OrderStatus.PENDING,
        OrderStatus.CANCELLED,
        OrderStatus.EXPIRED,
    },
    OrderStatus.CONFIRMED: {OrderStatus.PREPARING, OrderStatus.CANCELLED},
    OrderStatus.PREPARING: {OrderStatus.READY, OrderStatus.CANCELLED},
    OrderStatus.READY: {OrderStatus.SERVED, OrderStatus.CANCELLED},
    OrderStatus.SERVED: {OrderStatus.COMPLETED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
    OrderStatus.EXPIRED: set(),
}

TERMINAL_STATES: set[str] = {
    OrderStatus.COMPLETED,
    OrderStatus.CANCELLED,
    OrderStatus.EXPIRED,
}

# Orders in these statuses occupy a slot of their assigned worker.
OPEN_STATUSES: tuple[str, ...] = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
)

# Leaving the open set through one of these releases capacity.
COMPLETION_STATUSES: frozenset[str] = frozenset(
    {OrderStatus.SERVED, OrderStatus.COMPLETED}
)

# Only the assignment engine moves orders in and out of the queue.
ENGINE_ONLY_STATUSES: frozenset[str] = frozenset(
    {OrderStatus.QUEUED, OrderStatus.EXPIRED}
)


class AssignmentMethod(models.TextChoices):
    ROUND_ROBIN = "round-robin", "Round robin"
    LOAD_BALANCING = "load-balancing", "Load balancing"
    QUEUE = "queue", "Queue"
    MANUAL = "manual", "Manual"


class Priority(models.IntegerChoices):
    LOW = 1, "low"
    NORMAL = 2, "normal"
    HIGH = 3, "high"

    @classmethod
    def parse(cls, value: object) -> "Priority":
        """Accept ``"high"``/``3``/``Priority.HIGH``; raise ``ValueError`` otherwise."""
        if isinstance(value, str) and not value.isdigit():
            for member in cls:
                if member.label == value.lower():
                    return member
            raise ValueError(f"Unknown priority {value!r}.")
        return cls(int(value))  # type: ignore[arg-type]


ORDER_NUMBER_MAX_RETRIES = 5
