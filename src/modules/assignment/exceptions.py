"""Assignment domain exceptions.

Raised by the engine and the queue manager; the API layer translates them
into HTTP responses.  Lookups of missing orders and workers reuse
``OrderNotFound`` and ``WorkerNotFound`` from their own apps.
"""

from __future__ import annotations


class HierarchyInvalid(Exception):
    """The venue/branch ownership chain is broken; scheduling is refused."""


class CapacityExceeded(Exception):
    """The worker already carries its maximum number of open orders."""


class WorkerUnavailable(Exception):
    """The worker is inactive, unavailable, not a waiter or outside the scope."""


class ServiceSaturated(Exception):
    """No worker can take the order and it cannot be queued."""


class QueueFull(ServiceSaturated):
    """The scope's waiting list has reached its configured size."""


class OrderNotAssignable(Exception):
    """The order is not pending or already has a worker."""


class OrderNotInQueue(Exception):
    """The order is not currently queued."""


class InvalidPriority(Exception):
    """The priority value is not one of low, normal or high."""
