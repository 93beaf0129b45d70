"""Order, AssignmentHistory and OrderStatusHistory models.

Business rules implemented:
- Invalid status transitions rejected (enforced at service layer).
- Each status change generates a history record (see ``signals``).
- Queue fields (``queue_position``, ``queued_at``, ``estimated_wait_time``)
  are set only while ``status == queued``.
- ``priority`` always holds a tier; it is reset to normal when the order
  leaves the queue.
- ``capacity_released`` flips once, when the order stops occupying a slot
  of its worker.
- At most one ``AssignmentHistory`` row per order has ``unassigned_at``
  unset.
"""

from __future__ import annotations

import secrets
from typing import Any

import structlog
from django.conf import settings
from django.db import models
from django.utils import timezone

from modules.core.models import BaseModel
from modules.orders.constants import (
    ORDER_NUMBER_MAX_RETRIES,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    AssignmentMethod,
    OrderStatus,
    Priority,
)

logger = structlog.get_logger(__name__)


class Order(BaseModel):
    """Order aggregate root.

    ``order_number`` is a human-readable identifier auto-generated on first
    save (format: ``ORD-YYYYMMDD-XXXXXX``).  The UUIDv7 ``id`` is used for
    all internal references and API lookups.
    """

    order_number: models.CharField = models.CharField(
        max_length=20, unique=True, editable=False
    )
    venue: models.ForeignKey = models.ForeignKey(
        "venues.Venue",
        on_delete=models.PROTECT,
        related_name="orders",
    )
    branch: models.ForeignKey = models.ForeignKey(
        "venues.Branch",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="orders",
    )
    table_number: models.CharField = models.CharField(
        max_length=20, blank=True, default=""
    )
    customer_name: models.CharField = models.CharField(
        max_length=200, blank=True, default=""
    )
    notes: models.TextField = models.TextField(blank=True, default="")
    status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
    )

    # Assignment
    staff: models.ForeignKey = models.ForeignKey(
        "staff.Worker",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
    )
    assigned_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    assignment_method: models.CharField = models.CharField(
        max_length=20,
        choices=AssignmentMethod.choices,
        blank=True,
        default="",
    )
    capacity_released: models.BooleanField = models.BooleanField(default=False)

    # Queue
    priority: models.PositiveSmallIntegerField = models.PositiveSmallIntegerField(
        choices=Priority.choices,
        default=Priority.NORMAL,
    )
    queue_position: models.PositiveIntegerField = models.PositiveIntegerField(
        null=True, blank=True
    )
    queued_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    estimated_wait_time: models.PositiveIntegerField = models.PositiveIntegerField(
        null=True, blank=True
    )

    # Reconciler
    is_timeout: models.BooleanField = models.BooleanField(default=False)
    timeout_detected_at: models.DateTimeField = models.DateTimeField(
        null=True, blank=True
    )

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="orders_status_idx"),
            models.Index(fields=["-created_at"], name="orders_created_idx"),
            models.Index(
                fields=["venue", "branch", "status", "-priority", "queued_at"],
                name="orders_queue_idx",
            ),
            models.Index(fields=["staff", "status"], name="orders_staff_status_idx"),
        ]

    # ------------------------------------------------------------------
    # State Machine helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        """Return ``True`` if the order is in a terminal state."""
        return self.status in TERMINAL_STATES

    @property
    def is_queued(self) -> bool:
        return self.status == OrderStatus.QUEUED

    def can_transition_to(self, new_status: str) -> bool:
        """Check whether transitioning to *new_status* is valid."""
        allowed = VALID_TRANSITIONS.get(self.status, set())
        return new_status in allowed

    # ------------------------------------------------------------------
    # Order number generation
    # ------------------------------------------------------------------

    @staticmethod
    def generate_order_number() -> str:
        """Generate a human-readable order number: ``ORD-YYYYMMDD-XXXXXX``."""
        now = timezone.now()
        suffix = secrets.token_hex(3).upper()
        return f"ORD-{now:%Y%m%d}-{suffix}"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self.order_number:
            for attempt in range(ORDER_NUMBER_MAX_RETRIES):
                candidate = self.generate_order_number()
                if not Order.objects.filter(order_number=candidate).exists():
                    self.order_number = candidate
                    break
            else:
                raise RuntimeError(
                    f"Failed to generate unique order_number after "
                    f"{ORDER_NUMBER_MAX_RETRIES} attempts"
                )
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.order_number} ({self.status})"


class AssignmentHistory(BaseModel):
    """Append-only record of every worker an order has been given to.

    The active entry is the one with ``unassigned_at`` unset.  A manual
    reassignment closes it before opening the next one.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="assignment_history",
    )
    worker: models.ForeignKey = models.ForeignKey(
        "staff.Worker",
        on_delete=models.SET_NULL,
        null=True,
        related_name="assignment_history",
    )
    assigned_at: models.DateTimeField = models.DateTimeField(default=timezone.now)
    method: models.CharField = models.CharField(
        max_length=20, choices=AssignmentMethod.choices
    )
    reason: models.CharField = models.CharField(max_length=255, blank=True, default="")
    unassigned_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    unassign_reason: models.CharField = models.CharField(
        max_length=255, blank=True, default=""
    )

    class Meta:
        db_table = "order_assignment_history"
        ordering = ["-assigned_at"]
        indexes = [
            models.Index(fields=["assigned_at"], name="oah_assigned_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["order"],
                condition=models.Q(unassigned_at__isnull=True),
                name="oah_single_active_assignment",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order_id} -> {self.worker_id} ({self.method})"


class OrderStatusHistory(BaseModel):
    """Append-only audit trail for order status transitions.

    ``user`` is nullable: ``None`` means the change was performed by the
    system (assignment engine or reconciler).
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    old_status: models.CharField = models.CharField(  # noqa: DJ01
        max_length=20,
        choices=OrderStatus.choices,
        null=True,
        blank=True,
    )
    new_status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
    )
    user: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    notes: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "order_status_history"
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["order", "-created_at"],
                name="osh_order_created_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order} : {self.old_status} -> {self.new_status}"
