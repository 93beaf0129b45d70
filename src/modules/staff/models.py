"""Worker model.

``active_orders_count`` mirrors the number of open orders assigned to the
worker.  It is only ever changed through ``F()`` expressions by the
repository, and the lifecycle repair step recomputes it from the orders
table when it drifts.  ``total_assignments`` and ``completed_orders`` are
reporting counters and play no part in scheduling.
"""

from __future__ import annotations

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import BaseModel
from modules.staff.constants import WorkerRole, WorkerStatus


def _default_capacity() -> int:
    return settings.ASSIGNMENT["MAX_ORDERS_PER_WAITER"]


class Worker(BaseModel):
    """Front-of-house staff member that can be assigned orders."""

    name: models.CharField = models.CharField(max_length=200)
    staff_code: models.CharField = models.CharField(max_length=50, unique=True)
    role: models.CharField = models.CharField(
        max_length=20,
        choices=WorkerRole.choices,
        default=WorkerRole.WAITER,
    )
    venue: models.ForeignKey = models.ForeignKey(
        "venues.Venue",
        on_delete=models.CASCADE,
        related_name="workers",
    )
    branch: models.ForeignKey = models.ForeignKey(
        "venues.Branch",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="workers",
    )
    manager: models.ForeignKey = models.ForeignKey(
        "venues.Manager",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="workers",
    )
    is_available: models.BooleanField = models.BooleanField(default=True)
    status: models.CharField = models.CharField(
        max_length=20,
        choices=WorkerStatus.choices,
        default=WorkerStatus.ACTIVE,
    )
    active_orders_count: models.PositiveIntegerField = models.PositiveIntegerField(
        default=0
    )
    max_orders_capacity: models.PositiveIntegerField = models.PositiveIntegerField(
        default=_default_capacity,
        validators=[MinValueValidator(1)],
    )
    total_assignments: models.PositiveIntegerField = models.PositiveIntegerField(
        default=0
    )
    completed_orders: models.PositiveIntegerField = models.PositiveIntegerField(
        default=0
    )
    last_assigned_at: models.DateTimeField = models.DateTimeField(
        null=True, blank=True
    )

    class Meta:
        db_table = "workers"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(
                fields=["venue", "branch", "role", "status", "is_available"],
                name="workers_eligibility_idx",
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(max_orders_capacity__gte=1),
                name="workers_capacity_positive",
            ),
        ]

    @property
    def is_schedulable(self) -> bool:
        return (
            self.role == WorkerRole.WAITER
            and self.status == WorkerStatus.ACTIVE
            and self.is_available
        )

    def __str__(self) -> str:
        return f"{self.name} ({self.staff_code})"
