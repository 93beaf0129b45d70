"""Staff domain constants."""

from django.db import models


class WorkerRole(models.TextChoices):
    WAITER = "waiter", "Waiter"
    CHEF = "chef", "Chef"
    CASHIER = "cashier", "Cashier"
    HOST = "host", "Host"


class WorkerStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    INACTIVE = "inactive", "Inactive"
    ON_BREAK = "on_break", "On break"
    ON_LEAVE = "on_leave", "On leave"
    SUSPENDED = "suspended", "Suspended"


# Only waiters take part in order scheduling.
SCHEDULABLE_ROLE = WorkerRole.WAITER
