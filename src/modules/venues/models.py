"""Venue, Branch and Manager models.

These records form the ownership chain the assignment engine walks before
scheduling anything:

- ``Venue.owner`` and ``Branch.owner`` are Django auth users.
- ``Branch.venue`` links a branch to its parent venue.
- ``Manager.created_by`` is the owner who registered the manager.
- ``Worker.manager`` (staff app) closes the chain.

A venue or branch without an owner is valid data but cannot be scheduled.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from modules.core.models import BaseModel


class Venue(BaseModel):
    """Top-level food-service venue."""

    name: models.CharField = models.CharField(max_length=200)
    owner: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="owned_venues",
    )

    class Meta:
        db_table = "venues"
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class Branch(BaseModel):
    """Physical branch of a venue.  Scheduling scopes are per branch."""

    venue: models.ForeignKey = models.ForeignKey(
        "venues.Venue",
        on_delete=models.CASCADE,
        related_name="branches",
    )
    name: models.CharField = models.CharField(max_length=200)
    owner: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="owned_branches",
    )

    class Meta:
        db_table = "branches"
        ordering = ["name"]
        constraints = [
            models.UniqueConstraint(
                fields=["venue", "name"],
                name="branches_venue_name_unique",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.venue} / {self.name}"


class Manager(BaseModel):
    """Floor manager supervising a group of workers.

    ``branch`` is ``None`` for venue-wide managers.
    """

    name: models.CharField = models.CharField(max_length=200)
    venue: models.ForeignKey = models.ForeignKey(
        "venues.Venue",
        on_delete=models.CASCADE,
        related_name="managers",
    )
    branch: models.ForeignKey = models.ForeignKey(
        "venues.Branch",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="managers",
    )
    created_by: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_managers",
    )

    class Meta:
        db_table = "managers"
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name
