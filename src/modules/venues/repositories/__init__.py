"""Venue repositories package."""

from modules.venues.repositories.django_repository import VenueDjangoRepository
from modules.venues.repositories.interfaces import IVenueRepository

__all__ = ["IVenueRepository", "VenueDjangoRepository"]
