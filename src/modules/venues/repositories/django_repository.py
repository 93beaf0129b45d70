"""Django ORM implementation of the venue repository."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from django.core.exceptions import ValidationError

from modules.venues.models import Branch, Manager, Venue
from modules.venues.repositories.interfaces import IVenueRepository


class VenueDjangoRepository(IVenueRepository):
    """Concrete venue repository backed by Django ORM.

    Lookups with malformed ids return ``None`` rather than raising, so the
    validator can report a missing record.
    """

    def get_by_id(self, id: Any) -> Optional[Venue]:
        try:
            return Venue.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Venue]:
        queryset = Venue.objects.all()
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    def save(self, entity: Venue) -> Venue:
        entity.save()
        return entity

    def get_branch(self, id: Any) -> Optional[Branch]:
        try:
            return Branch.objects.select_related("venue").filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_manager(self, id: Any) -> Optional[Manager]:
        try:
            return Manager.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def lock_scope(self, venue_id: Any, branch_id: Any = None) -> None:
        if branch_id is not None:
            list(Branch.objects.select_for_update().filter(id=branch_id).values("id"))
        else:
            list(Venue.objects.select_for_update().filter(id=venue_id).values("id"))
