"""Ownership chain validation.

A venue (and, when given, its branch) can only be scheduled when both are
owned by the same user.  Workers are then limited to those whose manager
was created by that owner.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

import structlog

from modules.assignment.dtos import HierarchyValidation

if TYPE_CHECKING:
    from modules.venues.models import Manager
    from modules.venues.repositories.interfaces import IVenueRepository

logger = structlog.get_logger(__name__)


class HierarchyValidator:
    """Read-only checks over venue, branch and manager records."""

    def __init__(self, venue_repository: IVenueRepository) -> None:
        self._venue_repo = venue_repository

    def validate(self, venue_id: Any, branch_id: Any = None) -> HierarchyValidation:
        """Return the owner of the chain, or the reason it is broken.

        Never raises: lookup errors are reported as an invalid chain.
        """
        log = logger.bind(venue_id=str(venue_id), branch_id=str(branch_id))
        try:
            result = self._validate(venue_id, branch_id)
        except Exception:
            log.exception("hierarchy.lookup_failed")
            return HierarchyValidation.fail("Hierarchy lookup failed")

        if not result.valid:
            log.warning("hierarchy.invalid", reason=result.reason)
        return result

    def _validate(self, venue_id: Any, branch_id: Any) -> HierarchyValidation:
        venue = self._venue_repo.get_by_id(venue_id)
        if venue is None:
            return HierarchyValidation.fail("Venue not found")
        if venue.owner_id is None:
            return HierarchyValidation.fail("Venue has no assigned owner")

        if branch_id is None:
            return HierarchyValidation.ok(venue.owner_id)

        branch = self._venue_repo.get_branch(branch_id)
        if branch is None:
            return HierarchyValidation.fail("Branch not found")
        if branch.owner_id is None:
            return HierarchyValidation.fail("Branch has no assigned owner")
        if str(branch.venue_id) != str(venue.id):
            return HierarchyValidation.fail(
                "Branch does not belong to the specified venue"
            )
        if branch.owner_id != venue.owner_id:
            return HierarchyValidation.fail(
                "Venue and branch are managed by different owners"
            )
        return HierarchyValidation.ok(branch.owner_id)

    def manager_matches(self, owner_id: Any, manager: Optional[Manager]) -> bool:
        """True when *manager* exists and was created by *owner_id*."""
        if manager is None or manager.created_by_id is None:
            return False
        return manager.created_by_id == owner_id
