"""Venue repository interface.

Read-only contract consumed by the hierarchy validator.  Venue and branch
administration lives outside this project.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.venues.models import Branch, Manager, Venue


class IVenueRepository(IRepository["Venue"]):
    """Repository contract for the venue hierarchy."""

    @abstractmethod
    def get_branch(self, id: Any) -> Optional[Branch]:
        """Retrieve a branch (with its venue), ``None`` when absent."""

    @abstractmethod
    def get_manager(self, id: Any) -> Optional[Manager]:
        """Retrieve a manager, ``None`` when absent."""

    @abstractmethod
    def lock_scope(self, venue_id: Any, branch_id: Any = None) -> None:
        """Take a row lock on the branch (or venue) for the current transaction."""
