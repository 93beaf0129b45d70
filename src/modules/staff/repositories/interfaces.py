"""Worker repository interface.

Extends ``IRepository[Worker]`` with the load queries and atomic counter
operations the assignment engine relies on.
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.staff.dtos import WorkerWithLoad
    from modules.staff.models import Worker


class IWorkerRepository(IRepository["Worker"]):
    """Repository contract for workers."""

    @abstractmethod
    def get_for_update(self, id: Any) -> Optional[Worker]:
        """Retrieve a worker with a row-level lock."""

    @abstractmethod
    def list_with_load(
        self,
        venue_id: Any,
        branch_id: Any = None,
        owner_id: Any = None,
        schedulable_only: bool = True,
    ) -> List[WorkerWithLoad]:
        """Return waiters of a scope with their open-order counts.

        One aggregate query regardless of the number of workers.  Results
        are ordered by creation time then id.
        """

    @abstractmethod
    def count_open_orders(self, worker_id: Any) -> int:
        """Count the worker's orders in an open status."""

    @abstractmethod
    def record_assignment(self, worker_id: Any, assigned_at: datetime) -> None:
        """Atomically bump the active and total assignment counters."""

    @abstractmethod
    def release_capacity(self, worker_id: Any, completed: bool = False) -> bool:
        """Atomically decrement the active counter, never below zero.

        Returns ``True`` when a decrement happened.
        """

    @abstractmethod
    def drift_report(self) -> List[Tuple[Any, int, int]]:
        """Return ``(worker_id, stored, actual)`` for every waiter."""

    @abstractmethod
    def set_active_count(self, worker_id: Any, value: int) -> None:
        """Overwrite the cached active counter."""

    @abstractmethod
    def update_fields(self, worker_id: Any, data: Dict[str, Any]) -> Optional[Worker]:
        """Update plain fields and return the refreshed worker."""
