"""Order repository interface.

Extends ``IRepository[Order]`` with the methods required by the Order
aggregate: creation, row locking, assignment bookkeeping and audit notes.

The Service Layer and the assignment engine depend exclusively on this
contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from modules.orders.models import AssignmentHistory, Order, OrderStatusHistory


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root.

    The aggregate includes ``AssignmentHistory`` and ``OrderStatusHistory``
    records.
    """

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Create a pending order.

        ``data`` must include ``venue_id`` and optionally ``branch_id``,
        ``table_number``, ``customer_name`` and ``notes``.
        """

    @abstractmethod
    def get_by_id(self, id: Any) -> Optional[Order]:
        """Retrieve an order with its worker and histories eager-loaded."""

    @abstractmethod
    def get_for_update(self, id: Any) -> Optional[Order]:
        """Retrieve an order with a row-level lock."""

    @abstractmethod
    def queryset(self) -> QuerySet[Order]:
        """Base queryset for list endpoints (filtering happens in the view)."""

    @abstractmethod
    def record_assignment(
        self,
        order: Order,
        worker_id: Any,
        method: str,
        reason: str,
        assigned_at: datetime,
    ) -> AssignmentHistory:
        """Point the order at the worker and append the history entry."""

    @abstractmethod
    def close_active_assignment(
        self, order_id: Any, reason: str, at: datetime
    ) -> Optional[AssignmentHistory]:
        """Close the open history entry, if any."""

    @abstractmethod
    def mark_capacity_released(self, order_id: Any) -> Optional[Any]:
        """Flip ``capacity_released`` once.

        Only orders that have left the open set qualify.  Returns the worker
        id whose slot should be returned, or ``None`` when the order had no
        worker, is still open, or the slot was already released.
        """

    @abstractmethod
    def add_note(self, order: Order, notes: str) -> OrderStatusHistory:
        """Append an audit entry without a status change."""

    @abstractmethod
    def recent_assignments(
        self, venue_id: Any, branch_id: Any = None, limit: int = 10
    ) -> List[AssignmentHistory]:
        """Latest assignment history entries of a venue (or branch)."""

    @abstractmethod
    def list_unassigned_pending(self) -> List[Order]:
        """Pending orders with no worker, oldest first."""
