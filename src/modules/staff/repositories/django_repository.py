"""Django ORM implementation of the worker repository.

Counters are only ever written with ``F()`` expressions so concurrent
assignments never lose an update.  Open-order counts are computed with a
filtered ``Count`` annotation in a single query.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import structlog
from django.core.exceptions import ValidationError
from django.db.models import Count, F, Q, QuerySet

from modules.orders.constants import OPEN_STATUSES
from modules.staff.constants import SCHEDULABLE_ROLE, WorkerStatus
from modules.staff.dtos import WorkerWithLoad
from modules.staff.models import Worker
from modules.staff.repositories.interfaces import IWorkerRepository

logger = structlog.get_logger(__name__)

_OPEN_ORDERS = Count("orders", filter=Q(orders__status__in=OPEN_STATUSES))


class WorkerDjangoRepository(IWorkerRepository):
    """Concrete worker repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: Any) -> Optional[Worker]:
        try:
            return Worker.objects.select_related("manager").filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: Any) -> Optional[Worker]:
        try:
            return Worker.objects.select_for_update().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Worker]:
        queryset = Worker.objects.select_related("manager")
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    def list_with_load(
        self,
        venue_id: Any,
        branch_id: Any = None,
        owner_id: Any = None,
        schedulable_only: bool = True,
    ) -> List[WorkerWithLoad]:
        queryset = self._waiters().filter(venue_id=venue_id)
        if branch_id is not None:
            queryset = queryset.filter(branch_id=branch_id)
        if owner_id is not None:
            queryset = queryset.filter(manager__created_by_id=owner_id)
        if schedulable_only:
            queryset = queryset.filter(status=WorkerStatus.ACTIVE, is_available=True)

        rows = (
            queryset.annotate(open_orders=_OPEN_ORDERS)
            .order_by("created_at", "id")
            .values("id", "name", "manager_id", "max_orders_capacity", "open_orders")
        )
        return [WorkerWithLoad(**row) for row in rows]

    def count_open_orders(self, worker_id: Any) -> int:
        from modules.orders.models import Order

        return Order.objects.filter(
            staff_id=worker_id, status__in=OPEN_STATUSES
        ).count()

    def drift_report(self) -> List[Tuple[Any, int, int]]:
        rows = self._waiters().annotate(open_orders=_OPEN_ORDERS).values_list(
            "id", "active_orders_count", "open_orders"
        )
        return [(worker_id, stored, actual) for worker_id, stored, actual in rows]

    # ------------------------------------------------------------------
    # Atomic counters
    # ------------------------------------------------------------------

    def record_assignment(self, worker_id: Any, assigned_at: datetime) -> None:
        Worker.objects.filter(id=worker_id).update(
            active_orders_count=F("active_orders_count") + 1,
            total_assignments=F("total_assignments") + 1,
            last_assigned_at=assigned_at,
            updated_at=assigned_at,
        )

    def release_capacity(self, worker_id: Any, completed: bool = False) -> bool:
        released = Worker.objects.filter(
            id=worker_id, active_orders_count__gt=0
        ).update(active_orders_count=F("active_orders_count") - 1)
        if completed:
            Worker.objects.filter(id=worker_id).update(
                completed_orders=F("completed_orders") + 1
            )
        if not released:
            logger.warning("worker.release_at_zero", worker_id=str(worker_id))
        return bool(released)

    def set_active_count(self, worker_id: Any, value: int) -> None:
        Worker.objects.filter(id=worker_id).update(active_orders_count=value)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def save(self, entity: Worker) -> Worker:
        entity.save()
        return entity

    def update_fields(self, worker_id: Any, data: Dict[str, Any]) -> Optional[Worker]:
        worker = self.get_for_update(worker_id)
        if worker is None:
            return None
        for field, value in data.items():
            if value is not None:
                setattr(worker, field, value)
        worker.save()
        logger.info("worker.updated", worker_id=str(worker_id), fields=sorted(data))
        return worker

    @staticmethod
    def _waiters() -> QuerySet[Worker]:
        return Worker.objects.filter(role=SCHEDULABLE_ROLE)
