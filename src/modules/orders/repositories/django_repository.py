"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.  Concurrency
control relies on ``select_for_update()`` row locks and conditional
``UPDATE`` statements; callers own the surrounding transaction.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import QuerySet

from modules.orders.constants import OPEN_STATUSES, OrderStatus
from modules.orders.models import AssignmentHistory, Order, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Order:
        order = Order(
            venue_id=data["venue_id"],
            branch_id=data.get("branch_id"),
            table_number=data.get("table_number", ""),
            customer_name=data.get("customer_name", ""),
            notes=data.get("notes", ""),
        )
        order.save()
        logger.info("order.created", order_id=str(order.id))
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: Any) -> Optional[Order]:
        """Retrieve an order with eager-loaded relations.

        Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            return (
                self.queryset()
                .prefetch_related("status_history", "assignment_history")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: Any) -> Optional[Order]:
        try:
            return Order.objects.select_for_update().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Order]:
        queryset = self.queryset()
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    def queryset(self) -> QuerySet[Order]:
        return Order.objects.select_related("staff")

    def list_unassigned_pending(self) -> List[Order]:
        return list(
            Order.objects.filter(
                status=OrderStatus.PENDING, staff__isnull=True
            ).order_by("created_at", "id")
        )

    # ------------------------------------------------------------------
    # Save (IRepository contract)
    # ------------------------------------------------------------------

    def save(self, entity: Order) -> Order:
        entity.save()
        return entity

    # ------------------------------------------------------------------
    # Assignment bookkeeping
    # ------------------------------------------------------------------

    def record_assignment(
        self,
        order: Order,
        worker_id: Any,
        method: str,
        reason: str,
        assigned_at: datetime,
    ) -> AssignmentHistory:
        order.staff_id = worker_id
        order.assigned_at = assigned_at
        order.assignment_method = method
        order.capacity_released = False
        order.save(
            update_fields=[
                "staff",
                "assigned_at",
                "assignment_method",
                "capacity_released",
                "priority",
            ]
        )
        return AssignmentHistory.objects.create(
            order=order,
            worker_id=worker_id,
            assigned_at=assigned_at,
            method=method,
            reason=reason,
        )

    def close_active_assignment(
        self, order_id: Any, reason: str, at: datetime
    ) -> Optional[AssignmentHistory]:
        entry = AssignmentHistory.objects.filter(
            order_id=order_id, unassigned_at__isnull=True
        ).first()
        if entry is None:
            return None
        entry.unassigned_at = at
        entry.unassign_reason = reason
        entry.save(update_fields=["unassigned_at", "unassign_reason"])
        return entry

    def mark_capacity_released(self, order_id: Any) -> Optional[Any]:
        worker_id = (
            Order.objects.filter(id=order_id).values_list("staff_id", flat=True).first()
        )
        if worker_id is None:
            return None
        flipped = (
            Order.objects.filter(
                id=order_id, staff_id=worker_id, capacity_released=False
            )
            .exclude(status__in=OPEN_STATUSES)
            .update(capacity_released=True)
        )
        return worker_id if flipped else None

    def add_note(self, order: Order, notes: str) -> OrderStatusHistory:
        return OrderStatusHistory.objects.create(
            order=order,
            old_status=order.status,
            new_status=order.status,
            notes=notes,
        )

    def recent_assignments(
        self, venue_id: Any, branch_id: Any = None, limit: int = 10
    ) -> List[AssignmentHistory]:
        queryset = AssignmentHistory.objects.select_related("order", "worker").filter(
            order__venue_id=venue_id
        )
        if branch_id is not None:
            queryset = queryset.filter(order__branch_id=branch_id)
        return list(queryset.order_by("-assigned_at")[:limit])
