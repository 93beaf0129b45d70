"""Priority waiting list for orders no worker can take right now.

The queue has no table of its own: an order is queued when its status is
``queued`` and it carries ``queue_position``/``queued_at``.  Each (venue,
branch) scope is an independent list ordered by priority (high first),
then by ``queued_at``, then by id.  Positions within a scope are always
exactly ``1..N`` in that order.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Set

import structlog
from django.core.exceptions import ValidationError
from django.db.models import F, QuerySet
from django.utils import timezone

from modules.assignment.dtos import (
    Pagination,
    PriorityBreakdown,
    QueueDetails,
    QueuedResult,
    QueueEntry,
    QueueScope,
    QueueStats,
)
from modules.assignment.exceptions import (
    InvalidPriority,
    OrderNotAssignable,
    OrderNotInQueue,
    QueueFull,
)
from modules.orders.constants import OrderStatus, Priority
from modules.orders.exceptions import OrderNotFound
from modules.orders.models import Order

if TYPE_CHECKING:
    from datetime import datetime

    from modules.assignment.conf import AssignmentSettings
    from modules.assignment.locks import ScopeLocks

logger = structlog.get_logger(__name__)

QUEUE_ORDERING = ("-priority", "queued_at", "id")
_QUEUE_FIELDS = [
    "status",
    "priority",
    "queue_position",
    "queued_at",
    "estimated_wait_time",
]


def scope_of(order: Order) -> QueueScope:
    return QueueScope(venue_id=order.venue_id, branch_id=order.branch_id)


def parse_priority(value: Any) -> Priority:
    try:
        return Priority.parse(value)
    except (TypeError, ValueError) as exc:
        raise InvalidPriority(f"Invalid priority {value!r}.") from exc


class QueueManager:
    """Enqueue, dequeue, reorder and expire queued orders."""

    def __init__(self, settings: AssignmentSettings, locks: ScopeLocks) -> None:
        self._settings = settings
        self._locks = locks

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def queued(self, scope: QueueScope) -> QuerySet[Order]:
        return Order.objects.filter(
            status=OrderStatus.QUEUED, **scope.order_filter()
        ).order_by(*QUEUE_ORDERING)

    def size(self, scope: QueueScope) -> int:
        return self.queued(scope).count()

    def dequeue_next(self, scope: QueueScope) -> Optional[Order]:
        """Peek at the head of the scope's list.  Nothing is modified."""
        return self.queued(scope).first()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def enqueue(
        self,
        order: Order,
        priority: Any = Priority.NORMAL,
        estimated_wait_time: Optional[int] = None,
    ) -> QueuedResult:
        """Put a pending order on its scope's list.

        Raises:
            InvalidPriority: unknown priority.
            OrderNotAssignable: the order cannot move to ``queued``.
            QueueFull: the scope already holds ``max_queue_size`` orders.
        """
        tier = parse_priority(priority)
        scope = scope_of(order)
        log = logger.bind(order_id=str(order.id), scope=scope.key, priority=tier.label)

        if not order.can_transition_to(OrderStatus.QUEUED):
            raise OrderNotAssignable(
                f"Order {order.id} cannot be queued from {order.status}."
            )

        with self._locks.hold(scope.venue_id, scope.branch_id):
            current = self.size(scope)
            if current >= self._settings.max_queue_size:
                log.warning("queue.full", size=current)
                raise QueueFull(
                    f"Queue is full ({current}/{self._settings.max_queue_size}). "
                    "Please try again later."
                )

            ahead = self.queued(scope).filter(priority__gte=tier).count()
            order.status = OrderStatus.QUEUED
            order.priority = tier
            order.queue_position = ahead + 1
            order.queued_at = timezone.now()
            order.estimated_wait_time = estimated_wait_time
            order._status_change_notes = f"Queued at position {order.queue_position}"
            order.save(update_fields=_QUEUE_FIELDS)
            self.renumber(scope)

        log.info("queue.enqueued", position=order.queue_position, size=current + 1)
        return QueuedResult(
            order_id=order.id,
            queue_position=order.queue_position,
            estimated_wait_time=estimated_wait_time or 0,
            priority=tier.label,
        )

    def remove(
        self,
        order_id: Any,
        new_status: str = OrderStatus.PENDING,
        notes: str = "",
    ) -> Order:
        """Take an order off its list and close the gap it leaves.

        Raises:
            OrderNotFound: unknown order.
            OrderNotInQueue: the order is not queued.
        """
        order = self._get_queued(order_id)
        scope = scope_of(order)

        with self._locks.hold(scope.venue_id, scope.branch_id):
            order = self._get_queued(order_id, for_update=True)
            position = order.queue_position
            notes = notes or f"Removed from queue ({new_status})"
            self._clear(order, new_status, notes)
            if position is None:
                self.renumber(scope)
            else:
                Order.objects.filter(
                    status=OrderStatus.QUEUED,
                    queue_position__gt=position,
                    **scope.order_filter(),
                ).update(queue_position=F("queue_position") - 1)

        logger.info(
            "queue.removed",
            order_id=str(order_id),
            scope=scope.key,
            position=position,
            new_status=new_status,
        )
        return order

    def update_priority(self, order_id: Any, priority: Any) -> Order:
        """Move a queued order to another tier.

        Raises:
            InvalidPriority, OrderNotFound, OrderNotInQueue.
        """
        tier = parse_priority(priority)
        order = self._get_queued(order_id)
        scope = scope_of(order)

        with self._locks.hold(scope.venue_id, scope.branch_id):
            order = self._get_queued(order_id, for_update=True)
            if order.priority != tier:
                previous = Priority(order.priority).label
                order.priority = tier
                order.save(update_fields=["priority"])
                self.renumber(scope)
                order.refresh_from_db(fields=["queue_position"])
                logger.info(
                    "queue.priority_updated",
                    order_id=str(order_id),
                    old_priority=previous,
                    new_priority=tier.label,
                    position=order.queue_position,
                )
        return order

    def renumber(self, scope: QueueScope) -> int:
        """Rewrite positions to ``1..N`` in queue order.  Returns rows changed."""
        stale = []
        rows = self.queued(scope).only("id", "queue_position")
        for position, order in enumerate(rows, 1):
            if order.queue_position != position:
                order.queue_position = position
                stale.append(order)
        if stale:
            Order.objects.bulk_update(stale, ["queue_position"])
        return len(stale)

    def expire_stale(self, max_age_hours: Optional[int] = None) -> int:
        """Expire orders that have waited longer than *max_age_hours*."""
        hours = (
            self._settings.queue_entry_max_age_hours
            if max_age_hours is None
            else max_age_hours
        )
        cutoff = timezone.now() - timedelta(hours=hours)
        stale = Order.objects.filter(status=OrderStatus.QUEUED, queued_at__lt=cutoff)

        by_scope: Dict[QueueScope, List[Any]] = defaultdict(list)
        for order in stale.only("id", "venue_id", "branch_id"):
            by_scope[scope_of(order)].append(order.id)

        expired = 0
        for scope, ids in by_scope.items():
            with self._locks.hold(scope.venue_id, scope.branch_id):
                for order in Order.objects.select_for_update().filter(
                    id__in=ids, status=OrderStatus.QUEUED
                ):
                    self._clear(
                        order,
                        OrderStatus.EXPIRED,
                        f"Expired after waiting more than {hours}h in queue",
                    )
                    expired += 1
                self.renumber(scope)

        if expired:
            logger.info("queue.expired", count=expired, max_age_hours=hours)
        return expired

    def repair(self) -> int:
        """Fix rows whose status and queue fields disagree, then renumber.

        Returns the number of orders touched.
        """
        fixed = Order.objects.exclude(status=OrderStatus.QUEUED).filter(
            queue_position__isnull=False
        ).update(queue_position=None, queued_at=None, estimated_wait_time=None)

        now = timezone.now()
        fixed += Order.objects.filter(
            status=OrderStatus.QUEUED, queued_at__isnull=True
        ).update(queued_at=now)

        scopes: Set[QueueScope] = {
            QueueScope(venue_id=venue_id, branch_id=branch_id)
            for venue_id, branch_id in Order.objects.filter(
                status=OrderStatus.QUEUED
            ).values_list("venue_id", "branch_id").distinct()
        }
        for scope in scopes:
            with self._locks.hold(scope.venue_id, scope.branch_id):
                fixed += self.renumber(scope)

        if fixed:
            logger.warning("queue.repaired", fixed=fixed, scopes=len(scopes))
        return fixed

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def get_stats(self, venue_id: Any = None, branch_id: Any = None) -> QueueStats:
        now = timezone.now()
        orders = list(self._filtered(venue_id, branch_id))
        entries = [self._entry(o, now) for o in orders]

        breakdown: Dict[str, PriorityBreakdown] = {}
        for tier in sorted(Priority, reverse=True):
            waits = [e.wait_minutes for e in entries if e.priority == tier.label]
            breakdown[tier.label] = PriorityBreakdown(
                count=len(waits),
                avg_wait_time=round(sum(waits) / len(waits), 2) if waits else 0.0,
            )

        total = len(entries)
        return QueueStats(
            total_queued=total,
            priority_breakdown=breakdown,
            oldest_order=min(entries, key=lambda e: e.queued_at) if entries else None,
            average_wait_time=(
                round(sum(e.wait_minutes for e in entries) / total, 2) if total else 0.0
            ),
            is_empty=total == 0,
            is_full=total >= self._settings.max_queue_size,
        )

    def get_details(
        self,
        venue_id: Any = None,
        branch_id: Any = None,
        limit: int = 50,
        offset: int = 0,
    ) -> QueueDetails:
        queryset = self._filtered(venue_id, branch_id)
        total = queryset.count()
        now = timezone.now()
        page = [self._entry(o, now) for o in queryset[offset : offset + limit]]
        return QueueDetails(
            orders=page,
            pagination=Pagination(
                total=total,
                limit=limit,
                offset=offset,
                has_more=offset + limit < total,
            ),
            stats=self.get_stats(venue_id, branch_id),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _filtered(self, venue_id: Any, branch_id: Any) -> QuerySet[Order]:
        queryset = Order.objects.filter(status=OrderStatus.QUEUED)
        if venue_id is not None:
            queryset = queryset.filter(venue_id=venue_id)
        if branch_id is not None:
            queryset = queryset.filter(branch_id=branch_id)
        return queryset.order_by("venue_id", "branch_id", "queue_position", "id")

    def _get_queued(self, order_id: Any, for_update: bool = False) -> Order:
        queryset = Order.objects.select_for_update() if for_update else Order.objects
        try:
            order = queryset.filter(id=order_id).first()
        except (ValueError, ValidationError):
            order = None
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found.")
        if not order.is_queued:
            raise OrderNotInQueue(f"Order {order_id} is not in the queue.")
        return order

    @staticmethod
    def _clear(order: Order, new_status: str, notes: str) -> None:
        order.status = new_status
        order.priority = Priority.NORMAL
        order.queue_position = None
        order.queued_at = None
        order.estimated_wait_time = None
        order._status_change_notes = notes
        order.save(update_fields=_QUEUE_FIELDS)

    @staticmethod
    def _entry(order: Order, now: datetime) -> QueueEntry:
        return QueueEntry(
            order_id=order.id,
            order_number=order.order_number,
            venue_id=order.venue_id,
            branch_id=order.branch_id,
            table_number=order.table_number,
            priority=Priority(order.priority).label,
            queue_position=order.queue_position,
            queued_at=order.queued_at,
            estimated_wait_time=order.estimated_wait_time,
            wait_minutes=round((now - order.queued_at).total_seconds() / 60, 2),
        )
