"""Order-to-waiter assignment engine.

Placement flow for a pending order:

1. Validate the venue/branch ownership chain.
2. Load the scope's schedulable waiters with their live open-order counts
   (one aggregate query).
3. Keep the waiters under capacity.  None left: queue the order.
4. Pick the least-loaded waiter.  Ties go round-robin over the tied
   waiters using the scope's cursor.
5. Point the order at the waiter, bump the waiter's counters and, after
   commit, notify the waiter and their manager.

Steps 2 to 5 run under the scope lock so two placements in the same
branch never read the same loads.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any, Optional, Sequence, Tuple, Union

import structlog
from django.db import transaction
from django.utils import timezone

from modules.assignment.dtos import (
    AssignmentResult,
    AssignmentStats,
    HandOffResult,
    HierarchyValidation,
    QueueDetails,
    QueuedResult,
    QueueScope,
    RecentAssignment,
    WaiterStats,
)
from modules.assignment.exceptions import (
    CapacityExceeded,
    HierarchyInvalid,
    OrderNotAssignable,
    WorkerUnavailable,
)
from modules.assignment.hierarchy import HierarchyValidator
from modules.assignment.locks import ScopeLocks
from modules.assignment.queue import QueueManager
from modules.assignment.round_robin import RoundRobinCursor, scope_key
from modules.orders.constants import (
    OPEN_STATUSES,
    AssignmentMethod,
    OrderStatus,
    Priority,
)
from modules.orders.exceptions import OrderNotFound
from modules.staff.constants import SCHEDULABLE_ROLE
from modules.staff.exceptions import WorkerNotFound

if TYPE_CHECKING:
    from modules.assignment.conf import AssignmentSettings
    from modules.assignment.metrics import MetricsStore
    from modules.assignment.notifications import NotificationDispatcher
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.staff.dtos import WorkerWithLoad
    from modules.staff.models import Worker
    from modules.staff.repositories.interfaces import IWorkerRepository
    from modules.venues.repositories.interfaces import IVenueRepository

logger = structlog.get_logger(__name__)

AUTO_REASON = "Automatic assignment"
QUEUE_REASON = "Assigned from queue"


class AssignmentEngine:
    """Decides which waiter handles each order.

    Collaborators are injected; the validator, scope locks and queue
    manager are built from the venue repository and settings.
    """

    def __init__(
        self,
        settings: AssignmentSettings,
        worker_repository: IWorkerRepository,
        order_repository: IOrderRepository,
        venue_repository: IVenueRepository,
        notifier: NotificationDispatcher,
        metrics: Optional[MetricsStore] = None,
        cursor: Optional[RoundRobinCursor] = None,
    ) -> None:
        self.settings = settings
        self._worker_repo = worker_repository
        self._order_repo = order_repository
        self._notifier = notifier
        self._metrics = metrics
        self.validator = HierarchyValidator(venue_repository)
        self.locks = ScopeLocks(venue_repository)
        self.queue = QueueManager(settings, self.locks)
        self.cursor = cursor or RoundRobinCursor()

    # ------------------------------------------------------------------
    # Automatic assignment
    # ------------------------------------------------------------------

    def assign(self, order: Order) -> Union[AssignmentResult, QueuedResult]:
        """Assign a pending order or queue it.

        Raises:
            OrderNotAssignable: the order is not pending or already has a worker.
            HierarchyInvalid: the ownership chain is broken.
            QueueFull: no waiter has room and the queue is full.
        """
        log = logger.bind(
            order_id=str(order.id),
            venue_id=str(order.venue_id),
            branch_id=str(order.branch_id),
        )
        self._ensure_assignable(order)
        validation = self._validated(order.venue_id, order.branch_id)

        with self.locks.hold(order.venue_id, order.branch_id):
            order = self._order_repo.get_for_update(order.id)
            if order is None:
                raise OrderNotFound("Order disappeared during assignment.")
            self._ensure_assignable(order)

            waiters = self._worker_repo.list_with_load(
                order.venue_id, order.branch_id, owner_id=validation.owner_id
            )
            eligible = [w for w in waiters if w.has_capacity]
            claim = self._claim(scope_key(order.venue_id, order.branch_id), eligible)
            if claim is None:
                wait = self.estimate_wait(waiters)
                log.info("assignment.no_capacity", waiters=len(waiters), wait=wait)
                return self.queue.enqueue(order, Priority.NORMAL, wait)

            worker, locked, method = claim
            result = self._commit(order, locked, method, AUTO_REASON)

        log.info(
            "assignment.order_assigned",
            worker_id=str(result.worker_id),
            method=result.method,
            load=worker.open_orders,
        )
        return result

    def _select(
        self, key: str, eligible: Sequence[WorkerWithLoad]
    ) -> Tuple[WorkerWithLoad, str]:
        lowest = min(w.open_orders for w in eligible)
        tied = [w for w in eligible if w.open_orders == lowest]
        if len(tied) > 1:
            return self.cursor.next(key, tied), AssignmentMethod.ROUND_ROBIN

        chosen = tied[0]
        self.cursor.record(key, chosen.id)
        if lowest == 0:
            return chosen, AssignmentMethod.ROUND_ROBIN
        return chosen, AssignmentMethod.LOAD_BALANCING

    def _claim(
        self, key: str, eligible: Sequence[WorkerWithLoad]
    ) -> Optional[Tuple[WorkerWithLoad, Worker, str]]:
        """Pick a candidate and confirm its room under a row lock.

        Candidates that filled up since the load snapshot are dropped and
        the ranking is repeated over the rest.
        """
        candidates = list(eligible)
        while candidates:
            worker, method = self._select(key, candidates)
            locked = self._worker_repo.get_for_update(worker.id)
            if (
                locked is not None
                and locked.is_schedulable
                and self._worker_repo.count_open_orders(locked.id)
                < locked.max_orders_capacity
            ):
                return worker, locked, method
            logger.info("assignment.candidate_full", worker_id=str(worker.id))
            candidates = [w for w in candidates if w.id != worker.id]
        return None

    def estimate_wait(self, waiters: Sequence[WorkerWithLoad]) -> int:
        """Minutes until a slot is likely to free up."""
        if not waiters:
            return self.settings.no_worker_wait_minutes
        average = sum(w.open_orders for w in waiters) / len(waiters)
        multiplier = max(1.0, average / self.settings.max_orders_per_waiter)
        return math.ceil(self.settings.average_completion_minutes * multiplier)

    # ------------------------------------------------------------------
    # Manual assignment
    # ------------------------------------------------------------------

    def manual_assign(
        self, order_id: Any, worker_id: Any, reason: str = ""
    ) -> AssignmentResult:
        """Give an order to a specific waiter, bypassing the ranking.

        A queued order leaves the queue; an order already held by another
        waiter is moved and that waiter's slot is returned.

        Raises:
            OrderNotFound, WorkerNotFound, OrderNotAssignable,
            WorkerUnavailable, HierarchyInvalid, CapacityExceeded.
        """
        reason = reason or "Manual assignment"
        order = self._order_repo.get_by_id(order_id)
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found.")
        worker = self._worker_repo.get_by_id(worker_id)
        if worker is None or worker.role != SCHEDULABLE_ROLE:
            raise WorkerNotFound(f"Waiter {worker_id} not found.")

        if not (order.is_queued or order.status in OPEN_STATUSES):
            raise OrderNotAssignable(
                f"Order in status {order.status} cannot be assigned."
            )
        self._ensure_worker_fits(order, worker)

        validation = self._validated(order.venue_id, order.branch_id)
        if not self.validator.manager_matches(validation.owner_id, worker.manager):
            raise WorkerUnavailable(
                "Waiter is not managed within the venue's ownership chain."
            )

        log = logger.bind(order_id=str(order_id), worker_id=str(worker_id))
        previous_worker_id = None

        with self.locks.hold(order.venue_id, order.branch_id):
            locked = self._worker_repo.get_for_update(worker.id)
            if locked is None or not locked.is_schedulable:
                raise WorkerUnavailable("Waiter is not available.")
            open_orders = self._worker_repo.count_open_orders(locked.id)
            if open_orders >= locked.max_orders_capacity:
                log.warning("assignment.capacity_exceeded", open_orders=open_orders)
                raise CapacityExceeded(
                    f"Waiter has reached maximum capacity "
                    f"({open_orders}/{locked.max_orders_capacity})."
                )

            order = self._order_repo.get_for_update(order.id)
            if order is None:
                raise OrderNotFound(f"Order {order_id} not found.")
            if order.staff_id == locked.id and order.status in OPEN_STATUSES:
                raise OrderNotAssignable("Order is already assigned to this waiter.")

            now = timezone.now()
            if order.is_queued:
                self.queue.remove(order.id, OrderStatus.PENDING, f"Manual: {reason}")
                order = self._order_repo.get_for_update(order.id)
            elif order.staff_id is not None:
                previous_worker_id = order.staff_id
                self._order_repo.close_active_assignment(
                    order.id, f"Reassigned: {reason}", now
                )
                if not order.capacity_released:
                    self._worker_repo.release_capacity(previous_worker_id)

            order.priority = Priority.HIGH
            result = self._commit(
                order, locked, AssignmentMethod.MANUAL, reason, is_manual=True
            )

        log.info(
            "assignment.manual_assigned",
            reason=reason,
            previous_worker_id=str(previous_worker_id) if previous_worker_id else None,
        )
        if previous_worker_id is not None:
            self.assign_from_queue(previous_worker_id)
        return result

    # ------------------------------------------------------------------
    # Queue draining and hand-offs
    # ------------------------------------------------------------------

    def assign_from_queue(self, worker_id: Any) -> Optional[AssignmentResult]:
        """Give the waiter the head of its queue if it has room.

        The waiter's own scope is tried first, then the venue-level scope
        (orders placed without a branch).  Safe to call concurrently.
        """
        worker = self._worker_repo.get_by_id(worker_id)
        if worker is None or worker.role != SCHEDULABLE_ROLE:
            return None

        scopes = [QueueScope(venue_id=worker.venue_id, branch_id=worker.branch_id)]
        if worker.branch_id is not None:
            scopes.append(QueueScope(venue_id=worker.venue_id))

        for scope in scopes:
            result = self._pull(worker.id, scope)
            if result is not None:
                return result
        return None

    def _pull(self, worker_id: Any, scope: QueueScope) -> Optional[AssignmentResult]:
        log = logger.bind(worker_id=str(worker_id), scope=scope.key)
        with self.locks.hold(scope.venue_id, scope.branch_id):
            worker = self._worker_repo.get_for_update(worker_id)
            if worker is None or not worker.is_schedulable:
                return None
            open_orders = self._worker_repo.count_open_orders(worker.id)
            if open_orders >= worker.max_orders_capacity:
                return None

            head = self.queue.dequeue_next(scope)
            if head is None:
                return None

            validation = self.validator.validate(head.venue_id, head.branch_id)
            if not validation.valid or not self.validator.manager_matches(
                validation.owner_id, worker.manager
            ):
                log.warning("assignment.queue_head_not_eligible", order_id=str(head.id))
                return None

            order = self.queue.remove(head.id, OrderStatus.PENDING, "Dequeued")
            result = self._commit(order, worker, AssignmentMethod.QUEUE, QUEUE_REASON)

        if self._metrics is not None:
            self._metrics.incr("queue_assignments")
        log.info("assignment.assigned_from_queue", order_id=str(result.order_id))
        return result

    def on_order_completed(self, order_id: Any) -> HandOffResult:
        """Return the slot of a served/completed order and drain the queue."""
        return self._hand_off(order_id, completed=True)

    def on_order_cancelled(self, order_id: Any) -> HandOffResult:
        """Return the slot of a cancelled order and drain the queue."""
        return self._hand_off(order_id, completed=False)

    def _hand_off(self, order_id: Any, completed: bool) -> HandOffResult:
        with transaction.atomic():
            worker_id = self._order_repo.mark_capacity_released(order_id)
            if worker_id is not None:
                self._worker_repo.release_capacity(worker_id, completed=completed)

        if worker_id is None:
            logger.debug("assignment.hand_off_skipped", order_id=str(order_id))
            return HandOffResult(order_id=order_id, released=False)

        logger.info(
            "assignment.capacity_released",
            order_id=str(order_id),
            worker_id=str(worker_id),
            completed=completed,
        )
        return HandOffResult(
            order_id=order_id,
            worker_id=worker_id,
            released=True,
            next_assignment=self.assign_from_queue(worker_id),
        )

    # ------------------------------------------------------------------
    # Administration and reports
    # ------------------------------------------------------------------

    def reset_round_robin(self, venue_id: Any = None, branch_id: Any = None) -> int:
        return self.cursor.reset(venue_id, branch_id)

    def validate_hierarchy(
        self, venue_id: Any, branch_id: Any = None
    ) -> HierarchyValidation:
        return self.validator.validate(venue_id, branch_id)

    def get_queue_details(
        self,
        venue_id: Any = None,
        branch_id: Any = None,
        limit: int = 50,
        offset: int = 0,
    ) -> QueueDetails:
        return self.queue.get_details(venue_id, branch_id, limit=limit, offset=offset)

    def update_queue_priority(self, order_id: Any, priority: Any) -> Order:
        return self.queue.update_priority(order_id, priority)

    def get_stats(self, venue_id: Any, branch_id: Any = None) -> AssignmentStats:
        waiters = self._worker_repo.list_with_load(
            venue_id, branch_id, schedulable_only=False
        )
        schedulable = self._worker_repo.list_with_load(venue_id, branch_id)
        total = len(waiters)
        busy = sum(1 for w in waiters if w.open_orders > 0)
        current_load = sum(w.open_orders for w in waiters)

        recent = [
            RecentAssignment(
                order_id=entry.order_id,
                order_number=entry.order.order_number,
                worker_id=entry.worker_id,
                worker_name=entry.worker.name if entry.worker else None,
                method=entry.method,
                assigned_at=entry.assigned_at,
            )
            for entry in self._order_repo.recent_assignments(venue_id, branch_id)
        ]

        return AssignmentStats(
            waiters=WaiterStats(
                total=total,
                available=sum(1 for w in schedulable if w.has_capacity),
                busy=busy,
                utilization=round(busy / total * 100, 2) if total else 0.0,
            ),
            queue=self.queue.get_stats(venue_id, branch_id),
            recent_assignments=recent,
            average_orders_per_waiter=round(current_load / total, 2) if total else 0.0,
            max_capacity=sum(w.max_orders_capacity for w in waiters),
            current_load=current_load,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _commit(
        self,
        order: Order,
        worker: Union[Worker, WorkerWithLoad],
        method: str,
        reason: str,
        is_manual: bool = False,
    ) -> AssignmentResult:
        now = timezone.now()
        self._order_repo.record_assignment(order, worker.id, method, reason, now)
        self._worker_repo.record_assignment(worker.id, now)
        self._notifier.assignment_made(order, worker, method, reason, is_manual)
        return AssignmentResult(
            order_id=order.id,
            worker_id=worker.id,
            worker_name=worker.name,
            method=method,
            assigned_at=now,
        )

    def _validated(self, venue_id: Any, branch_id: Any) -> HierarchyValidation:
        validation = self.validator.validate(venue_id, branch_id)
        if not validation.valid:
            raise HierarchyInvalid(
                f"Invalid organizational hierarchy: {validation.reason}"
            )
        return validation

    @staticmethod
    def _ensure_assignable(order: Order) -> None:
        if order.status != OrderStatus.PENDING or order.staff_id is not None:
            raise OrderNotAssignable(
                f"Order {order.id} is {order.status} and "
                f"{'assigned' if order.staff_id else 'unassigned'}."
            )

    @staticmethod
    def _ensure_worker_fits(order: Order, worker: Worker) -> None:
        if not worker.is_schedulable:
            raise WorkerUnavailable("Waiter is not available.")
        if worker.venue_id != order.venue_id:
            raise WorkerUnavailable("Waiter does not belong to the order's venue.")
        if order.branch_id is not None and worker.branch_id != order.branch_id:
            raise WorkerUnavailable("Waiter does not belong to the order's branch.")

