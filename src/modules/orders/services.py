"""Order service layer (Use Cases).

Orchestrates order placement, status management and cancellation.  All
write operations are atomic; the service defines the unit-of-work
boundary.  Scheduling decisions are delegated to the assignment engine:

- Placement creates the order and asks the engine for a worker in the same
  transaction, so a saturated venue rejects the order outright.
- Leaving the open set (served/completed/cancelled) hands the worker's slot
  back through the engine, which then pulls from the queue.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import UUID

import structlog
from django.db import transaction

from modules.assignment.exceptions import OrderNotInQueue
from modules.orders.constants import COMPLETION_STATUSES, OPEN_STATUSES, OrderStatus
from modules.orders.exceptions import InvalidOrderStatus, OrderNotFound

if TYPE_CHECKING:
    from modules.assignment.engine import AssignmentEngine
    from modules.orders.dtos import PlaceOrderDTO, UpdateStatusDTO
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class OrderService:
    """Application service for Order use-cases.

    Receives the repository and the assignment engine via constructor
    injection (DIP).
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        assignment_engine: AssignmentEngine,
    ) -> None:
        self._order_repo = order_repository
        self._engine = assignment_engine

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def place_order(self, dto: PlaceOrderDTO) -> Order:
        """Create a pending order and schedule it.

        Raises:
            HierarchyInvalid: the venue/branch cannot be scheduled.
            ServiceSaturated: every worker is full and the queue is full.
        """
        log = logger.bind(venue_id=str(dto.venue_id), branch_id=str(dto.branch_id))
        log.info("order.placement_started")

        order = self._order_repo.create(dto.model_dump())
        outcome = self._engine.assign(order)

        log.info(
            "order.placed",
            order_id=str(order.id),
            queued=getattr(outcome, "queued", False),
        )
        return self._order_repo.get_by_id(order.id) or order

    def update_status(
        self,
        order_id: UUID,
        dto: UpdateStatusDTO,
        user: Any = None,
    ) -> Order:
        """Transition an order to a new status.

        Locks the order row before validating the transition.  When the
        order leaves the open set its worker's slot is handed back after
        the transaction commits.

        Raises:
            OrderNotFound: order does not exist.
            InvalidOrderStatus: transition is not allowed.
        """
        with transaction.atomic():
            order = self._order_repo.get_for_update(order_id)
            if not order:
                raise OrderNotFound(f"Order {order_id} not found.")

            log = logger.bind(
                order_id=str(order_id),
                current_status=order.status,
                new_status=dto.status,
            )

            if not order.can_transition_to(dto.status):
                log.warning("order.invalid_transition")
                raise InvalidOrderStatus(
                    f"Cannot transition from {order.status} to {dto.status}."
                )

            old_status = order.status
            order.status = dto.status
            order._status_change_notes = dto.notes
            order._status_changed_by = user
            self._order_repo.save(order)
            log.info("order.status_updated")

        if old_status in OPEN_STATUSES and dto.status in COMPLETION_STATUSES:
            self._engine.on_order_completed(order.id)

        return self.get_order(str(order_id))

    def cancel_order(self, order_id: UUID, notes: str = "", user: Any = None) -> Order:
        """Cancel an order and return its slot (or its queue place).

        Raises:
            OrderNotFound: order does not exist.
            InvalidOrderStatus: cancellation not allowed from current status.
        """
        notes = notes or "Order cancelled"
        order = self.get_order(str(order_id))

        # Queued orders hold no slot; the queue manager closes their gap.
        if order.is_queued:
            try:
                self._engine.queue.remove(
                    order.id, new_status=OrderStatus.CANCELLED, notes=notes
                )
            except OrderNotInQueue:
                logger.info("order.left_queue_before_cancel", order_id=str(order_id))
            else:
                logger.info("order.cancelled", order_id=str(order_id), was_queued=True)
                return self.get_order(str(order_id))

        with transaction.atomic():
            order = self._order_repo.get_for_update(order_id)
            if not order:
                raise OrderNotFound(f"Order {order_id} not found.")

            log = logger.bind(order_id=str(order_id), current_status=order.status)

            if order.is_queued or not order.can_transition_to(OrderStatus.CANCELLED):
                log.warning("order.cancel_not_allowed")
                raise InvalidOrderStatus(
                    f"Cannot cancel order in status {order.status}."
                )

            order.status = OrderStatus.CANCELLED
            order._status_change_notes = notes
            order._status_changed_by = user
            self._order_repo.save(order)
            log.info("order.cancelled", was_queued=False)

        self._engine.on_order_cancelled(order.id)
        return self.get_order(str(order_id))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: str) -> Order:
        """Retrieve a single order by ID.

        Raises:
            OrderNotFound: if the order does not exist.
        """
        order = self._order_repo.get_by_id(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def list_orders(self, filters: Optional[Dict[str, Any]] = None) -> List[Order]:
        """Return a list of orders, optionally filtered."""
        return self._order_repo.list(filters)
