"""Staff and manager notifications.

Notifications are fire-and-forget: they are sent only after the
assignment transaction commits, each inside its own savepoint, and a
failing sink is logged without touching the assignment.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Optional

import structlog
from django.db import transaction

from modules.assignment.events import OrderAssignedToWorker, OrderAssignmentReported
from modules.core.models import OutboxEvent

if TYPE_CHECKING:
    from modules.orders.models import Order
    from shared.domain.events import DomainEvent

logger = structlog.get_logger(__name__)

NOTIFICATION_TOPIC = "notifications"


class INotificationSink(ABC):
    """Where assignment notifications go."""

    @abstractmethod
    def notify_worker_assigned(
        self, order: Order, worker: Any, method: str, reason: str = ""
    ) -> None: ...

    @abstractmethod
    def notify_manager_assigned(
        self,
        order: Order,
        manager_id: Any,
        worker: Any,
        method: str,
        is_manual: bool = False,
        reason: Optional[str] = None,
    ) -> None: ...


class OutboxNotificationSink(INotificationSink):
    """Writes one ``OutboxEvent`` per recipient for a downstream publisher."""

    def notify_worker_assigned(
        self, order: Order, worker: Any, method: str, reason: str = ""
    ) -> None:
        self._write(
            OrderAssignedToWorker(
                aggregate_id=order.id,
                worker_id=str(worker.id),
                order_number=order.order_number,
                table_number=order.table_number,
                method=method,
                reason=reason,
            ),
            recipient_id=worker.id,
        )

    def notify_manager_assigned(
        self,
        order: Order,
        manager_id: Any,
        worker: Any,
        method: str,
        is_manual: bool = False,
        reason: Optional[str] = None,
    ) -> None:
        self._write(
            OrderAssignmentReported(
                aggregate_id=order.id,
                manager_id=str(manager_id),
                worker_id=str(worker.id),
                worker_name=worker.name,
                order_number=order.order_number,
                method=method,
                is_manual=is_manual,
                reason=reason,
            ),
            recipient_id=manager_id,
        )

    @staticmethod
    def _write(event: DomainEvent, recipient_id: Any) -> None:
        OutboxEvent.objects.create(
            event_type=event.event_name,
            aggregate_id=str(event.aggregate_id),
            payload=event.to_payload(),
            topic=NOTIFICATION_TOPIC,
            recipient_id=str(recipient_id),
        )


class NotificationDispatcher:
    """Schedules sink calls for after commit and contains their failures."""

    def __init__(self, sink: INotificationSink) -> None:
        self._sink = sink

    def assignment_made(
        self,
        order: Order,
        worker: Any,
        method: str,
        reason: str = "",
        is_manual: bool = False,
    ) -> None:
        transaction.on_commit(
            lambda: self._deliver(order, worker, method, reason, is_manual)
        )

    def _deliver(
        self, order: Order, worker: Any, method: str, reason: str, is_manual: bool
    ) -> None:
        log = logger.bind(order_id=str(order.id), worker_id=str(worker.id))
        try:
            with transaction.atomic():
                self._sink.notify_worker_assigned(order, worker, method, reason)
        except Exception:
            log.exception("assignment.worker_notification_failed")

        manager_id = getattr(worker, "manager_id", None)
        if manager_id is None:
            return
        try:
            with transaction.atomic():
                self._sink.notify_manager_assigned(
                    order,
                    manager_id,
                    worker,
                    method,
                    is_manual=is_manual,
                    reason=reason or None,
                )
        except Exception:
            log.exception("assignment.manager_notification_failed")
