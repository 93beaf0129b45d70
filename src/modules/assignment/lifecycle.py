"""Startup, shutdown and health of the assignment subsystem.

``AssignmentSystem`` owns one engine and one reconciler.  ``initialize``
brings persisted state back in line before anything is scheduled:

1. recompute every waiter's cached open-order counter,
2. repair queue rows whose status and position disagree,
3. schedule pending orders that never got a waiter,
4. start the reconciler thread.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog
from django.db import connections
from django.utils import timezone

from modules.assignment.conf import AssignmentSettings
from modules.assignment.dtos import RepairReport, SystemStatus
from modules.assignment.engine import AssignmentEngine
from modules.assignment.exceptions import (
    HierarchyInvalid,
    OrderNotAssignable,
    ServiceSaturated,
)
from modules.assignment.metrics import MetricsStore
from modules.assignment.notifications import (
    INotificationSink,
    NotificationDispatcher,
    OutboxNotificationSink,
)
from modules.assignment.reconciler import Reconciler, repair_worker_counters
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.repositories.interfaces import IOrderRepository
from modules.staff.repositories.django_repository import WorkerDjangoRepository
from modules.staff.repositories.interfaces import IWorkerRepository
from modules.venues.repositories.django_repository import VenueDjangoRepository

logger = structlog.get_logger(__name__)

ShutdownHook = Callable[[], Any]


class AssignmentSystem:
    def __init__(
        self,
        engine: AssignmentEngine,
        reconciler: Reconciler,
        worker_repository: IWorkerRepository,
        order_repository: IOrderRepository,
    ) -> None:
        self.engine = engine
        self.reconciler = reconciler
        self._worker_repo = worker_repository
        self._order_repo = order_repository
        self._hooks: List[Tuple[str, ShutdownHook]] = []
        self._hooks_lock = threading.Lock()
        self._initialized_at = None

    @classmethod
    def build(
        cls,
        settings: Optional[AssignmentSettings] = None,
        sink: Optional[INotificationSink] = None,
        metrics_prefix: str = "assignment:metrics",
    ) -> AssignmentSystem:
        """Wire the subsystem on top of the Django repositories."""
        settings = settings or AssignmentSettings.from_settings()
        workers = WorkerDjangoRepository()
        orders = OrderDjangoRepository()
        metrics = MetricsStore(prefix=metrics_prefix)
        engine = AssignmentEngine(
            settings=settings,
            worker_repository=workers,
            order_repository=orders,
            venue_repository=VenueDjangoRepository(),
            notifier=NotificationDispatcher(sink or OutboxNotificationSink()),
            metrics=metrics,
        )
        reconciler = Reconciler(engine, settings, metrics, workers, orders)
        return cls(engine, reconciler, workers, orders)

    @property
    def is_initialized(self) -> bool:
        return self._initialized_at is not None

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def initialize(self, start_reconciler: bool = True) -> RepairReport:
        logger.info("assignment_system.initializing")
        checked, repaired, counter_errors = repair_worker_counters(self._worker_repo)
        queue_repaired = self.engine.queue.repair()
        processed, assigned, queued, orphan_errors = self.process_orphans()

        if start_reconciler:
            self.reconciler.start()
        self._initialized_at = timezone.now()

        report = RepairReport(
            workers_checked=checked,
            workers_repaired=repaired,
            queue_repaired=queue_repaired,
            orphans_processed=processed,
            orphans_assigned=assigned,
            orphans_queued=queued,
            errors=counter_errors + orphan_errors,
        )
        logger.info("assignment_system.initialized", **report.model_dump())
        return report

    def process_orphans(self) -> Tuple[int, int, int, int]:
        """Schedule pending orders without a waiter.

        Returns ``(processed, assigned, queued, errors)``.
        """
        processed = assigned = queued = errors = 0
        for order in self._order_repo.list_unassigned_pending():
            processed += 1
            log = logger.bind(order_id=str(order.id))
            try:
                result = self.engine.assign(order)
            except (HierarchyInvalid, OrderNotAssignable, ServiceSaturated) as exc:
                errors += 1
                log.warning("assignment_system.orphan_not_scheduled", reason=str(exc))
                continue
            except Exception:
                errors += 1
                log.exception("assignment_system.orphan_failed")
                continue
            if result.queued:
                queued += 1
            else:
                assigned += 1
        if processed:
            logger.info(
                "assignment_system.orphans_processed",
                processed=processed,
                assigned=assigned,
                queued=queued,
            )
        return processed, assigned, queued, errors

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def add_shutdown_hook(self, name: str, hook: ShutdownHook) -> None:
        with self._hooks_lock:
            self._hooks.append((name, hook))

    def shutdown(self, timeout: Optional[float] = 10.0) -> None:
        """Stop the reconciler, save a final counter snapshot, run hooks."""
        logger.info("assignment_system.shutting_down")
        self.reconciler.stop(timeout)

        try:
            _, repaired, _ = repair_worker_counters(self._worker_repo)
            logger.info("assignment_system.state_saved", counters_repaired=repaired)
        except Exception:
            logger.exception("assignment_system.state_save_failed")

        with self._hooks_lock:
            hooks = list(self._hooks)
        for name, hook in hooks:
            try:
                hook()
            except Exception:
                logger.exception("assignment_system.shutdown_hook_failed", hook=name)

        self._initialized_at = None
        logger.info("assignment_system.shutdown_complete")

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self) -> SystemStatus:
        with self._hooks_lock:
            hook_count = len(self._hooks)
        return SystemStatus(
            initialized=self.is_initialized,
            initialized_at=self._initialized_at,
            reconciler=self.reconciler.get_metrics(),
            shutdown_hooks=hook_count,
            settings=self.engine.settings.model_dump(),
        )

    def health_check(self) -> Dict[str, Any]:
        checks: Dict[str, Any] = {
            "initialized": self.is_initialized,
            "reconciler_running": self.reconciler.is_running,
        }
        try:
            connections["default"].ensure_connection()
            checks["database"] = True
        except Exception:
            logger.exception("assignment_system.database_unreachable")
            checks["database"] = False

        if not checks["database"]:
            status = "unhealthy"
        elif checks["initialized"] and checks["reconciler_running"]:
            status = "healthy"
        else:
            status = "degraded"
        return {"status": status, "checks": checks, "timestamp": timezone.now()}
