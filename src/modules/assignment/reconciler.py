"""Background reconciler.

Periodically heals what the request path can miss:

- hand-offs that never ran (an order left the open set but its worker's
  slot was not returned),
- orders that have been in preparation for too long,
- waiters with spare capacity while orders sit in the queue,
- cached counters that drifted from the orders table.

It runs either on its own daemon thread (``start``/``stop``, used by the
``run_reconciler`` command) or one step at a time from Celery beat
(``tick``/``cleanup``).  Every step logs and swallows its own errors.
The per-order steps commit and fail one order at a time.
"""

from __future__ import annotations

import threading
import time
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Tuple

import structlog
from django.db import connections, transaction
from django.utils import timezone

from modules.assignment.dtos import ReconcilerMetrics
from modules.orders.constants import OPEN_STATUSES, OrderStatus
from modules.orders.models import AssignmentHistory, Order

if TYPE_CHECKING:
    from modules.assignment.conf import AssignmentSettings
    from modules.assignment.engine import AssignmentEngine
    from modules.assignment.metrics import MetricsStore
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.staff.repositories.interfaces import IWorkerRepository

logger = structlog.get_logger(__name__)

_RELEASING_STATUSES = (OrderStatus.SERVED, OrderStatus.COMPLETED, OrderStatus.CANCELLED)


def repair_worker_counters(
    worker_repository: IWorkerRepository,
) -> Tuple[int, int, int]:
    """Align every waiter's ``active_orders_count`` with the orders table.

    Returns ``(checked, repaired, errors)``.  A failing record is logged and
    skipped.
    """
    checked = repaired = errors = 0
    for worker_id, stored, actual in worker_repository.drift_report():
        checked += 1
        if stored == actual:
            continue
        try:
            worker_repository.set_active_count(worker_id, actual)
        except Exception:
            errors += 1
            logger.exception(
                "reconciler.counter_repair_failed", worker_id=str(worker_id)
            )
            continue
        repaired += 1
        logger.warning(
            "reconciler.counter_drift",
            worker_id=str(worker_id),
            stored=stored,
            actual=actual,
        )
    return checked, repaired, errors


class Reconciler:
    """Periodic monitoring and cleanup around an ``AssignmentEngine``."""

    def __init__(
        self,
        engine: AssignmentEngine,
        settings: AssignmentSettings,
        metrics: MetricsStore,
        worker_repository: IWorkerRepository,
        order_repository: IOrderRepository,
    ) -> None:
        self._engine = engine
        self._settings = settings
        self._metrics = metrics
        self._worker_repo = worker_repository
        self._order_repo = order_repository
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Thread control
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        """Start the monitoring thread.  Returns ``False`` if already running."""
        if self.is_running:
            logger.warning("reconciler.already_running")
            return False
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="assignment-reconciler", daemon=True
        )
        self._thread.start()
        logger.info(
            "reconciler.started",
            monitoring_interval=self._settings.monitoring_interval_seconds,
            cleanup_interval=self._settings.cleanup_interval_seconds,
        )
        return True

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None
        logger.info("reconciler.stopped")

    def _run(self) -> None:
        next_cleanup = time.monotonic() + self._settings.cleanup_interval_seconds
        try:
            while not self._stop_event.wait(self._settings.monitoring_interval_seconds):
                self.tick()
                if time.monotonic() >= next_cleanup:
                    self.cleanup()
                    next_cleanup = (
                        time.monotonic() + self._settings.cleanup_interval_seconds
                    )
        finally:
            connections.close_all()

    # ------------------------------------------------------------------
    # Monitoring cycle
    # ------------------------------------------------------------------

    def tick(self) -> Dict[str, int]:
        """Run one monitoring cycle now."""
        with self._lock:
            summary = {
                "released": self._step("sweep_freed", self._sweep_freed),
                "timeouts": self._step("detect_timeouts", self._detect_timeouts),
                "assigned": self._step("fill_capacity", self._fill_capacity),
            }
            self._step("refresh_metrics", self._refresh_metrics)
        logger.debug("reconciler.tick", **summary)
        return summary

    def _sweep_freed(self) -> int:
        freed = list(
            Order.objects.filter(
                status__in=_RELEASING_STATUSES,
                staff__isnull=False,
                capacity_released=False,
            ).values_list("id", "status")
        )

        released = 0
        for order_id, status in freed:
            try:
                if status == OrderStatus.CANCELLED:
                    result = self._engine.on_order_cancelled(order_id)
                else:
                    result = self._engine.on_order_completed(order_id)
            except Exception:
                logger.exception("reconciler.hand_off_failed", order_id=str(order_id))
                continue
            released += int(result.released)
        if released:
            logger.info("reconciler.missed_hand_offs", count=released)
        return released

    def _detect_timeouts(self) -> int:
        now = timezone.now()
        limit = self._settings.max_preparation_minutes
        candidates = Order.objects.filter(
            status__in=OPEN_STATUSES,
            staff__isnull=False,
            is_timeout=False,
            created_at__lt=now - timedelta(minutes=limit),
        )

        flagged = 0
        for order in candidates:
            try:
                with transaction.atomic():
                    updated = Order.objects.filter(
                        id=order.id, is_timeout=False
                    ).update(is_timeout=True, timeout_detected_at=now)
                    if not updated:
                        continue
                    self._order_repo.add_note(
                        order,
                        f"Order exceeded maximum preparation time ({limit} minutes)",
                    )
            except Exception:
                logger.exception("reconciler.timeout_failed", order_id=str(order.id))
                continue
            flagged += 1
            self._metrics.incr("timeout_handled")
            logger.warning(
                "reconciler.order_timeout",
                order_id=str(order.id),
                worker_id=str(order.staff_id),
            )
        return flagged

    def _fill_capacity(self) -> int:
        venues = (
            Order.objects.filter(status=OrderStatus.QUEUED)
            .values_list("venue_id", flat=True)
            .distinct()
        )
        assigned = 0
        for venue_id in venues:
            for waiter in self._worker_repo.list_with_load(venue_id):
                if not waiter.has_capacity:
                    continue
                try:
                    if self._engine.assign_from_queue(waiter.id):
                        assigned += 1
                except Exception:
                    logger.exception(
                        "reconciler.queue_pull_failed", worker_id=str(waiter.id)
                    )
        return assigned

    def _refresh_metrics(self) -> None:
        since = timezone.now() - timedelta(hours=self._settings.metrics_window_hours)
        rows = AssignmentHistory.objects.filter(assigned_at__gte=since).values_list(
            "order__created_at", "assigned_at"
        )
        latencies = [
            max(0.0, (assigned_at - created_at).total_seconds())
            for created_at, assigned_at in rows
        ]
        self._metrics.set("total_assignments", len(latencies))
        self._metrics.set(
            "average_assignment_time",
            round(sum(latencies) / len(latencies), 2) if latencies else 0.0,
        )

    # ------------------------------------------------------------------
    # Cleanup cycle
    # ------------------------------------------------------------------

    def cleanup(self) -> Dict[str, int]:
        """Run one cleanup cycle now."""
        with self._lock:
            summary = {
                "history_purged": self._step("purge_history", self._purge_history),
                "queue_expired": self._step(
                    "expire_queue", self._engine.queue.expire_stale
                ),
                "counters_repaired": self._step("repair_counters", self._repair),
                "daily_reset": self._step("daily_reset", self._daily_reset),
            }
            self._metrics.set_datetime("last_cleanup", timezone.now())
        logger.info("reconciler.cleanup", **summary)
        return summary

    def _purge_history(self) -> int:
        cutoff = timezone.now() - timedelta(days=self._settings.history_retention_days)
        deleted, _ = (
            AssignmentHistory.objects.filter(assigned_at__lt=cutoff)
            .exclude(order__status__in=OPEN_STATUSES)
            .delete()
        )
        return deleted

    def _repair(self) -> int:
        _, repaired, _ = repair_worker_counters(self._worker_repo)
        return repaired

    def _daily_reset(self) -> int:
        last_reset = self._metrics.get_datetime("last_reset")
        today = timezone.localdate()
        if last_reset is not None and timezone.localdate(last_reset) == today:
            return 0
        self._metrics.reset_daily()
        self._engine.reset_round_robin()
        logger.info("reconciler.daily_reset", date=today.isoformat())
        return 1

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_metrics(self) -> ReconcilerMetrics:
        return ReconcilerMetrics(is_running=self.is_running, **self._metrics.snapshot())

    @staticmethod
    def _step(name: str, fn: Callable[[], Any]) -> int:
        try:
            return int(fn() or 0)
        except Exception:
            logger.exception("reconciler.step_failed", step=name)
            return 0
