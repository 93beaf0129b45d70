"""Unit tests for AssignmentSystem startup, shutdown and health."""

from __future__ import annotations

import pytest
from django.utils import timezone

from modules.assignment.conf import AssignmentSettings
from modules.assignment.container import get_assignment_system
from modules.orders.constants import OrderStatus
from modules.orders.models import Order
from modules.staff.models import Worker
from modules.venues.models import Venue

pytestmark = pytest.mark.unit


@pytest.fixture()
def assignment_settings():
    return AssignmentSettings.from_settings({"monitoring_interval_seconds": 3600})


class TestInitialize:
    def test_repairs_counters_and_schedules_orphans(
        self, system, make_order, make_waiter
    ):
        waiter = make_waiter()
        Worker.objects.filter(id=waiter.id).update(active_orders_count=4)
        orphan = make_order()

        report = system.initialize(start_reconciler=False)

        assert report.workers_checked == 1
        assert report.workers_repaired == 1
        assert report.orphans_processed == 1
        assert report.orphans_assigned == 1
        assert report.errors == 0
        orphan.refresh_from_db()
        assert orphan.staff_id == waiter.id
        waiter.refresh_from_db()
        assert waiter.active_orders_count == 1
        assert system.is_initialized is True

    def test_orphans_queued_without_waiters(self, system, make_order):
        make_order()
        report = system.initialize(start_reconciler=False)
        assert report.orphans_queued == 1

    def test_orphans_with_broken_hierarchy_are_counted(self, system, make_order):
        orphan_venue = Venue.objects.create(name="No Owner")
        make_order(venue=orphan_venue, branch=None)

        report = system.initialize(start_reconciler=False)

        assert report.errors == 1
        assert report.orphans_assigned == 0

    def test_repairs_queue_rows(self, system, make_order):
        make_order(queue_position=5, queued_at=timezone.now())

        report = system.initialize(start_reconciler=False)

        assert report.queue_repaired == 1

    def test_starts_reconciler(self, system):
        system.initialize()
        try:
            assert system.reconciler.is_running is True
        finally:
            system.shutdown(timeout=5)


class TestShutdown:
    def test_runs_hooks_even_when_one_fails(self, system):
        calls = []

        def failing():
            calls.append("failing")
            raise RuntimeError("flush failed")

        system.add_shutdown_hook("failing", failing)
        system.add_shutdown_hook("flush", lambda: calls.append("flush"))
        system.initialize()

        system.shutdown(timeout=5)

        assert calls == ["failing", "flush"]
        assert system.reconciler.is_running is False
        assert system.is_initialized is False

    def test_saves_counter_snapshot(self, system, make_waiter):
        waiter = make_waiter()
        Worker.objects.filter(id=waiter.id).update(active_orders_count=2)

        system.shutdown(timeout=1)

        waiter.refresh_from_db()
        assert waiter.active_orders_count == 0


class TestStatus:
    def test_health_degraded_before_initialize(self, system):
        report = system.health_check()
        assert report["status"] == "degraded"
        assert report["checks"]["database"] is True
        assert report["checks"]["initialized"] is False

    def test_health_healthy_when_running(self, system):
        system.initialize()
        try:
            assert system.health_check()["status"] == "healthy"
        finally:
            system.shutdown(timeout=5)

    def test_get_status(self, system):
        system.add_shutdown_hook("noop", lambda: None)
        status = system.get_status()
        assert status.initialized is False
        assert status.shutdown_hooks == 1
        assert status.settings["monitoring_interval_seconds"] == 3600
        assert status.reconciler.is_running is False


class TestContainer:
    def test_process_wide_singleton(self):
        assert get_assignment_system() is get_assignment_system()

    def test_default_settings(self, settings):
        system = get_assignment_system()
        expected = settings.ASSIGNMENT["MAX_ORDERS_PER_WAITER"]
        assert system.engine.settings.max_orders_per_waiter == expected


def test_orphan_order_left_alone_when_already_closed(system, make_order):
    make_order(status=OrderStatus.COMPLETED)
    report = system.initialize(start_reconciler=False)
    assert report.orphans_processed == 0
    assert Order.objects.get().status == OrderStatus.COMPLETED
