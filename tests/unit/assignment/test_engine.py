"""Unit tests for AssignmentEngine automatic placement and hand-offs.

Covers:
- Least-loaded selection with round-robin tie breaking.
- Method labels (round-robin vs load-balancing).
- Eligibility: availability, status, role and ownership chain.
- Saturation queues the order with a wait estimate.
- Capacity is rechecked under the waiter row lock before committing.
- Completion and cancellation return the slot and drain the queue.
- Hand-offs are idempotent.
"""

from __future__ import annotations

from uuid import uuid4

import pytest

from modules.assignment.conf import AssignmentSettings
from modules.assignment.exceptions import (
    HierarchyInvalid,
    OrderNotAssignable,
    QueueFull,
)
from modules.assignment.lifecycle import AssignmentSystem
from modules.orders.constants import AssignmentMethod, OrderStatus, Priority
from modules.orders.dtos import PlaceOrderDTO, UpdateStatusDTO
from modules.orders.models import AssignmentHistory, Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.staff.constants import WorkerRole, WorkerStatus
from modules.staff.dtos import WorkerWithLoad
from modules.staff.models import Worker
from modules.venues.models import Manager

pytestmark = pytest.mark.unit


def load(worker, count):
    """Give *worker* ``count`` open orders without going through the engine."""
    for _ in range(count):
        Order.objects.create(
            venue_id=worker.venue_id,
            branch_id=worker.branch_id,
            staff=worker,
            status=OrderStatus.PREPARING,
        )


def stale_snapshot(engine, monkeypatch):
    """Make the load listing report every waiter as idle."""
    repo = engine._worker_repo
    listing = repo.list_with_load

    def idle_listing(*args, **kwargs):
        return [
            w.model_copy(update={"open_orders": 0})
            for w in listing(*args, **kwargs)
        ]

    monkeypatch.setattr(repo, "list_with_load", idle_listing)


def serve(order_service, order):
    for status in (OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.SERVED):
        order_service.update_status(order.id, UpdateStatusDTO(status=status))


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


class TestSelection:
    def test_idle_waiters_are_used_in_turn(self, place, make_waiter):
        waiters = [make_waiter(name) for name in ("Ana", "Ben", "Cleo")]

        picks = [place().staff_id for _ in range(4)]

        assert picks == [waiters[0].id, waiters[1].id, waiters[2].id, waiters[0].id]

    def test_every_idle_pick_is_round_robin(self, place, make_waiter):
        for name in ("Ana", "Ben", "Cleo"):
            make_waiter(name)

        methods = {place().assignment_method for _ in range(3)}

        assert methods == {AssignmentMethod.ROUND_ROBIN}

    def test_least_loaded_wins(self, place, make_waiter):
        idle = make_waiter("Idle")
        busy_a, busy_b = make_waiter("Busy A"), make_waiter("Busy B")
        load(busy_a, 2)
        load(busy_b, 2)

        order = place()

        assert order.staff_id == idle.id
        assert order.assignment_method == AssignmentMethod.ROUND_ROBIN

    def test_unique_loaded_minimum_is_load_balancing(self, place, make_waiter):
        lighter = make_waiter("Lighter")
        heavier = make_waiter("Heavier")
        load(lighter, 1)
        load(heavier, 3)

        order = place()

        assert order.staff_id == lighter.id
        assert order.assignment_method == AssignmentMethod.LOAD_BALANCING

    def test_tie_among_idle_then_next_idle(self, place, make_waiter):
        w1, w2, w3 = make_waiter("W1"), make_waiter("W2"), make_waiter("W3")
        load(w3, 1)

        first = place()
        second = place()
        third = place()

        assert first.staff_id == w1.id
        assert second.staff_id == w2.id
        assert second.assignment_method == AssignmentMethod.ROUND_ROBIN
        assert third.staff_id == w3.id
        assert third.assignment_method == AssignmentMethod.ROUND_ROBIN

    def test_waiter_filled_since_snapshot_is_skipped(
        self, engine, monkeypatch, place, make_waiter
    ):
        full = make_waiter("Full", max_orders_capacity=1)
        spare = make_waiter("Spare", max_orders_capacity=1)
        load(full, 1)
        stale_snapshot(engine, monkeypatch)

        order = place()

        assert order.staff_id == spare.id
        assert Order.objects.filter(staff=full).count() == 1

    def test_all_candidates_filled_since_snapshot_queues(
        self, engine, monkeypatch, place, make_waiter
    ):
        waiter = make_waiter(max_orders_capacity=1)
        load(waiter, 1)
        stale_snapshot(engine, monkeypatch)

        order = place()

        assert order.status == OrderStatus.QUEUED
        assert order.staff_id is None

    def test_ineligible_waiters_are_skipped(self, place, make_waiter, venue):
        make_waiter("Away", is_available=False)
        make_waiter("On break", status=WorkerStatus.ON_BREAK)
        make_waiter("Chef", role=WorkerRole.CHEF)
        outsider_manager = Manager.objects.create(name="Outsider", venue=venue)
        make_waiter("Outsider", manager=outsider_manager)
        eligible = make_waiter("Ready")

        assert place().staff_id == eligible.id

    def test_counters_updated(self, place, make_waiter):
        waiter = make_waiter()

        order = place()

        waiter.refresh_from_db()
        assert waiter.active_orders_count == 1
        assert waiter.total_assignments == 1
        assert waiter.last_assigned_at == order.assigned_at

    def test_assignment_history_recorded(self, place, make_waiter):
        waiter = make_waiter()

        order = place()

        entry = AssignmentHistory.objects.get(order_id=order.id)
        assert entry.worker_id == waiter.id
        assert entry.method == AssignmentMethod.ROUND_ROBIN
        assert entry.reason == "Automatic assignment"
        assert entry.unassigned_at is None

    def test_venue_level_order_uses_every_branch(self, place, make_waiter):
        waiter = make_waiter()
        order = place(branch_id=None)
        assert order.staff_id == waiter.id


class TestAssignGuards:
    def test_assigned_order_is_rejected(self, engine, place, make_waiter):
        make_waiter()
        order = place()
        with pytest.raises(OrderNotAssignable):
            engine.assign(order)

    def test_non_pending_order_is_rejected(self, engine, make_order):
        with pytest.raises(OrderNotAssignable):
            engine.assign(make_order(status=OrderStatus.PREPARING))

    def test_broken_hierarchy_rolls_back_placement(self, place, make_waiter, venue):
        make_waiter()
        venue.owner = None
        venue.save()

        with pytest.raises(HierarchyInvalid, match="Venue has no assigned owner"):
            place()
        assert Order.objects.count() == 0

    def test_unknown_branch(self, place):
        with pytest.raises(HierarchyInvalid, match="Branch not found"):
            place(branch_id=uuid4())


# ---------------------------------------------------------------------------
# Saturation and queueing
# ---------------------------------------------------------------------------


class TestSaturation:
    def test_full_waiter_queues_order(self, place, make_waiter):
        make_waiter(max_orders_capacity=1)
        place()

        queued = place()

        assert queued.status == OrderStatus.QUEUED
        assert queued.staff_id is None
        assert queued.queue_position == 1
        assert queued.estimated_wait_time == 15

    def test_no_waiters_queues_with_default_wait(self, place):
        order = place()
        assert order.status == OrderStatus.QUEUED
        assert order.estimated_wait_time == 30

    def test_wait_estimate_scales_with_load(self, engine):
        overloaded = [
            WorkerWithLoad(
                id=uuid4(), name="x", max_orders_capacity=20, open_orders=10
            )
        ]
        assert engine.estimate_wait(overloaded) == 30
        assert engine.estimate_wait([]) == 30

    def test_queue_full_rejects_placement(self, venue, branch):
        small = AssignmentSystem.build(
            settings=AssignmentSettings.from_settings({"max_queue_size": 1}),
            metrics_prefix="test:small",
        )
        service = OrderService(OrderDjangoRepository(), small.engine)
        dto = PlaceOrderDTO(venue_id=venue.id, branch_id=branch.id)
        service.place_order(dto)

        with pytest.raises(QueueFull):
            service.place_order(dto)
        assert Order.objects.count() == 1


# ---------------------------------------------------------------------------
# Hand-offs
# ---------------------------------------------------------------------------


class TestHandOff:
    def test_completion_pulls_next_from_queue(self, place, order_service, make_waiter):
        waiter = make_waiter(max_orders_capacity=1)
        first = place()
        queued = place()

        serve(order_service, first)

        queued.refresh_from_db()
        assert queued.staff_id == waiter.id
        assert queued.status == OrderStatus.PENDING
        assert queued.assignment_method == AssignmentMethod.QUEUE
        assert queued.queue_position is None
        assert queued.priority == Priority.NORMAL
        waiter.refresh_from_db()
        assert waiter.active_orders_count == 1
        assert waiter.completed_orders == 1

    def test_cancellation_pulls_next_from_queue(
        self, place, order_service, make_waiter
    ):
        waiter = make_waiter(max_orders_capacity=1)
        first = place()
        queued = place()

        order_service.cancel_order(first.id, notes="customer left")

        queued.refresh_from_db()
        assert queued.staff_id == waiter.id
        waiter.refresh_from_db()
        assert waiter.completed_orders == 0

    def test_hand_off_is_idempotent(self, engine, place, order_service, make_waiter):
        waiter = make_waiter()
        other = place()
        order = place()
        serve(order_service, order)

        again = engine.on_order_completed(order.id)

        assert again.released is False
        waiter.refresh_from_db()
        assert waiter.active_orders_count == 1
        assert other.staff_id == waiter.id

    def test_hand_off_of_open_order_does_nothing(self, engine, place, make_waiter):
        waiter = make_waiter()
        order = place()

        result = engine.on_order_completed(order.id)

        assert result.released is False
        waiter.refresh_from_db()
        assert waiter.active_orders_count == 1

    def test_queue_head_goes_first(self, place, order_service, engine, make_waiter):
        make_waiter(max_orders_capacity=1)
        first = place()
        normal = place(table_number="normal")
        urgent = place(table_number="urgent")
        engine.update_queue_priority(urgent.id, "high")

        serve(order_service, first)

        urgent.refresh_from_db()
        normal.refresh_from_db()
        assert urgent.status == OrderStatus.PENDING
        assert urgent.staff_id is not None
        assert normal.status == OrderStatus.QUEUED
        assert normal.queue_position == 1

    def test_assign_from_queue_without_room(self, engine, place, make_waiter):
        waiter = make_waiter(max_orders_capacity=1)
        place()
        queued = place()

        assert engine.assign_from_queue(waiter.id) is None
        queued.refresh_from_db()
        assert queued.status == OrderStatus.QUEUED

    def test_waiter_drains_venue_level_queue(self, engine, place, make_waiter):
        waiter = make_waiter(is_available=False)
        order = place(branch_id=None)
        assert order.status == OrderStatus.QUEUED

        Worker.objects.filter(id=waiter.id).update(is_available=True)
        result = engine.assign_from_queue(waiter.id)

        assert result is not None
        assert result.order_id == order.id
        assert result.method == AssignmentMethod.QUEUE

    def test_queue_pull_counts_in_metrics(self, system, place, make_waiter):
        waiter = make_waiter(is_available=False)
        place()
        Worker.objects.filter(id=waiter.id).update(is_available=True)

        system.engine.assign_from_queue(waiter.id)

        assert system.reconciler.get_metrics().queue_assignments == 1


class TestStats:
    def test_stats(self, engine, place, make_waiter, venue, branch):
        make_waiter(max_orders_capacity=1)
        make_waiter(is_available=False)
        place()
        place()

        stats = engine.get_stats(venue.id, branch.id)

        assert stats.waiters.total == 2
        assert stats.waiters.busy == 1
        assert stats.waiters.available == 0
        assert stats.waiters.utilization == 50.0
        assert stats.current_load == 1
        assert stats.max_capacity == 6
        assert stats.queue.total_queued == 1
        assert len(stats.recent_assignments) == 1
