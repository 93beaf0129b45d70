"""Unit tests for QueueManager.

Covers:
- Positions stay exactly 1..N in priority, then arrival, order.
- Full queues reject new entries.
- Removal closes the gap and resets the queue fields.
- Priority changes reorder the scope.
- Stale entries expire; inconsistent rows are repaired.
- Stats and paginated details.
"""

from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

import pytest
from django.utils import timezone

from modules.assignment.conf import AssignmentSettings
from modules.assignment.dtos import QueueScope
from modules.assignment.exceptions import (
    InvalidPriority,
    OrderNotAssignable,
    OrderNotInQueue,
    QueueFull,
)
from modules.orders.constants import OrderStatus, Priority
from modules.orders.exceptions import OrderNotFound
from modules.orders.models import Order, OrderStatusHistory

pytestmark = pytest.mark.unit


@pytest.fixture()
def assignment_settings():
    return AssignmentSettings.from_settings({"max_queue_size": 3})


@pytest.fixture()
def queue(engine):
    return engine.queue


@pytest.fixture()
def scope(venue, branch):
    return QueueScope(venue_id=venue.id, branch_id=branch.id)


@pytest.fixture()
def enqueue(queue, make_order):
    def _enqueue(priority=Priority.NORMAL, **order_fields):
        order = make_order(**order_fields)
        queue.enqueue(order, priority, estimated_wait_time=15)
        return order

    return _enqueue


def positions(queue, scope):
    return [(o.table_number, o.queue_position) for o in queue.queued(scope)]


class TestEnqueue:
    def test_first_entry(self, queue, make_order, scope):
        order = make_order()
        result = queue.enqueue(order, "normal", estimated_wait_time=15)

        assert result.queued is True
        assert result.queue_position == 1
        assert result.estimated_wait_time == 15
        assert result.priority == "normal"

        order.refresh_from_db()
        assert order.status == OrderStatus.QUEUED
        assert order.queued_at is not None
        assert queue.size(scope) == 1

    def test_high_priority_jumps_ahead(self, queue, enqueue, scope):
        enqueue(table_number="1")
        enqueue(table_number="2")
        enqueue(Priority.HIGH, table_number="3")

        assert positions(queue, scope) == [("3", 1), ("1", 2), ("2", 3)]

    def test_low_priority_goes_last(self, queue, enqueue, scope):
        enqueue(Priority.LOW, table_number="1")
        enqueue(table_number="2")

        assert positions(queue, scope) == [("2", 1), ("1", 2)]

    def test_full_queue_rejects(self, queue, enqueue, make_order):
        for _ in range(3):
            enqueue()

        order = make_order()
        with pytest.raises(QueueFull):
            queue.enqueue(order)
        order.refresh_from_db()
        assert order.status == OrderStatus.PENDING

    def test_scopes_have_separate_limits(self, queue, enqueue, make_order, venue):
        for _ in range(3):
            enqueue()

        venue_level = make_order(branch=None)
        result = queue.enqueue(venue_level)
        assert result.queue_position == 1

    def test_only_pending_orders_can_be_queued(self, queue, make_order):
        order = make_order(status=OrderStatus.PREPARING)
        with pytest.raises(OrderNotAssignable):
            queue.enqueue(order)

    def test_invalid_priority(self, queue, make_order):
        with pytest.raises(InvalidPriority):
            queue.enqueue(make_order(), "urgent")

    def test_history_records_position(self, queue, make_order):
        order = make_order()
        queue.enqueue(order)
        entry = OrderStatusHistory.objects.filter(
            order=order, new_status=OrderStatus.QUEUED
        ).get()
        assert entry.old_status == OrderStatus.PENDING
        assert "position 1" in entry.notes


class TestDequeueAndRemove:
    def test_dequeue_next_peeks_head(self, queue, enqueue, scope):
        enqueue(table_number="1")
        enqueue(Priority.HIGH, table_number="2")

        head = queue.dequeue_next(scope)
        assert head.table_number == "2"
        assert queue.size(scope) == 2

    def test_dequeue_empty_scope(self, queue, scope):
        assert queue.dequeue_next(scope) is None

    def test_remove_closes_gap(self, queue, enqueue, scope):
        enqueue(table_number="1")
        middle = enqueue(table_number="2")
        enqueue(table_number="3")

        removed = queue.remove(middle.id)

        assert removed.status == OrderStatus.PENDING
        assert removed.queue_position is None
        assert removed.queued_at is None
        assert removed.priority == Priority.NORMAL
        assert positions(queue, scope) == [("1", 1), ("3", 2)]

    def test_remove_with_cancellation(self, queue, enqueue):
        order = enqueue(Priority.HIGH)
        queue.remove(order.id, new_status=OrderStatus.CANCELLED, notes="left")

        order.refresh_from_db()
        assert order.status == OrderStatus.CANCELLED
        assert order.priority == Priority.NORMAL

    def test_remove_order_not_queued(self, queue, make_order):
        with pytest.raises(OrderNotInQueue):
            queue.remove(make_order().id)

    def test_remove_unknown_order(self, queue):
        with pytest.raises(OrderNotFound):
            queue.remove(uuid4())


class TestUpdatePriority:
    def test_raise_priority_moves_to_front(self, queue, enqueue, scope):
        enqueue(table_number="1")
        last = enqueue(table_number="2")

        updated = queue.update_priority(last.id, "high")

        assert updated.priority == Priority.HIGH
        assert updated.queue_position == 1
        assert positions(queue, scope) == [("2", 1), ("1", 2)]

    def test_same_priority_is_noop(self, queue, enqueue):
        order = enqueue()
        updated = queue.update_priority(order.id, Priority.NORMAL)
        assert updated.queue_position == 1

    def test_numeric_priority(self, queue, enqueue):
        order = enqueue()
        assert queue.update_priority(order.id, 1).priority == Priority.LOW

    def test_order_not_queued(self, queue, make_order):
        with pytest.raises(OrderNotInQueue):
            queue.update_priority(make_order().id, "high")

    def test_invalid_priority(self, queue, enqueue):
        order = enqueue()
        with pytest.raises(InvalidPriority):
            queue.update_priority(order.id, "critical")


class TestExpireAndRepair:
    def test_expire_stale_entries(self, queue, enqueue, scope):
        old = enqueue(table_number="1")
        enqueue(table_number="2")
        Order.objects.filter(id=old.id).update(
            queued_at=timezone.now() - timedelta(hours=25)
        )

        assert queue.expire_stale() == 1

        old.refresh_from_db()
        assert old.status == OrderStatus.EXPIRED
        assert old.queue_position is None
        assert positions(queue, scope) == [("2", 1)]

    def test_expire_with_explicit_age(self, queue, enqueue):
        order = enqueue()
        Order.objects.filter(id=order.id).update(
            queued_at=timezone.now() - timedelta(hours=2)
        )
        assert queue.expire_stale(max_age_hours=24) == 0
        assert queue.expire_stale(max_age_hours=1) == 1

    def test_zero_age_expires_everything_queued(self, queue, enqueue):
        first = enqueue(table_number="1")
        second = enqueue(table_number="2")
        Order.objects.filter(id__in=[first.id, second.id]).update(
            queued_at=timezone.now() - timedelta(minutes=1)
        )

        assert queue.expire_stale(max_age_hours=0) == 2
        assert not Order.objects.filter(status=OrderStatus.QUEUED).exists()

    def test_repair_fixes_inconsistent_rows(self, queue, enqueue, make_order, scope):
        first = enqueue(table_number="1")
        second = enqueue(table_number="2")
        Order.objects.filter(id=first.id).update(queue_position=4)
        Order.objects.filter(id=second.id).update(queue_position=9)
        stray = make_order(queue_position=3, queued_at=timezone.now())

        assert queue.repair() == 3

        stray.refresh_from_db()
        assert stray.queue_position is None
        assert stray.queued_at is None
        assert positions(queue, scope) == [("1", 1), ("2", 2)]

    def test_repair_clean_queue(self, queue, enqueue):
        enqueue()
        assert queue.repair() == 0


class TestReports:
    def test_stats(self, queue, enqueue, venue, branch):
        enqueue(Priority.HIGH)
        enqueue()
        enqueue()

        stats = queue.get_stats(venue.id, branch.id)

        assert stats.total_queued == 3
        assert stats.is_full is True
        assert stats.is_empty is False
        assert stats.priority_breakdown["high"].count == 1
        assert stats.priority_breakdown["normal"].count == 2
        assert stats.priority_breakdown["low"].count == 0
        assert stats.oldest_order is not None

    def test_stats_empty(self, queue, venue):
        stats = queue.get_stats(venue.id)
        assert stats.is_empty is True
        assert stats.average_wait_time == 0.0
        assert stats.oldest_order is None

    def test_details_pagination(self, queue, enqueue, venue):
        for table in ("1", "2", "3"):
            enqueue(table_number=table)

        details = queue.get_details(venue.id, limit=2, offset=0)

        assert [e.table_number for e in details.orders] == ["1", "2"]
        assert details.pagination.total == 3
        assert details.pagination.has_more is True

        rest = queue.get_details(venue.id, limit=2, offset=2)
        assert [e.queue_position for e in rest.orders] == [3]
        assert rest.pagination.has_more is False
