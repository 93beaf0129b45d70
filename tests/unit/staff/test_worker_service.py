"""Unit tests for WorkerService and the worker repository."""

from __future__ import annotations

from uuid import uuid4

import pytest

from modules.orders.constants import OrderStatus
from modules.staff.constants import WorkerRole, WorkerStatus
from modules.staff.dtos import UpdateAvailabilityDTO
from modules.staff.exceptions import WorkerNotFound
from modules.staff.models import Worker
from modules.staff.repositories.django_repository import WorkerDjangoRepository
from modules.staff.services import WorkerService

pytestmark = pytest.mark.unit


@pytest.fixture()
def repository():
    return WorkerDjangoRepository()


@pytest.fixture()
def service(repository, engine):
    return WorkerService(repository, queue_puller=engine.assign_from_queue)


class TestSetAvailability:
    def test_going_available_pulls_from_queue(self, service, place, make_waiter):
        waiter = make_waiter(is_available=False)
        order = place()

        updated = service.set_availability(
            waiter.id, UpdateAvailabilityDTO(is_available=True)
        )

        assert updated.is_available is True
        assert updated.active_orders_count == 1
        order.refresh_from_db()
        assert order.staff_id == waiter.id

    def test_going_on_break(self, service, place, make_waiter):
        waiter = make_waiter()

        updated = service.set_availability(
            waiter.id,
            UpdateAvailabilityDTO(is_available=False, status=WorkerStatus.ON_BREAK),
        )

        assert updated.is_available is False
        assert updated.status == WorkerStatus.ON_BREAK
        assert place().status == OrderStatus.QUEUED

    def test_status_kept_when_omitted(self, service, make_waiter):
        waiter = make_waiter(status=WorkerStatus.ON_LEAVE)
        updated = service.set_availability(
            waiter.id, UpdateAvailabilityDTO(is_available=True)
        )
        assert updated.status == WorkerStatus.ON_LEAVE

    def test_unknown_status(self, service, make_waiter):
        with pytest.raises(ValueError):
            service.set_availability(
                make_waiter().id,
                UpdateAvailabilityDTO(is_available=True, status="asleep"),
            )

    def test_unknown_worker(self, service):
        with pytest.raises(WorkerNotFound):
            service.set_availability(uuid4(), UpdateAvailabilityDTO(is_available=True))

    def test_without_puller(self, repository, place, make_waiter):
        waiter = make_waiter(is_available=False)
        order = place()

        WorkerService(repository).set_availability(
            waiter.id, UpdateAvailabilityDTO(is_available=True)
        )

        order.refresh_from_db()
        assert order.status == OrderStatus.QUEUED


class TestWorkerRepository:
    def test_list_with_load_counts_open_orders(
        self, repository, make_waiter, make_order, venue
    ):
        waiter = make_waiter()
        make_order(staff=waiter, status=OrderStatus.PREPARING)
        make_order(staff=waiter, status=OrderStatus.COMPLETED)

        [row] = repository.list_with_load(venue.id)

        assert row.id == waiter.id
        assert row.open_orders == 1
        assert row.has_capacity is True

    def test_list_with_load_filters(self, repository, make_waiter, venue, owner):
        make_waiter(is_available=False)
        make_waiter(role=WorkerRole.HOST)
        active = make_waiter()

        rows = repository.list_with_load(venue.id, owner_id=owner.id)
        everyone = repository.list_with_load(venue.id, schedulable_only=False)

        assert [r.id for r in rows] == [active.id]
        assert len(everyone) == 2

    def test_release_never_goes_negative(self, repository, make_waiter):
        waiter = make_waiter()

        assert repository.release_capacity(waiter.id) is False

        waiter.refresh_from_db()
        assert waiter.active_orders_count == 0

    def test_release_with_completion(self, repository, make_waiter):
        waiter = make_waiter()
        Worker.objects.filter(id=waiter.id).update(active_orders_count=2)

        assert repository.release_capacity(waiter.id, completed=True) is True

        waiter.refresh_from_db()
        assert waiter.active_orders_count == 1
        assert waiter.completed_orders == 1

    def test_drift_report(self, repository, make_waiter, make_order):
        waiter = make_waiter()
        make_order(staff=waiter)

        assert repository.drift_report() == [(waiter.id, 0, 1)]

    def test_invalid_id_returns_none(self, repository):
        assert repository.get_by_id("not-a-uuid") is None

    def test_default_capacity_from_settings(self, make_waiter, settings):
        assert make_waiter().max_orders_capacity == (
            settings.ASSIGNMENT["MAX_ORDERS_PER_WAITER"]
        )
