import itertools
import uuid

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache
from rest_framework.test import APIClient

from modules.assignment.conf import AssignmentSettings
from modules.assignment.container import get_assignment_system
from modules.assignment.lifecycle import AssignmentSystem
from modules.orders.constants import OrderStatus
from modules.orders.dtos import PlaceOrderDTO
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.staff.constants import WorkerRole, WorkerStatus
from modules.staff.models import Worker
from modules.venues.models import Branch, Manager, Venue

User = get_user_model()

_staff_codes = itertools.count(1)


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _fresh_assignment_state():
    """Each test gets an empty cache and a newly built assignment system."""
    cache.clear()
    get_assignment_system.cache_clear()
    yield
    if get_assignment_system.cache_info().currsize:
        get_assignment_system().reconciler.stop(timeout=1)
    get_assignment_system.cache_clear()


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


@pytest.fixture()
def auth_client(owner):
    """APIClient with a force-authenticated Django user."""
    client = APIClient()
    client.force_authenticate(user=owner)
    return client


# ---------------------------------------------------------------------------
# Ownership chain
# ---------------------------------------------------------------------------


@pytest.fixture()
def owner():
    return User.objects.create_user(username="owner", password="testpass123")


@pytest.fixture()
def other_owner():
    return User.objects.create_user(username="other-owner", password="testpass123")


@pytest.fixture()
def venue(owner):
    return Venue.objects.create(name="Harbour Grill", owner=owner)


@pytest.fixture()
def branch(venue, owner):
    return Branch.objects.create(venue=venue, name="Main Street", owner=owner)


@pytest.fixture()
def manager(venue, branch, owner):
    return Manager.objects.create(
        name="Floor Manager", venue=venue, branch=branch, created_by=owner
    )


@pytest.fixture()
def make_waiter(venue, branch, manager):
    """Factory for waiters in the default scope.

    Waiters are created in call order, which is also the order the engine
    walks them in.
    """

    def _make(name=None, **overrides):
        index = next(_staff_codes)
        fields = {
            "name": name or f"Waiter {index}",
            "staff_code": f"W{index:05d}",
            "role": WorkerRole.WAITER,
            "venue": venue,
            "branch": branch,
            "manager": manager,
            "status": WorkerStatus.ACTIVE,
            "is_available": True,
        }
        fields.update(overrides)
        return Worker.objects.create(**fields)

    return _make


@pytest.fixture()
def make_order(venue, branch):
    """Factory for orders saved straight to the table, bypassing the engine."""

    def _make(**overrides):
        fields = {
            "venue": venue,
            "branch": branch,
            "table_number": "7",
            "status": OrderStatus.PENDING,
        }
        fields.update(overrides)
        return Order.objects.create(**fields)

    return _make


# ---------------------------------------------------------------------------
# Assignment subsystem
# ---------------------------------------------------------------------------


@pytest.fixture()
def assignment_settings():
    return AssignmentSettings.from_settings()


@pytest.fixture()
def system(assignment_settings):
    built = AssignmentSystem.build(
        settings=assignment_settings,
        metrics_prefix=f"test:metrics:{uuid.uuid4().hex}",
    )
    yield built
    built.reconciler.stop(timeout=1)


@pytest.fixture()
def engine(system):
    return system.engine


@pytest.fixture()
def order_service(engine):
    return OrderService(
        order_repository=OrderDjangoRepository(), assignment_engine=engine
    )


@pytest.fixture()
def place(order_service, venue, branch):
    """Place an order through the service in the default scope."""

    def _place(**overrides):
        fields = {"venue_id": venue.id, "branch_id": branch.id, "table_number": "4"}
        fields.update(overrides)
        return order_service.place_order(PlaceOrderDTO(**fields))

    return _place
