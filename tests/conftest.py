from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from modules.orders.actors import UserActor, actor_for_user
from modules.orders.constants import DeliveryMethod, OrderStatus
from modules.orders.engine import StatusTransitionEngine
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.tenants.models import Tenant
from shared.infrastructure.bus import event_bus


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def as_user():
    """Build an APIClient force-authenticated as the given user."""

    def _client(user) -> APIClient:
        client = APIClient()
        client.force_authenticate(user=user)
        return client

    return _client


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


# ---------------------------------------------------------------------------
# Users and tenants
# ---------------------------------------------------------------------------


@pytest.fixture()
def client_user(django_user_model):
    return django_user_model.objects.create_user(
        username="client", password="client-pass-123"
    )


@pytest.fixture()
def other_client_user(django_user_model):
    return django_user_model.objects.create_user(
        username="other-client", password="client-pass-456"
    )


@pytest.fixture()
def cook_user(django_user_model):
    return django_user_model.objects.create_user(
        username="cook", password="cook-pass-123"
    )


@pytest.fixture()
def admin_user(django_user_model):
    return django_user_model.objects.create_user(
        username="admin", password="admin-pass-123", is_staff=True
    )


@pytest.fixture()
def client_actor(client_user) -> UserActor:
    return actor_for_user(client_user)


@pytest.fixture()
def cook_actor(cook_user) -> UserActor:
    return actor_for_user(cook_user)


@pytest.fixture()
def admin_actor(admin_user) -> UserActor:
    return actor_for_user(admin_user)


@pytest.fixture()
def tenant(cook_user):
    return Tenant.objects.create(
        name="Mama Ngono Kitchen",
        slug="mama-ngono",
        cook=cook_user,
        cancellation_window_minutes=15,
    )


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_order(tenant, client_user, cook_user):
    """Factory that inserts an order directly in the requested state.

    Bypasses the engine so tests can start from any status.
    """

    def _make(
        status: str = OrderStatus.PENDING_PAYMENT,
        delivery_method: str = DeliveryMethod.DELIVERY,
        created_at: Optional[datetime] = None,
        cancellation_window_minutes: int = 15,
        **fields: Any,
    ) -> Order:
        fields.setdefault("tenant", tenant)
        fields.setdefault("client", client_user)
        fields.setdefault("cook", cook_user)
        fields.setdefault("grand_total", Decimal("3500.00"))
        return Order.objects.create(
            status=status,
            delivery_method=delivery_method,
            created_at=created_at or timezone.now(),
            cancellation_window_minutes=cancellation_window_minutes,
            **fields,
        )

    return _make


@pytest.fixture()
def order_repository() -> OrderDjangoRepository:
    return OrderDjangoRepository()


@pytest.fixture()
def engine(order_repository) -> StatusTransitionEngine:
    return StatusTransitionEngine(order_repository=order_repository)


# ---------------------------------------------------------------------------
# Event bus
# ---------------------------------------------------------------------------


class RecordingHandler:
    def __init__(self) -> None:
        self.events: list = []

    def handle(self, event) -> None:
        self.events.append(event)


@pytest.fixture()
def record_events():
    """Subscribe a recording handler to the given event classes."""
    subscriptions: list = []

    def _record(*event_classes) -> RecordingHandler:
        handler = RecordingHandler()
        for event_class in event_classes:
            event_bus.subscribe(event_class, handler)
            subscriptions.append((event_class, handler))
        return handler

    yield _record

    for event_class, handler in subscriptions:
        event_bus.unsubscribe(event_class, handler)
