"""Unit tests for Order and OrderStatusTransition models.

Covers:
- Auto-generated order_number format and uniqueness retry.
- Status helpers and ``apply_status`` timestamp stamping.
- The transition ledger is append-only.
- Actor mapping on ledger rows.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone as dt_timezone
from unittest.mock import patch

import pytest

from modules.core.models import ImmutableRecordError
from modules.orders.actors import SYSTEM, UserActor
from modules.orders.constants import OrderStatus
from modules.orders.models import Order, OrderStatusTransition

pytestmark = pytest.mark.unit

ORDER_NUMBER_RE = re.compile(r"^ORD-\d{8}-[0-9A-F]{6}$")
T0 = datetime(2026, 5, 4, 10, 0, tzinfo=dt_timezone.utc)


class TestOrder:
    def test_order_number_format(self, make_order):
        order = make_order()
        assert ORDER_NUMBER_RE.match(order.order_number)

    def test_order_numbers_are_unique(self, make_order):
        numbers = {make_order().order_number for _ in range(5)}
        assert len(numbers) == 5

    def test_order_number_collision_is_retried(self, make_order):
        existing = make_order()
        candidates = iter([existing.order_number, "ORD-20260504-00BEEF"])

        with patch.object(
            Order, "generate_order_number", side_effect=lambda: next(candidates)
        ):
            order = make_order()

        assert order.order_number == "ORD-20260504-00BEEF"

    def test_order_number_generation_gives_up(self, make_order):
        existing = make_order()

        with patch.object(
            Order, "generate_order_number", return_value=existing.order_number
        ):
            with pytest.raises(RuntimeError, match="order_number"):
                make_order()

    def test_default_status(self, tenant, client_user):
        order = Order.objects.create(
            tenant=tenant, client=client_user, cancellation_window_minutes=15
        )
        assert order.status == OrderStatus.PENDING_PAYMENT
        assert order.is_unpaid
        assert not order.is_terminal

    @pytest.mark.parametrize(
        "status,terminal",
        [
            (OrderStatus.COMPLETED, True),
            (OrderStatus.CANCELLED, True),
            (OrderStatus.REFUNDED, True),
            (OrderStatus.DELIVERED, False),
        ],
    )
    def test_is_terminal(self, status, terminal):
        assert Order(status=status).is_terminal is terminal

    def test_apply_status_stamps_first_entry_only(self):
        order = Order(status=OrderStatus.PENDING_PAYMENT)

        changed = order.apply_status(OrderStatus.PAID, T0)

        assert order.status == OrderStatus.PAID
        assert order.paid_at == T0
        assert changed == ["status", "paid_at"]

        later = datetime(2026, 5, 5, tzinfo=dt_timezone.utc)
        assert order.apply_status(OrderStatus.PAID, later) == ["status"]
        assert order.paid_at == T0

    def test_apply_status_without_timestamp_field(self):
        order = Order(status=OrderStatus.PAID)
        assert order.apply_status(OrderStatus.PAYMENT_FAILED, T0) == ["status"]

    def test_str(self, make_order):
        order = make_order(status=OrderStatus.PAID)
        assert str(order) == f"{order.order_number} (paid)"


class TestOrderStatusTransition:
    def _record(self, order, **fields):
        return OrderStatusTransition.objects.create(
            order=order,
            previous_status=OrderStatus.PAID,
            new_status=OrderStatus.CONFIRMED,
            **fields,
        )

    def test_rows_cannot_be_updated(self, make_order):
        record = self._record(make_order())
        record.reason = "edited"

        with pytest.raises(ImmutableRecordError):
            record.save()

    def test_rows_cannot_be_deleted(self, make_order):
        record = self._record(make_order())

        with pytest.raises(ImmutableRecordError):
            record.delete()

    def test_queryset_update_and_delete_are_blocked(self, make_order):
        self._record(make_order())

        with pytest.raises(ImmutableRecordError):
            OrderStatusTransition.objects.update(reason="edited")
        with pytest.raises(ImmutableRecordError):
            OrderStatusTransition.objects.all().delete()

    def test_system_row(self, make_order):
        record = self._record(make_order())

        assert record.actor is SYSTEM
        assert record.actor_label() == "System"

    def test_user_row(self, make_order, cook_user):
        record = self._record(make_order(), triggered_by=cook_user)

        assert record.actor == UserActor(user_id=cook_user.pk)
        assert record.actor_label() == "cook"

    def test_reverse_relation_is_ordered(self, make_order):
        order = make_order()
        first = self._record(order)
        second = OrderStatusTransition.objects.create(
            order=order,
            previous_status=OrderStatus.CONFIRMED,
            new_status=OrderStatus.PREPARING,
        )

        assert list(order.transitions.all()) == [first, second]
