"""Unit tests for the order state machine rules.

Covers:
- Every (current, target) pair against the adjacency table.
- The delivery/pickup branch at ``ready`` and the cross-path guard.
- Override bounds (terminal orders, same status, cross-path).
- Forward status and the valid-next list shown to users.
- Who may take a cancellation edge without an override.
"""

from __future__ import annotations

from itertools import product

import pytest

from modules.orders.actors import SYSTEM, UserActor
from modules.orders.constants import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    DeliveryMethod,
    OrderStatus,
)
from modules.orders.exceptions import IllegalTransition
from modules.orders.models import Order
from modules.orders.transitions import TransitionValidator

pytestmark = pytest.mark.unit

ALL_STATUSES = list(OrderStatus.values)
PICKUP_ONLY = {OrderStatus.READY_FOR_PICKUP, OrderStatus.PICKED_UP}
DELIVERY_ONLY = {OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED}


@pytest.fixture()
def validator() -> TransitionValidator:
    return TransitionValidator()


def _order(status: str, method: str = DeliveryMethod.DELIVERY) -> Order:
    return Order(status=status, delivery_method=method)


class TestAdjacency:
    @pytest.mark.parametrize("current,target", list(product(ALL_STATUSES, repeat=2)))
    def test_delivery_orders_follow_the_table(self, validator, current, target):
        expected = target in VALID_TRANSITIONS[current] and target not in PICKUP_ONLY
        allowed = validator.is_allowed(current, target, DeliveryMethod.DELIVERY)
        assert allowed is expected

    @pytest.mark.parametrize("current,target", list(product(ALL_STATUSES, repeat=2)))
    def test_pickup_orders_follow_the_table(self, validator, current, target):
        expected = target in VALID_TRANSITIONS[current] and target not in DELIVERY_ONLY
        assert validator.is_allowed(current, target, DeliveryMethod.PICKUP) is expected

    def test_ready_branches_by_delivery_method(self, validator):
        assert validator.is_allowed(
            OrderStatus.READY, OrderStatus.OUT_FOR_DELIVERY, DeliveryMethod.DELIVERY
        )
        assert not validator.is_allowed(
            OrderStatus.READY, OrderStatus.READY_FOR_PICKUP, DeliveryMethod.DELIVERY
        )
        assert validator.is_allowed(
            OrderStatus.READY, OrderStatus.READY_FOR_PICKUP, DeliveryMethod.PICKUP
        )
        assert not validator.is_allowed(
            OrderStatus.READY, OrderStatus.OUT_FOR_DELIVERY, DeliveryMethod.PICKUP
        )

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATES))
    def test_terminal_states_have_no_regular_exit(self, validator, terminal):
        for target in ALL_STATUSES:
            assert not validator.is_allowed(terminal, target)

    def test_refunded_is_never_a_regular_target(self, validator):
        for current in ALL_STATUSES:
            assert not validator.is_allowed(current, OrderStatus.REFUNDED)


class TestOverride:
    def test_override_can_skip_forward(self, validator):
        assert validator.is_allowed(
            OrderStatus.PAID, OrderStatus.READY, is_override=True
        )

    def test_override_can_move_backward(self, validator):
        assert validator.is_allowed(
            OrderStatus.PREPARING, OrderStatus.CONFIRMED, is_override=True
        )

    def test_override_can_refund_active_order(self, validator):
        assert validator.is_allowed(
            OrderStatus.PREPARING, OrderStatus.REFUNDED, is_override=True
        )

    def test_terminal_order_may_only_be_refunded(self, validator):
        assert validator.is_allowed(
            OrderStatus.CANCELLED, OrderStatus.REFUNDED, is_override=True
        )
        assert validator.is_allowed(
            OrderStatus.COMPLETED, OrderStatus.REFUNDED, is_override=True
        )
        assert not validator.is_allowed(
            OrderStatus.CANCELLED, OrderStatus.PAID, is_override=True
        )
        assert not validator.is_allowed(
            OrderStatus.REFUNDED, OrderStatus.REFUNDED, is_override=True
        )

    def test_override_cannot_keep_same_status(self, validator):
        assert not validator.is_allowed(
            OrderStatus.PAID, OrderStatus.PAID, is_override=True
        )

    def test_override_cannot_cross_delivery_path(self, validator):
        assert not validator.is_allowed(
            OrderStatus.READY,
            OrderStatus.READY_FOR_PICKUP,
            DeliveryMethod.DELIVERY,
            is_override=True,
        )
        assert not validator.is_allowed(
            OrderStatus.READY,
            OrderStatus.DELIVERED,
            DeliveryMethod.PICKUP,
            is_override=True,
        )


class TestCheck:
    def test_check_passes_for_legal_transition(self, validator):
        validator.check(_order(OrderStatus.PAID), OrderStatus.CONFIRMED)

    def test_check_raises_with_context(self, validator):
        with pytest.raises(IllegalTransition) as exc_info:
            validator.check(_order(OrderStatus.PAID), OrderStatus.PREPARING)

        exc = exc_info.value
        assert exc.current_status == OrderStatus.PAID
        assert exc.attempted_status == OrderStatus.PREPARING
        assert exc.next_valid_status == OrderStatus.CONFIRMED
        assert "from paid to preparing" in str(exc)


class TestNextStatus:
    @pytest.mark.parametrize(
        "current,method,expected",
        [
            (OrderStatus.PENDING_PAYMENT, DeliveryMethod.DELIVERY, OrderStatus.PAID),
            (OrderStatus.PAYMENT_FAILED, DeliveryMethod.DELIVERY, OrderStatus.PAID),
            (OrderStatus.PAID, DeliveryMethod.DELIVERY, OrderStatus.CONFIRMED),
            (OrderStatus.CONFIRMED, DeliveryMethod.PICKUP, OrderStatus.PREPARING),
            (OrderStatus.PREPARING, DeliveryMethod.PICKUP, OrderStatus.READY),
            (OrderStatus.READY, DeliveryMethod.DELIVERY, OrderStatus.OUT_FOR_DELIVERY),
            (OrderStatus.READY, DeliveryMethod.PICKUP, OrderStatus.READY_FOR_PICKUP),
            (
                OrderStatus.OUT_FOR_DELIVERY,
                DeliveryMethod.DELIVERY,
                OrderStatus.DELIVERED,
            ),
            (
                OrderStatus.READY_FOR_PICKUP,
                DeliveryMethod.PICKUP,
                OrderStatus.PICKED_UP,
            ),
            (OrderStatus.DELIVERED, DeliveryMethod.DELIVERY, OrderStatus.COMPLETED),
            (OrderStatus.PICKED_UP, DeliveryMethod.PICKUP, OrderStatus.COMPLETED),
            (OrderStatus.COMPLETED, DeliveryMethod.DELIVERY, None),
            (OrderStatus.CANCELLED, DeliveryMethod.DELIVERY, None),
            (OrderStatus.REFUNDED, DeliveryMethod.PICKUP, None),
        ],
    )
    def test_forward_status(self, validator, current, method, expected):
        assert validator.next_status(_order(current, method)) == expected

    def test_forward_status_is_always_a_legal_edge(self, validator):
        for status, method in product(ALL_STATUSES, DeliveryMethod.values):
            forward = validator.next_status(_order(status, method))
            if forward is not None:
                assert validator.is_allowed(status, forward, method)


class TestValidNextStatuses:
    def test_paid_order_can_confirm_or_cancel(self, validator):
        assert validator.valid_next_statuses(_order(OrderStatus.PAID)) == [
            OrderStatus.CONFIRMED,
            OrderStatus.CANCELLED,
        ]

    def test_preparing_order_cannot_cancel(self, validator):
        assert validator.valid_next_statuses(_order(OrderStatus.PREPARING)) == [
            OrderStatus.READY
        ]

    def test_admin_sees_refund_for_cancelled_order(self, validator):
        order = _order(OrderStatus.CANCELLED)
        assert validator.valid_next_statuses(order) == []
        assert validator.valid_next_statuses(order, is_admin=True) == [
            OrderStatus.REFUNDED
        ]


class TestCancellationActors:
    CLIENT = UserActor(user_id=10)
    COOK = UserActor(user_id=20)
    ADMIN = UserActor(user_id=30, is_admin=True)

    @staticmethod
    def _owned(status: str) -> Order:
        return Order(
            status=status, delivery_method=DeliveryMethod.DELIVERY, client_id=10
        )

    @pytest.mark.parametrize("status", [OrderStatus.PAID, OrderStatus.CONFIRMED])
    def test_client_and_system_cancel_paid_orders(self, validator, status):
        order = self._owned(status)

        assert validator.may_cancel(order, self.CLIENT)
        assert validator.may_cancel(order, SYSTEM)
        assert not validator.may_cancel(order, self.COOK)
        assert not validator.may_cancel(order, self.ADMIN)

    @pytest.mark.parametrize(
        "status", [OrderStatus.PENDING_PAYMENT, OrderStatus.PAYMENT_FAILED]
    )
    def test_only_system_cancels_unpaid_orders(self, validator, status):
        order = self._owned(status)

        assert validator.may_cancel(order, SYSTEM)
        for actor in (self.CLIENT, self.COOK, self.ADMIN):
            assert not validator.may_cancel(order, actor)

    def test_override_lifts_the_actor_rule(self, validator):
        order = self._owned(OrderStatus.PENDING_PAYMENT)
        assert validator.may_cancel(order, self.ADMIN, is_override=True)

    def test_check_actor_reports_current_status(self, validator):
        order = self._owned(OrderStatus.PAID)

        with pytest.raises(IllegalTransition) as exc_info:
            validator.check_actor(order, OrderStatus.CANCELLED, self.COOK)

        assert exc_info.value.current_status == OrderStatus.PAID
        assert exc_info.value.attempted_status == OrderStatus.CANCELLED
        assert exc_info.value.next_valid_status == OrderStatus.CONFIRMED

    def test_check_actor_ignores_other_targets(self, validator):
        order = self._owned(OrderStatus.PAID)
        validator.check_actor(order, OrderStatus.CONFIRMED, self.COOK)
