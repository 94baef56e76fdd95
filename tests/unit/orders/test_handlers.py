"""Unit tests for the post-commit side-effect handlers."""

from __future__ import annotations

import logging
from unittest import mock

import pytest

from modules.orders.actors import SYSTEM, UserActor
from modules.orders.constants import OrderStatus
from modules.orders.events import OrderCancelled, OrderCompleted, OrderStatusChanged
from modules.orders.handlers import (
    AuditLogHandler,
    CancellationRefundHandler,
    CommissionHandler,
    StatusNotificationHandler,
)

pytestmark = pytest.mark.unit

CLIENT_ID = 11
COOK_ID = 22


def _status_changed(**overrides) -> OrderStatusChanged:
    fields = dict(
        aggregate_id=7,
        order_number="ORD-20260504-ABC123",
        client_id=CLIENT_ID,
        cook_id=COOK_ID,
        previous_status=OrderStatus.PAID,
        new_status=OrderStatus.CONFIRMED,
        actor=UserActor(user_id=COOK_ID),
    )
    fields.update(overrides)
    return OrderStatusChanged(**fields)


def _logged(caplog, event_name: str) -> bool:
    return any(event_name in record.getMessage() for record in caplog.records)


class TestStatusNotificationHandler:
    def test_acting_user_is_not_notified(self):
        notifier = mock.Mock()

        StatusNotificationHandler(notifier).handle(_status_changed())

        notifier.notify_status_change.assert_called_once_with(
            7, OrderStatus.PAID, OrderStatus.CONFIRMED, [CLIENT_ID]
        )

    def test_system_change_notifies_everyone(self):
        notifier = mock.Mock()

        StatusNotificationHandler(notifier).handle(_status_changed(actor=SYSTEM))

        notifier.notify_status_change.assert_called_once_with(
            7, OrderStatus.PAID, OrderStatus.CONFIRMED, [CLIENT_ID, COOK_ID]
        )

    def test_no_recipients_skips_the_call(self):
        notifier = mock.Mock()

        StatusNotificationHandler(notifier).handle(
            _status_changed(cook_id=None, actor=UserActor(user_id=CLIENT_ID))
        )

        notifier.notify_status_change.assert_not_called()

    def test_notifier_failure_is_logged_not_raised(self, caplog):
        notifier = mock.Mock()
        notifier.notify_status_change.side_effect = RuntimeError("SMS gateway down")

        with caplog.at_level(logging.ERROR):
            StatusNotificationHandler(notifier).handle(_status_changed())

        assert _logged(caplog, "order.side_effect_failed")


class TestAuditLogHandler:
    def test_records_override_metadata(self):
        audit = mock.Mock()
        admin = UserActor(user_id=1, is_admin=True)
        event = _status_changed(
            actor=admin,
            previous_status=OrderStatus.CANCELLED,
            new_status=OrderStatus.REFUNDED,
            is_override=True,
            reason="Duplicate charge",
        )

        AuditLogHandler(audit).handle(event)

        audit.record.assert_called_once_with(
            admin,
            7,
            OrderStatus.CANCELLED,
            OrderStatus.REFUNDED,
            {
                "order_number": "ORD-20260504-ABC123",
                "is_override": True,
                "reason": "Duplicate charge",
                "is_admin": True,
            },
        )

    def test_system_actor_is_not_admin(self):
        audit = mock.Mock()

        AuditLogHandler(audit).handle(_status_changed(actor=SYSTEM))

        metadata = audit.record.call_args.args[4]
        assert metadata["is_admin"] is False


class TestCancellationRefundHandler:
    def test_paid_cancellation_is_refunded(self):
        dispatcher = mock.Mock()

        CancellationRefundHandler(dispatcher).handle(
            OrderCancelled(aggregate_id=7, previous_status=OrderStatus.PAID)
        )

        dispatcher.credit_cancellation_refund.assert_called_once_with(7)

    @pytest.mark.parametrize(
        "previous", [OrderStatus.PENDING_PAYMENT, OrderStatus.PAYMENT_FAILED]
    )
    def test_unpaid_cancellation_is_not_refunded(self, previous):
        dispatcher = mock.Mock()

        CancellationRefundHandler(dispatcher).handle(
            OrderCancelled(aggregate_id=7, previous_status=previous)
        )

        dispatcher.credit_cancellation_refund.assert_not_called()


class TestCommissionHandler:
    def test_captures_commission_and_starts_timer(self):
        service = mock.Mock()

        CommissionHandler(service).handle(
            OrderCompleted(aggregate_id=7, cook_id=COOK_ID)
        )

        service.capture_commission.assert_called_once_with(7)
        service.start_withdrawable_timer.assert_called_once_with(7, COOK_ID)

    def test_timer_still_starts_when_capture_fails(self, caplog):
        service = mock.Mock()
        service.capture_commission.side_effect = RuntimeError("ledger locked")

        with caplog.at_level(logging.ERROR):
            CommissionHandler(service).handle(
                OrderCompleted(aggregate_id=7, cook_id=COOK_ID)
            )

        service.start_withdrawable_timer.assert_called_once_with(7, COOK_ID)
        assert _logged(caplog, "order.side_effect_failed")


class TestCommittedTransitionSideEffects:
    def test_failing_side_effect_does_not_undo_the_transition(
        self, engine, make_order, cook_actor, django_capture_on_commit_callbacks
    ):
        from modules.orders import handlers

        order = make_order(status=OrderStatus.PAID)
        failing = mock.Mock()
        failing.notify_status_change.side_effect = RuntimeError("down")

        with mock.patch.object(
            handlers.status_notification_handler, "_collaborator", failing
        ):
            with django_capture_on_commit_callbacks(execute=True):
                engine.transition(order.pk, OrderStatus.CONFIRMED, cook_actor)

        failing.notify_status_change.assert_called_once()
        order.refresh_from_db()
        assert order.status == OrderStatus.CONFIRMED
