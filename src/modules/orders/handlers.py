"""Event handlers for Orders domain events.

Handlers run after the transition committed.  Every collaborator call is
best-effort: failures are logged as ``order.side_effect_failed`` and never
reach the caller that triggered the transition.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

import structlog

from modules.orders.actors import UserActor, actor_user_id
from modules.orders.constants import UNPAID_STATES
from modules.orders.events import OrderCancelled, OrderCompleted, OrderStatusChanged
from modules.orders.ports import get_collaborator
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


def _run_side_effect(name: str, order_id: int, call: Callable[[], None]) -> None:
    try:
        call()
    except Exception as exc:
        logger.exception(
            "order.side_effect_failed",
            side_effect=name,
            order_id=order_id,
            error=str(exc),
        )


class _CollaboratorHandler:
    collaborator_name = ""

    def __init__(self, collaborator: Optional[Any] = None) -> None:
        self._collaborator = collaborator

    @property
    def collaborator(self) -> Any:
        if self._collaborator is None:
            self._collaborator = get_collaborator(self.collaborator_name)
        return self._collaborator


class StatusNotificationHandler(
    _CollaboratorHandler, IEventHandler[OrderStatusChanged]
):
    """Tells the client and the cook about the new status.

    The acting user is not notified of their own change; system-authored
    changes notify everyone involved.
    """

    collaborator_name = "status_notifier"

    def handle(self, event: OrderStatusChanged) -> None:
        acting_user = actor_user_id(event.actor)
        recipients = [
            user_id
            for user_id in (event.client_id, event.cook_id)
            if user_id is not None and user_id != acting_user
        ]
        if not recipients:
            return
        _run_side_effect(
            "notification",
            event.aggregate_id,
            lambda: self.collaborator.notify_status_change(
                event.aggregate_id,
                event.previous_status,
                event.new_status,
                recipients,
            ),
        )


class AuditLogHandler(_CollaboratorHandler, IEventHandler[OrderStatusChanged]):
    collaborator_name = "audit_log"

    def handle(self, event: OrderStatusChanged) -> None:
        metadata = {
            "order_number": event.order_number,
            "is_override": event.is_override,
            "reason": event.reason,
            "is_admin": isinstance(event.actor, UserActor) and event.actor.is_admin,
        }
        _run_side_effect(
            "audit_log",
            event.aggregate_id,
            lambda: self.collaborator.record(
                event.actor,
                event.aggregate_id,
                event.previous_status,
                event.new_status,
                metadata,
            ),
        )


class CancellationRefundHandler(_CollaboratorHandler, IEventHandler[OrderCancelled]):
    """Credits the client's wallet when a paid order is cancelled."""

    collaborator_name = "refund_dispatcher"

    def handle(self, event: OrderCancelled) -> None:
        if event.previous_status in UNPAID_STATES:
            return
        _run_side_effect(
            "refund",
            event.aggregate_id,
            lambda: self.collaborator.credit_cancellation_refund(event.aggregate_id),
        )


class CommissionHandler(_CollaboratorHandler, IEventHandler[OrderCompleted]):
    collaborator_name = "commission_service"

    def handle(self, event: OrderCompleted) -> None:
        _run_side_effect(
            "commission",
            event.aggregate_id,
            lambda: self.collaborator.capture_commission(event.aggregate_id),
        )
        _run_side_effect(
            "withdrawable_timer",
            event.aggregate_id,
            lambda: self.collaborator.start_withdrawable_timer(
                event.aggregate_id, event.cook_id
            ),
        )


status_notification_handler = StatusNotificationHandler()
audit_log_handler = AuditLogHandler()
cancellation_refund_handler = CancellationRefundHandler()
commission_handler = CommissionHandler()
