"""Client cancellation.

``CancellationWindowGuard`` decides whether a client may still cancel an
order: only while it is ``paid`` or ``confirmed`` and no later than
``created_at + cancellation_window_minutes``.  The window is the value
snapshotted on the order at creation; live tenant settings are never
consulted.

The guard is pure and may run unlocked for display.  The engine runs it
again under the row lock when the cancellation is committed.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Optional

import structlog
from django.utils import timezone

from modules.orders.actors import UserActor
from modules.orders.constants import CLIENT_CANCELLABLE_STATES, OrderStatus
from modules.orders.exceptions import (
    CancellationWindowExpired,
    IllegalTransition,
    OrderNotFound,
)

if TYPE_CHECKING:
    from modules.orders.dtos import TransitionResultDTO
    from modules.orders.engine import StatusTransitionEngine
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class CancellationWindowGuard:
    def deadline(self, order: Order) -> datetime:
        return order.created_at + timedelta(minutes=order.cancellation_window_minutes)

    def is_eligible(self, order: Order, now: Optional[datetime] = None) -> bool:
        if order.status not in CLIENT_CANCELLABLE_STATES:
            return False
        if order.cancellation_window_minutes <= 0:
            return False
        now = now or timezone.now()
        return now <= self.deadline(order)

    def seconds_remaining(self, order: Order, now: Optional[datetime] = None) -> int:
        """Seconds left to cancel, for countdown display; 0 when not eligible."""
        if not self.is_eligible(order, now):
            return 0
        now = now or timezone.now()
        return max(0, int((self.deadline(order) - now).total_seconds()))


cancellation_guard = CancellationWindowGuard()


class OrderCancellationService:
    """Client-initiated cancellation."""

    def __init__(
        self,
        order_repository: Optional[IOrderRepository] = None,
        engine: Optional[StatusTransitionEngine] = None,
        guard: Optional[CancellationWindowGuard] = None,
    ) -> None:
        from modules.orders.engine import StatusTransitionEngine
        from modules.orders.repositories import OrderDjangoRepository

        self._order_repo = order_repository or OrderDjangoRepository()
        self._guard = guard or cancellation_guard
        self._engine = engine or StatusTransitionEngine(
            order_repository=self._order_repo, guard=self._guard
        )

    def cancel_by_client(
        self, order_id: int, actor: UserActor, reason: str = ""
    ) -> TransitionResultDTO:
        """Cancel ``order_id`` on behalf of its client.

        The eligibility check below only produces a specific message for
        the common case; the authoritative check happens under the lock.

        Raises:
            OrderNotFound: no such order, or it belongs to another client.
            IllegalTransition: the order is not ``paid`` or ``confirmed``.
            CancellationWindowExpired: the window has elapsed.
        """
        order = self._order_repo.get_by_id(order_id)
        if order is None or not self._may_act_for_client(order, actor):
            raise OrderNotFound(f"Order {order_id} not found.")

        self._check_cancellable(order)

        def recheck(locked: Order) -> None:
            self._check_cancellable(locked)

        result = self._engine.transition(
            order_id,
            OrderStatus.CANCELLED,
            actor,
            reason=reason or "Cancelled by client",
            precondition=recheck,
        )
        logger.info("order.cancelled_by_client", order_id=order_id, actor=actor.label)
        return result

    def _may_act_for_client(self, order: Order, actor: UserActor) -> bool:
        return actor.is_admin or order.client_id == actor.user_id

    def _check_cancellable(self, order: Order) -> None:
        if order.status not in CLIENT_CANCELLABLE_STATES:
            raise IllegalTransition(
                f"Order cannot be cancelled while {order.get_status_display()}.",
                current_status=order.status,
                attempted_status=OrderStatus.CANCELLED,
            )
        if not self._guard.is_eligible(order):
            raise CancellationWindowExpired(
                "The cancellation window for this order has expired."
            )
