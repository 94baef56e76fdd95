"""Order state machine rules.

``TransitionValidator`` answers whether ``current -> target`` is legal for
a given order.  It never touches the database and is safe to call
unlocked for display purposes; the engine calls it again under the row
lock before mutating anything.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

from modules.orders.actors import Actor, SystemActor, UserActor
from modules.orders.constants import (
    CLIENT_CANCELLABLE_STATES,
    FORWARD_CHAIN,
    METHOD_ONLY_STATUSES,
    METHOD_PATHS,
    TERMINAL_STATES,
    UNPAID_STATES,
    VALID_TRANSITIONS,
    DeliveryMethod,
    OrderStatus,
)
from modules.orders.exceptions import IllegalTransition

if TYPE_CHECKING:
    from modules.orders.models import Order


def _forward_status(status: str, delivery_method: str) -> Optional[str]:
    if status == OrderStatus.PAYMENT_FAILED:
        return OrderStatus.PAID
    if status in FORWARD_CHAIN:
        index = FORWARD_CHAIN.index(status)
        if index + 1 < len(FORWARD_CHAIN):
            return FORWARD_CHAIN[index + 1]
        return METHOD_PATHS[delivery_method][0]
    path = METHOD_PATHS.get(delivery_method, ())
    if status in path:
        index = path.index(status)
        if index + 1 < len(path):
            return path[index + 1]
    return None


def _crosses_delivery_path(delivery_method: str, target: str) -> bool:
    for method, statuses in METHOD_ONLY_STATUSES.items():
        if method != delivery_method and target in statuses:
            return True
    return False


class TransitionValidator:
    """Adjacency rules plus the delivery-method and override constraints."""

    def is_allowed(
        self,
        current: str,
        target: str,
        delivery_method: str = DeliveryMethod.DELIVERY,
        is_override: bool = False,
    ) -> bool:
        if current == target:
            return False
        if _crosses_delivery_path(delivery_method, target):
            return False
        if is_override:
            if current in TERMINAL_STATES:
                return target == OrderStatus.REFUNDED
            return True
        return target in VALID_TRANSITIONS.get(current, set())

    def check(self, order: Order, target: str, is_override: bool = False) -> None:
        """Raise ``IllegalTransition`` unless ``order`` may move to ``target``."""
        if self.is_allowed(order.status, target, order.delivery_method, is_override):
            return
        raise IllegalTransition(
            f"Illegal transition from {order.status} to {target}.",
            current_status=order.status,
            attempted_status=target,
            next_valid_status=self.next_status(order),
        )

    def may_cancel(
        self, order: Order, actor: Actor, is_override: bool = False
    ) -> bool:
        """Whether ``actor`` may take a cancellation edge without override.

        ``paid``/``confirmed`` orders are cancelled by their client or the
        system; unpaid orders only by the system (retry exhaustion or
        timeout).  Everyone else needs an admin override.
        """
        if is_override:
            return True
        match actor:
            case SystemActor():
                return True
            case UserActor(user_id=user_id):
                if order.status in CLIENT_CANCELLABLE_STATES:
                    return user_id == order.client_id
                return order.status not in UNPAID_STATES
        return False

    def check_actor(
        self, order: Order, target: str, actor: Actor, is_override: bool = False
    ) -> None:
        """Raise ``IllegalTransition`` when ``actor`` may not take this edge."""
        if target != OrderStatus.CANCELLED:
            return
        if self.may_cancel(order, actor, is_override):
            return
        if order.status in UNPAID_STATES:
            message = "Unpaid orders are cancelled only by the payment timer."
        else:
            message = "Only the client may cancel this order."
        raise IllegalTransition(
            message,
            current_status=order.status,
            attempted_status=target,
            next_valid_status=self.next_status(order),
        )

    def next_status(self, order: Order) -> Optional[str]:
        """The single forward status on the happy path, or ``None``."""
        return _forward_status(order.status, order.delivery_method)

    def valid_next_statuses(self, order: Order, is_admin: bool = False) -> List[str]:
        statuses: List[str] = []
        forward = self.next_status(order)
        if forward:
            statuses.append(forward)
        if OrderStatus.CANCELLED in VALID_TRANSITIONS.get(order.status, set()):
            statuses.append(OrderStatus.CANCELLED)
        if is_admin and order.status == OrderStatus.CANCELLED:
            statuses.append(OrderStatus.REFUNDED)
        return statuses


transition_validator = TransitionValidator()
