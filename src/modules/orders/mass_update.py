"""Bulk status updates.

A bulk action applies one target status to a batch of orders.  Each order
goes through the engine on its own (own lock, own transaction), so one
order rejected by a race never blocks or rolls back the others.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable, List, Optional

import structlog

from modules.orders.constants import OrderStatus
from modules.orders.dtos import MassUpdateFailureDTO, MassUpdateResultDTO, SameStatusDTO
from modules.orders.exceptions import (
    EmptyBatch,
    IllegalTransition,
    InvalidStatus,
    MixedDeliveryMethodBatch,
    MixedStatusBatch,
    OrderError,
    OrderNotFound,
)
from modules.orders.transitions import TransitionValidator, transition_validator

if TYPE_CHECKING:
    from modules.orders.actors import Actor
    from modules.orders.engine import StatusTransitionEngine
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)

NOT_FOUND_PLACEHOLDER = "N/A"


def _unique(order_ids: Iterable[int]) -> List[int]:
    seen: set[int] = set()
    unique: List[int] = []
    for order_id in order_ids:
        if order_id not in seen:
            seen.add(order_id)
            unique.append(order_id)
    return unique


class MassTransitionCoordinator:
    def __init__(
        self,
        order_repository: Optional[IOrderRepository] = None,
        engine: Optional[StatusTransitionEngine] = None,
        validator: Optional[TransitionValidator] = None,
    ) -> None:
        from modules.orders.engine import StatusTransitionEngine
        from modules.orders.repositories import OrderDjangoRepository

        self._order_repo = order_repository or OrderDjangoRepository()
        self._validator = validator or transition_validator
        self._engine = engine or StatusTransitionEngine(
            order_repository=self._order_repo, validator=self._validator
        )

    def validate_same_status(
        self, order_ids: Iterable[int], tenant_id: Optional[Any] = None
    ) -> SameStatusDTO:
        """Check that the batch shares one status (and one method when ready).

        Raises:
            EmptyBatch: no ids given.
            OrderNotFound: none of the ids match an order.
            MixedStatusBatch: the orders are in different statuses.
            MixedDeliveryMethodBatch: ready orders mix delivery and pickup.
            IllegalTransition: the shared status has no forward status.
        """
        ids = _unique(order_ids)
        if not ids:
            raise EmptyBatch("No orders selected.")
        orders = list(self._order_repo.get_by_ids(ids, tenant_id).values())
        if not orders:
            raise OrderNotFound("No valid orders found for the selected IDs.")

        statuses = {order.status for order in orders}
        if len(statuses) > 1:
            raise MixedStatusBatch(
                "All selected orders must have the same status "
                f"(found: {', '.join(sorted(statuses))})."
            )
        current_status = statuses.pop()

        if current_status == OrderStatus.READY:
            methods = {order.delivery_method for order in orders}
            if len(methods) > 1:
                raise MixedDeliveryMethodBatch(
                    "Selected ready orders have mixed delivery methods; "
                    "update delivery and pickup orders separately."
                )

        next_status = self._validator.next_status(orders[0])
        if next_status is None:
            raise IllegalTransition(
                f"Orders in status {current_status} have no next status.",
                current_status=current_status,
            )
        return SameStatusDTO(
            current_status=current_status,
            next_status=next_status,
            order_count=len(orders),
        )

    def mass_update_status(
        self,
        order_ids: Iterable[int],
        target_status: str,
        actor: Actor,
        tenant_id: Optional[Any] = None,
    ) -> MassUpdateResultDTO:
        """Transition every order independently and report per-order outcomes."""
        if target_status not in OrderStatus.values:
            raise InvalidStatus(f"Unknown status: {target_status}.")

        ids = _unique(order_ids)
        orders = self._order_repo.get_by_ids(ids, tenant_id)
        failures: List[MassUpdateFailureDTO] = []
        success_count = 0

        for order_id in ids:
            order = orders.get(order_id)
            if order is None:
                failures.append(
                    MassUpdateFailureDTO(
                        order_id=order_id,
                        order_number=NOT_FOUND_PLACEHOLDER,
                        reason="Order not found.",
                    )
                )
                continue
            try:
                self._engine.transition(order_id, target_status, actor)
            except OrderError as exc:
                failures.append(
                    MassUpdateFailureDTO(
                        order_id=order_id,
                        order_number=order.order_number,
                        reason=str(exc),
                    )
                )
                continue
            success_count += 1

        logger.info(
            "order.mass_update_completed",
            target_status=target_status,
            total=len(ids),
            success_count=success_count,
            fail_count=len(failures),
            actor=actor.label,
        )
        return MassUpdateResultDTO(
            total=len(ids),
            success_count=success_count,
            fail_count=len(failures),
            target_status=target_status,
            failures=failures,
        )

    @staticmethod
    def bulk_action_label(target_status: str, count: int) -> str:
        """Button label for a bulk action, e.g. ``Mark 5 orders as Confirmed``."""
        label = OrderStatus(target_status).label
        noun = "order" if count == 1 else "orders"
        return f"Mark {count} {noun} as {label}"
