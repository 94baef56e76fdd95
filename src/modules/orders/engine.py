"""Status transition engine.

The only code allowed to change ``Order.status``.  A transition:

1. validates the request (known status, actor present, override rules);
2. locks the order row and reloads it (``with_order_lock``);
3. re-validates against the reloaded status, so a duplicate request is
   rejected as illegal from the already-updated state;
4. persists the status with its timestamp and appends one ledger entry;
5. queues domain events that are published only after commit.

Side effects (notifications, refunds, commission) run from the event
handlers, outside the lock and outside the transaction.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Callable, Optional

import structlog
from django.utils import timezone

from modules.orders.actors import Actor, SystemActor, UserActor
from modules.orders.cancellation import CancellationWindowGuard, cancellation_guard
from modules.orders.constants import CLIENT_CANCELLABLE_STATES, OrderStatus
from modules.orders.dtos import TransitionResultDTO
from modules.orders.events import OrderCancelled, OrderCompleted, OrderStatusChanged
from modules.orders.exceptions import (
    ActorRequired,
    CancellationWindowExpired,
    IllegalTransition,
    InvalidStatus,
    OverrideNotPermitted,
    OverrideReasonRequired,
)
from modules.orders.transitions import TransitionValidator, transition_validator

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)

Precondition = Callable[["Order"], None]


class StatusTransitionEngine:
    """Validates and executes a single status change for one order.

    Receives its repository via constructor injection (DIP).
    """

    def __init__(
        self,
        order_repository: Optional[IOrderRepository] = None,
        validator: Optional[TransitionValidator] = None,
        guard: Optional[CancellationWindowGuard] = None,
    ) -> None:
        if order_repository is None:
            from modules.orders.repositories import OrderDjangoRepository

            order_repository = OrderDjangoRepository()
        self._order_repo = order_repository
        self._validator = validator or transition_validator
        self._guard = guard or cancellation_guard

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def transition(
        self,
        order_id: int,
        target_status: str,
        actor: Optional[Actor],
        is_override: bool = False,
        reason: Optional[str] = None,
        precondition: Optional[Precondition] = None,
    ) -> TransitionResultDTO:
        """Move ``order_id`` to ``target_status``.

        ``precondition`` runs against the locked, reloaded order before
        the adjacency check and may raise any ``OrderError`` to veto.

        Raises:
            InvalidStatus: ``target_status`` is not a known status.
            ActorRequired: no actor given.
            OverrideReasonRequired: override without a reason.
            OverrideNotPermitted: override by a non-admin user.
            OrderNotFound: the order does not exist.
            ConcurrentModification: the row lock wait timed out.
            IllegalTransition: the current status does not permit the target,
                or the actor may not cancel the order without an override.
            CancellationWindowExpired: a non-override cancellation of a paid
                order after its window.
        """
        checked_actor = self._validate_request(
            target_status, actor, is_override, reason
        )

        def locked(order: Order) -> TransitionResultDTO:
            if precondition is not None:
                precondition(order)
            return self.apply(order, target_status, checked_actor, is_override, reason)

        return self._order_repo.with_order_lock(order_id, locked)

    def apply(
        self,
        order: Order,
        target_status: str,
        actor: Actor,
        is_override: bool = False,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> TransitionResultDTO:
        """Apply a transition to an order the caller has already locked.

        Used by ``transition`` and by services that must do more work
        inside the same critical section (e.g. the payment retry timer).
        """
        self._validate_request(target_status, actor, is_override, reason)
        previous_status = order.status
        log = logger.bind(
            order_id=order.pk,
            from_status=previous_status,
            to_status=target_status,
            actor=actor.label,
            is_override=is_override,
        )

        now = now or timezone.now()
        try:
            self._validator.check(order, target_status, is_override)
            self._validator.check_actor(order, target_status, actor, is_override)
            self._check_cancellation_window(order, target_status, is_override, now)
        except (IllegalTransition, CancellationWindowExpired) as exc:
            log.warning("order.transition_rejected", code=exc.code)
            raise

        changed = order.apply_status(target_status, now)
        reason_text = (reason or "").strip()
        self._record_events(order, previous_status, actor, is_override, reason_text)
        self._order_repo.save(order, update_fields=changed)
        record = self._order_repo.add_transition(
            order,
            previous_status=previous_status,
            new_status=target_status,
            actor=actor,
            is_override=is_override,
            reason=reason_text,
        )

        log.info("order.transition_applied", transition_id=str(record.id))
        return TransitionResultDTO(
            order_id=order.pk,
            order_number=order.order_number,
            previous_status=previous_status,
            new_status=target_status,
            is_override=is_override,
            transition_id=record.id,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _validate_request(
        self,
        target_status: str,
        actor: Optional[Actor],
        is_override: bool,
        reason: Optional[str],
    ) -> Actor:
        if target_status not in OrderStatus.values:
            raise InvalidStatus(f"Unknown status: {target_status}.")
        if actor is None:
            raise ActorRequired("A transition needs an actor.")
        if not is_override:
            return actor
        if not (reason or "").strip():
            raise OverrideReasonRequired("An override transition requires a reason.")
        if isinstance(actor, UserActor) and not actor.is_admin:
            raise OverrideNotPermitted("Only administrators may override a status.")
        if not isinstance(actor, (UserActor, SystemActor)):
            raise OverrideNotPermitted("Unknown actor.")
        return actor

    def _check_cancellation_window(
        self, order: Order, target_status: str, is_override: bool, now: datetime
    ) -> None:
        if is_override or target_status != OrderStatus.CANCELLED:
            return
        if order.status not in CLIENT_CANCELLABLE_STATES:
            return
        if not self._guard.is_eligible(order, now):
            raise CancellationWindowExpired(
                "The cancellation window for this order has expired."
            )

    def _record_events(
        self,
        order: Order,
        previous_status: str,
        actor: Actor,
        is_override: bool,
        reason: str,
    ) -> None:
        order.add_domain_event(
            OrderStatusChanged(
                aggregate_id=order.pk,
                order_number=order.order_number,
                tenant_id=order.tenant_id,
                client_id=order.client_id,
                cook_id=order.cook_id,
                previous_status=previous_status,
                new_status=order.status,
                actor=actor,
                is_override=is_override,
                reason=reason,
            )
        )
        if order.status == OrderStatus.CANCELLED:
            order.add_domain_event(
                OrderCancelled(
                    aggregate_id=order.pk,
                    order_number=order.order_number,
                    previous_status=previous_status,
                    client_id=order.client_id,
                    actor=actor,
                    reason=reason,
                )
            )
        elif order.status == OrderStatus.COMPLETED:
            order.add_domain_event(
                OrderCompleted(
                    aggregate_id=order.pk,
                    order_number=order.order_number,
                    tenant_id=order.tenant_id,
                    cook_id=order.cook_id,
                )
            )
