"""Order service layer (Use Cases).

Order creation and the read side.  Status changes are not made here:
they go through ``StatusTransitionEngine`` and the services built on it
(cancellation, payment retry, mass update).

Business rules enforced:
- The tenant must exist and be active.
- The tenant's cancellation window is copied onto the order at creation
  and never read again for that order.
- The payment retry window is initialized once, at creation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

import structlog
from django.db import transaction

from modules.orders.dtos import TimelineEntryDTO
from modules.orders.exceptions import InactiveTenant, OrderNotFound, TenantNotFound
from modules.tenants.models import Tenant

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from modules.orders.dtos import CreateOrderDTO
    from modules.orders.models import Order, OrderStatusTransition
    from modules.orders.payment_retry import PaymentRetryTimer
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class OrderService:
    """Application service for Order use-cases.

    Receives collaborators via constructor injection (DIP).
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        retry_timer: Optional[PaymentRetryTimer] = None,
    ) -> None:
        from modules.orders.payment_retry import PaymentRetryTimer

        self._order_repo = order_repository
        self._retry_timer = retry_timer or PaymentRetryTimer(
            order_repository=order_repository
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def create_order(self, dto: CreateOrderDTO, client: Any) -> Order:
        """Create a new order in ``pending_payment``.

        Raises:
            TenantNotFound: tenant does not exist.
            InactiveTenant: tenant is inactive.
        """
        log = logger.bind(tenant_id=str(dto.tenant_id), client_id=client.pk)
        log.info("order.creation_started")

        tenant = Tenant.objects.filter(pk=dto.tenant_id).first()
        if tenant is None:
            raise TenantNotFound(f"Tenant {dto.tenant_id} not found.")
        if not tenant.is_active:
            raise InactiveTenant(f"Tenant {tenant.slug} is not accepting orders.")

        order = self._order_repo.create(
            {
                "tenant": tenant,
                "client": client,
                "cook_id": dto.cook_id or tenant.cook_id,
                "delivery_method": dto.delivery_method,
                "grand_total": dto.grand_total,
                "payment_provider": dto.payment_provider,
                "payment_phone": dto.payment_phone,
                "cancellation_window_minutes": tenant.effective_cancellation_window(),
            }
        )
        self._retry_timer.init_retry_window(order)

        log.info(
            "order.cancellation_window_snapshotted",
            order_id=order.pk,
            minutes=order.cancellation_window_minutes,
        )
        return order

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: Any) -> Order:
        """Retrieve a single order by ID.

        Raises:
            OrderNotFound: if the order does not exist.
        """
        order = self._order_repo.get_by_id(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def list_orders(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        """Return orders, optionally filtered."""
        return self._order_repo.list(filters)

    def get_transitions(self, order_id: int) -> List[OrderStatusTransition]:
        return self._order_repo.transitions_for(order_id)

    def get_transition_timeline(self, order: Order) -> List[TimelineEntryDTO]:
        """Creation entry followed by every ledger entry, oldest first."""
        timeline = [
            TimelineEntryDTO(
                status="created",
                timestamp=order.created_at,
                actor=order.client.get_username(),
                reason="Order placed",
            )
        ]
        for record in self._order_repo.transitions_for(order.pk):
            timeline.append(
                TimelineEntryDTO(
                    status=record.new_status,
                    timestamp=record.created_at,
                    actor=record.actor_label(),
                    is_admin_override=record.is_admin_override,
                    reason=record.reason,
                )
            )
        return timeline
