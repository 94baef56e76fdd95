"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.

Concurrency control on status updates uses ``select_for_update()`` inside
``with_order_lock``; the wait for the row lock is bounded by
``ORDER_LOCK_TIMEOUT_SECONDS`` so a blocked caller gets a retryable
``ConcurrentModification`` instead of hanging.

Domain events collected on the aggregate are handed to the event bus
through ``transaction.on_commit``: subscribers never see a state change
that was rolled back.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

import structlog
from django.conf import settings
from django.db import OperationalError, connection, transaction
from django.db.models import Q, QuerySet
from django.utils import timezone

from modules.orders.actors import Actor, actor_user_id
from modules.orders.constants import UNPAID_STATES
from modules.orders.exceptions import ConcurrentModification, OrderNotFound
from modules.orders.models import Order, OrderStatusTransition
from modules.orders.repositories.interfaces import IOrderRepository
from shared.infrastructure.bus import event_bus

logger = structlog.get_logger(__name__)

R = TypeVar("R")


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order.

        ``data`` keys: ``tenant``, ``client`` (required),
        ``cancellation_window_minutes`` (required snapshot), ``cook``,
        ``delivery_method``, ``grand_total``, ``payment_provider``,
        ``payment_phone`` (optional).
        """
        order = Order(**data)
        order.save()
        logger.info(
            "order.created",
            order_id=order.pk,
            order_number=order.order_number,
            tenant_id=str(order.tenant_id),
        )
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def queryset(self) -> QuerySet:
        return Order.objects.select_related("tenant", "client", "cook")

    def get_by_id(self, id: Any) -> Optional[Order]:
        """Retrieve an order, or ``None`` for non-existent or invalid IDs."""
        try:
            return self.queryset().filter(pk=id).first()
        except (ValueError, TypeError):
            return None

    def get_by_ids(
        self, ids: Iterable[int], tenant_id: Optional[Any] = None
    ) -> Dict[int, Order]:
        queryset = self.queryset().filter(pk__in=list(ids))
        if tenant_id is not None:
            queryset = queryset.filter(tenant_id=tenant_id)
        return {order.pk: order for order in queryset}

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        """Orders, newest first, with optional ORM lookups as filters.

        Supported filter keys include ``status``, ``delivery_method``,
        ``tenant_id``, ``client_id`` and ``cook_id``.
        """
        queryset = self.queryset()
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    # ------------------------------------------------------------------
    # Save (IRepository contract)
    # ------------------------------------------------------------------

    def save(self, entity: Order, update_fields: Optional[List[str]] = None) -> Order:
        """Persist an order and publish its events once the transaction commits."""
        entity.save(update_fields=update_fields)

        events = entity.pull_domain_events()
        if events:
            transaction.on_commit(lambda: event_bus.publish_all(events))

        logger.debug("order.saved", order_id=entity.pk, event_count=len(events))
        return entity

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    def with_order_lock(self, order_id: int, fn: Callable[[Order], R]) -> R:
        """Lock the order row, reload it, and run ``fn`` in one transaction.

        The lock is released when the transaction commits or rolls back.
        """
        with transaction.atomic():
            try:
                self._apply_lock_timeout()
                order = self._locking_queryset(order_id).first()
            except OperationalError as exc:
                logger.warning("order.lock_timeout", order_id=order_id, error=str(exc))
                raise ConcurrentModification(
                    f"Order {order_id} is being modified by another request. "
                    "Please try again."
                ) from exc
            if order is None:
                raise OrderNotFound(f"Order {order_id} not found.")
            return fn(order)

    def _locking_queryset(self, order_id: int) -> QuerySet:
        # Locks the order row only: no joined relations.
        return Order.objects.select_for_update().filter(pk=order_id)

    def _apply_lock_timeout(self) -> None:
        timeout_ms = int(settings.ORDER_LOCK_TIMEOUT_SECONDS * 1000)
        if connection.vendor == "postgresql":
            with connection.cursor() as cursor:
                cursor.execute(f"SET LOCAL lock_timeout = '{timeout_ms}ms'")
        elif connection.vendor == "mysql":
            seconds = max(1, timeout_ms // 1000)
            with connection.cursor() as cursor:
                cursor.execute(f"SET SESSION innodb_lock_wait_timeout = {seconds}")

    # ------------------------------------------------------------------
    # Transition ledger
    # ------------------------------------------------------------------

    def add_transition(
        self,
        order: Order,
        previous_status: str,
        new_status: str,
        actor: Actor,
        is_override: bool = False,
        reason: str = "",
    ) -> OrderStatusTransition:
        return OrderStatusTransition.objects.create(
            order=order,
            previous_status=previous_status,
            new_status=new_status,
            triggered_by_id=actor_user_id(actor),
            is_admin_override=is_override,
            reason=reason or "",
        )

    def transitions_for(self, order_id: int) -> List[OrderStatusTransition]:
        return list(
            OrderStatusTransition.objects.filter(order_id=order_id)
            .select_related("triggered_by")
            .order_by("created_at", "id")
        )

    # ------------------------------------------------------------------
    # Payment retry queries
    # ------------------------------------------------------------------

    def set_retry_expiry_if_unset(self, order_id: int, expires_at: datetime) -> bool:
        updated = Order.objects.filter(
            pk=order_id, payment_retry_expires_at__isnull=True
        ).update(payment_retry_expires_at=expires_at, updated_at=timezone.now())
        return updated == 1

    def _expired_unpaid(self, now: datetime, window_minutes: int) -> QuerySet:
        fallback_cutoff = now - timedelta(minutes=window_minutes)
        return Order.objects.filter(status__in=UNPAID_STATES).filter(
            Q(payment_retry_expires_at__lt=now)
            | Q(
                payment_retry_expires_at__isnull=True,
                created_at__lt=fallback_cutoff,
            )
        )

    def find_expired_unpaid_ids(
        self, now: datetime, window_minutes: int
    ) -> List[int]:
        return list(
            self._expired_unpaid(now, window_minutes)
            .order_by("pk")
            .values_list("pk", flat=True)
        )

    def count_expired_unpaid(self, now: datetime) -> int:
        return self._expired_unpaid(
            now, settings.ORDER_PAYMENT_RETRY_WINDOW_MINUTES
        ).count()
