"""Order and OrderStatusTransition models.

Business rules implemented:
- ``status`` is a cache of the latest entry in the transition ledger and
  is only changed through ``StatusTransitionEngine`` (see ``engine.py``).
- Status-specific timestamps are set once, the first time the status is
  entered (``apply_status``).
- ``cancellation_window_minutes`` is snapshotted from the tenant when the
  order is created and never recomputed.
- ``payment_retry_expires_at`` is set once (``PaymentRetryTimer``).
- Order number auto-generated as a human-readable, immutable identifier.
- ``OrderStatusTransition`` rows are append-only.
"""

from __future__ import annotations

import secrets
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from django.conf import settings
from django.db import models
from django.utils import timezone

from modules.core.models import AppendOnlyModel
from modules.orders.actors import SYSTEM, Actor, UserActor
from modules.orders.constants import (
    CLIENT_CANCELLABLE_STATES,
    ORDER_NUMBER_MAX_RETRIES,
    STATUS_TIMESTAMP_FIELDS,
    TERMINAL_STATES,
    UNPAID_STATES,
    DeliveryMethod,
    OrderStatus,
)
from shared.domain.events import DomainEventMixin


class Order(DomainEventMixin, models.Model):
    """Order aggregate root.

    ``id`` is a numeric auto-increment key used by every engine entry
    point; ``order_number`` (format ``ORD-YYYYMMDD-XXXXXX``) is what
    operators and clients see.
    """

    id: models.BigAutoField = models.BigAutoField(primary_key=True)
    order_number: models.CharField = models.CharField(
        max_length=20, unique=True, editable=False
    )
    tenant: models.ForeignKey = models.ForeignKey(
        "tenants.Tenant",
        on_delete=models.PROTECT,
        related_name="orders",
    )
    client: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders",
    )
    cook: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="cook_orders",
        null=True,
        blank=True,
    )
    status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING_PAYMENT,
    )
    delivery_method: models.CharField = models.CharField(
        max_length=10,
        choices=DeliveryMethod.choices,
        default=DeliveryMethod.DELIVERY,
    )
    grand_total: models.DecimalField = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    payment_provider: models.CharField = models.CharField(
        max_length=30, blank=True, default=""
    )
    payment_phone: models.CharField = models.CharField(
        max_length=30, blank=True, default=""
    )

    # Snapshots taken at creation
    cancellation_window_minutes: models.PositiveIntegerField = (
        models.PositiveIntegerField(editable=False)
    )

    # Payment retry bookkeeping
    retry_count: models.PositiveSmallIntegerField = models.PositiveSmallIntegerField(
        default=0
    )
    payment_retry_expires_at: models.DateTimeField = models.DateTimeField(
        null=True, blank=True
    )

    # Timestamps
    created_at: models.DateTimeField = models.DateTimeField(
        default=timezone.now, editable=False
    )
    updated_at: models.DateTimeField = models.DateTimeField(auto_now=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)
    preparing_at = models.DateTimeField(null=True, blank=True)
    ready_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    picked_up_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["status"], name="orders_status_idx"),
            models.Index(fields=["-created_at"], name="orders_created_idx"),
            models.Index(
                fields=["status", "payment_retry_expires_at"],
                name="orders_retry_sweep_idx",
            ),
        ]

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        """Return ``True`` if the order is in a terminal state."""
        return self.status in TERMINAL_STATES

    @property
    def is_unpaid(self) -> bool:
        return self.status in UNPAID_STATES

    @property
    def is_client_cancellable_status(self) -> bool:
        return self.status in CLIENT_CANCELLABLE_STATES

    def apply_status(self, new_status: str, at: datetime) -> list[str]:
        """Set ``status`` and stamp the status timestamp if not yet set.

        Returns the changed field names for ``save(update_fields=...)``.
        Only the transition engine calls this, under the order row lock.
        """
        self.status = new_status
        changed = ["status"]
        field = STATUS_TIMESTAMP_FIELDS.get(new_status)
        if field and getattr(self, field) is None:
            setattr(self, field, at)
            changed.append(field)
        return changed

    # ------------------------------------------------------------------
    # Order number generation
    # ------------------------------------------------------------------

    @staticmethod
    def generate_order_number() -> str:
        """Generate a human-readable order number: ``ORD-YYYYMMDD-XXXXXX``."""
        now = timezone.now()
        suffix = secrets.token_hex(3).upper()
        return f"ORD-{now:%Y%m%d}-{suffix}"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self.order_number:
            for attempt in range(ORDER_NUMBER_MAX_RETRIES):
                candidate = self.generate_order_number()
                if not Order.objects.filter(order_number=candidate).exists():
                    self.order_number = candidate
                    break
            else:
                raise RuntimeError(
                    f"Failed to generate unique order_number after "
                    f"{ORDER_NUMBER_MAX_RETRIES} attempts"
                )
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "updated_at" not in update_fields:
            kwargs["update_fields"] = list(update_fields) + ["updated_at"]
        super().save(*args, **kwargs)

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def __str__(self) -> str:
        return f"{self.order_number} ({self.status})"


class OrderStatusTransition(AppendOnlyModel):
    """Append-only ledger entry for one status change.

    ``triggered_by`` is nullable: ``None`` means the change was made by
    the system (retry sweep, payment callback, forced cancellation).
    ``reason`` is mandatory for overrides and system cancellations and
    optional otherwise.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="transitions",
    )
    previous_status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
    )
    new_status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
    )
    triggered_by: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="+",
    )
    is_admin_override: models.BooleanField = models.BooleanField(default=False)
    reason: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "order_status_transitions"
        ordering = ["created_at"]
        indexes = [
            models.Index(
                fields=["order", "created_at"],
                name="ost_order_created_idx",
            ),
        ]

    @property
    def actor(self) -> Actor:
        if self.triggered_by_id is None:
            return SYSTEM
        return UserActor(user_id=self.triggered_by_id)

    def actor_label(self) -> str:
        if self.triggered_by_id is None:
            return "System"
        user: Optional[Any] = self.triggered_by
        return user.get_username() if user is not None else "System"

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def __str__(self) -> str:
        return f"{self.order_id} : {self.previous_status} -> {self.new_status}"
