"""Order DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.orders.constants import DeliveryMethod, OrderStatus
from modules.orders.models import Order, OrderStatusTransition

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class CreateOrderSerializer(serializers.Serializer):
    """Validates the order creation request payload."""

    tenant_id = serializers.UUIDField()
    delivery_method = serializers.ChoiceField(
        choices=DeliveryMethod.choices, default=DeliveryMethod.DELIVERY
    )
    grand_total = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=0
    )
    cook_id = serializers.IntegerField(required=False, allow_null=True, default=None)
    payment_provider = serializers.CharField(
        required=False, default="", allow_blank=True, max_length=30
    )
    payment_phone = serializers.CharField(
        required=False, default="", allow_blank=True, max_length=30
    )


class StatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    override = serializers.BooleanField(required=False, default=False)
    reason = serializers.CharField(required=False, default="", allow_blank=True)


class CancelOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, default="", allow_blank=True)


class RetryPaymentSerializer(serializers.Serializer):
    payment_provider = serializers.CharField(
        required=False, default="", allow_blank=True, max_length=30
    )
    payment_phone = serializers.CharField(
        required=False, default="", allow_blank=True, max_length=30
    )


class MassUpdateStatusSerializer(serializers.Serializer):
    """Bulk transition request.

    ``target_status`` defaults to the next status shared by the batch.
    """

    order_ids = serializers.ListField(
        child=serializers.IntegerField(min_value=1), allow_empty=True
    )
    target_status = serializers.ChoiceField(
        choices=OrderStatus.choices, required=False
    )
    tenant_id = serializers.UUIDField(required=False, allow_null=True, default=None)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class OrderStatusTransitionSerializer(serializers.ModelSerializer):
    """Read serializer for ledger entries."""

    actor = serializers.CharField(source="actor_label", read_only=True)

    class Meta:
        model = OrderStatusTransition
        fields = [
            "id",
            "previous_status",
            "new_status",
            "triggered_by_id",
            "actor",
            "is_admin_override",
            "reason",
            "created_at",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Read serializer for orders with their transition history."""

    transitions = OrderStatusTransitionSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "tenant_id",
            "client_id",
            "cook_id",
            "status",
            "delivery_method",
            "grand_total",
            "payment_provider",
            "cancellation_window_minutes",
            "retry_count",
            "payment_retry_expires_at",
            "created_at",
            "updated_at",
            "paid_at",
            "confirmed_at",
            "preparing_at",
            "ready_at",
            "delivered_at",
            "picked_up_at",
            "completed_at",
            "cancelled_at",
            "refunded_at",
            "transitions",
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for order list (no nested relations)."""

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "tenant_id",
            "client_id",
            "status",
            "delivery_method",
            "grand_total",
            "created_at",
        ]
        read_only_fields = fields
