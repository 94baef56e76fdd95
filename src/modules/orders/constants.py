"""Order domain constants.

Defines status and delivery-method choices, the adjacency table of the
order state machine and the status groups the guards and sweeps rely on.
"""

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING_PAYMENT = "pending_payment", "Pending Payment"
    PAYMENT_FAILED = "payment_failed", "Payment Failed"
    PAID = "paid", "Paid"
    CONFIRMED = "confirmed", "Confirmed"
    PREPARING = "preparing", "Preparing"
    READY = "ready", "Ready"
    OUT_FOR_DELIVERY = "out_for_delivery", "Out for Delivery"
    READY_FOR_PICKUP = "ready_for_pickup", "Ready for Pickup"
    DELIVERED = "delivered", "Delivered"
    PICKED_UP = "picked_up", "Picked Up"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"
    REFUNDED = "refunded", "Refunded"


class DeliveryMethod(models.TextChoices):
    DELIVERY = "delivery", "Delivery"
    PICKUP = "pickup", "Pickup"


# Non-override edges.  ``refunded`` is reachable only through an override.
VALID_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.PENDING_PAYMENT: {
        OrderStatus.PAID,
        OrderStatus.PAYMENT_FAILED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.PAYMENT_FAILED: {
        OrderStatus.PENDING_PAYMENT,
        OrderStatus.PAID,
        OrderStatus.CANCELLED,
    },
    OrderStatus.PAID: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PREPARING, OrderStatus.CANCELLED},
    OrderStatus.PREPARING: {OrderStatus.READY},
    OrderStatus.READY: {OrderStatus.OUT_FOR_DELIVERY, OrderStatus.READY_FOR_PICKUP},
    OrderStatus.OUT_FOR_DELIVERY: {OrderStatus.DELIVERED},
    OrderStatus.READY_FOR_PICKUP: {OrderStatus.PICKED_UP},
    OrderStatus.DELIVERED: {OrderStatus.COMPLETED},
    OrderStatus.PICKED_UP: {OrderStatus.COMPLETED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
    OrderStatus.REFUNDED: set(),
}

# Happy path shared by both delivery methods, then one branch per method.
FORWARD_CHAIN: tuple[str, ...] = (
    OrderStatus.PENDING_PAYMENT,
    OrderStatus.PAID,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
)

METHOD_PATHS: dict[str, tuple[str, ...]] = {
    DeliveryMethod.DELIVERY: (
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.DELIVERED,
        OrderStatus.COMPLETED,
    ),
    DeliveryMethod.PICKUP: (
        OrderStatus.READY_FOR_PICKUP,
        OrderStatus.PICKED_UP,
        OrderStatus.COMPLETED,
    ),
}

METHOD_ONLY_STATUSES: dict[str, frozenset[str]] = {
    DeliveryMethod.DELIVERY: frozenset(
        {OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED}
    ),
    DeliveryMethod.PICKUP: frozenset(
        {OrderStatus.READY_FOR_PICKUP, OrderStatus.PICKED_UP}
    ),
}

TERMINAL_STATES: frozenset[str] = frozenset(
    {OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}
)

UNPAID_STATES: frozenset[str] = frozenset(
    {OrderStatus.PENDING_PAYMENT, OrderStatus.PAYMENT_FAILED}
)

CLIENT_CANCELLABLE_STATES: frozenset[str] = frozenset(
    {OrderStatus.PAID, OrderStatus.CONFIRMED}
)

# Timestamp set the first time an order enters the status.
STATUS_TIMESTAMP_FIELDS: dict[str, str] = {
    OrderStatus.PAID: "paid_at",
    OrderStatus.CONFIRMED: "confirmed_at",
    OrderStatus.PREPARING: "preparing_at",
    OrderStatus.READY: "ready_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.PICKED_UP: "picked_up_at",
    OrderStatus.COMPLETED: "completed_at",
    OrderStatus.CANCELLED: "cancelled_at",
    OrderStatus.REFUNDED: "refunded_at",
}

ORDER_NUMBER_MAX_RETRIES = 5

SYSTEM_REASON_RETRY_WINDOW_EXPIRED = "Payment retry window expired"
SYSTEM_REASON_RETRIES_EXHAUSTED = "Maximum retry attempts reached"
