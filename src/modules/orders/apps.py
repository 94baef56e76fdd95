from django.apps import AppConfig


class OrdersConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.orders"
    label = "orders"

    def ready(self) -> None:
        from modules.orders.events import (
            OrderCancelled,
            OrderCompleted,
            OrderStatusChanged,
        )
        from modules.orders.handlers import (
            audit_log_handler,
            cancellation_refund_handler,
            commission_handler,
            status_notification_handler,
        )
        from shared.infrastructure.bus import event_bus

        event_bus.subscribe(OrderStatusChanged, status_notification_handler)
        event_bus.subscribe(OrderStatusChanged, audit_log_handler)
        event_bus.subscribe(OrderCancelled, cancellation_refund_handler)
        event_bus.subscribe(OrderCompleted, commission_handler)
