"""Collaborators the order engine consumes but does not implement.

Payment initiation, refund dispatch, notifications, commission capture
and the audit log belong to other bounded contexts.  They are described
here as ``Protocol`` types; the concrete classes are chosen with the
``ORDER_COLLABORATORS`` setting (dotted paths resolved with
``import_string``).  The defaults only log.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Protocol

import structlog
from django.conf import settings
from django.utils.module_loading import import_string

if TYPE_CHECKING:
    from modules.orders.actors import Actor
    from modules.orders.models import Order

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PaymentInitiationResult:
    success: bool
    error: Optional[str] = None
    reference: Optional[str] = None


class PaymentGateway(Protocol):
    def initiate_payment(self, order: Order, client: Any) -> PaymentInitiationResult:
        ...


class RefundDispatcher(Protocol):
    def credit_cancellation_refund(self, order_id: int) -> None:
        ...


class StatusNotifier(Protocol):
    def notify_status_change(
        self,
        order_id: int,
        previous_status: str,
        new_status: str,
        recipient_ids: list[int],
    ) -> None:
        ...


class CommissionService(Protocol):
    def capture_commission(self, order_id: int) -> None:
        ...

    def start_withdrawable_timer(self, order_id: int, cook_id: Optional[int]) -> None:
        ...


class AuditLog(Protocol):
    def record(
        self,
        actor: Actor,
        order_id: int,
        previous_status: str,
        new_status: str,
        metadata: Mapping[str, Any],
    ) -> None:
        ...


# ---------------------------------------------------------------------------
# Default implementations
# ---------------------------------------------------------------------------


class UnconfiguredPaymentGateway:
    """Fails every initiation; deployments must configure a real gateway."""

    def initiate_payment(self, order: Order, client: Any) -> PaymentInitiationResult:
        logger.warning("payment.gateway_unconfigured", order_id=order.pk)
        return PaymentInitiationResult(
            success=False, error="No payment gateway is configured."
        )


class LoggingRefundDispatcher:
    def credit_cancellation_refund(self, order_id: int) -> None:
        logger.info("refund.dispatched", order_id=order_id)


class LoggingStatusNotifier:
    def notify_status_change(
        self,
        order_id: int,
        previous_status: str,
        new_status: str,
        recipient_ids: list[int],
    ) -> None:
        logger.info(
            "notification.status_changed",
            order_id=order_id,
            from_status=previous_status,
            to_status=new_status,
            recipients=recipient_ids,
        )


class LoggingCommissionService:
    def capture_commission(self, order_id: int) -> None:
        logger.info("commission.captured", order_id=order_id)

    def start_withdrawable_timer(self, order_id: int, cook_id: Optional[int]) -> None:
        logger.info(
            "commission.withdrawable_timer_started", order_id=order_id, cook_id=cook_id
        )


class StructlogAuditLog:
    def record(
        self,
        actor: Actor,
        order_id: int,
        previous_status: str,
        new_status: str,
        metadata: Mapping[str, Any],
    ) -> None:
        logger.info(
            "audit.order_status",
            actor=actor.label,
            order_id=order_id,
            from_status=previous_status,
            to_status=new_status,
            **dict(metadata),
        )


DEFAULT_COLLABORATORS: Dict[str, str] = {
    "payment_gateway": "modules.orders.ports.UnconfiguredPaymentGateway",
    "refund_dispatcher": "modules.orders.ports.LoggingRefundDispatcher",
    "status_notifier": "modules.orders.ports.LoggingStatusNotifier",
    "commission_service": "modules.orders.ports.LoggingCommissionService",
    "audit_log": "modules.orders.ports.StructlogAuditLog",
}


def get_collaborator(name: str) -> Any:
    """Instantiate the configured collaborator ``name``."""
    configured = getattr(settings, "ORDER_COLLABORATORS", {}) or {}
    path = configured.get(name) or DEFAULT_COLLABORATORS[name]
    return import_string(path)()
