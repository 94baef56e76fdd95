"""Payment retry timer.

Bounds how long and how many times an unpaid order may retry payment.
The window is anchored to order creation, not to the latest attempt:
``payment_retry_expires_at = created_at + ORDER_PAYMENT_RETRY_WINDOW_MINUTES``,
set once.  Orders created before the field existed fall back to the same
computation on the fly.

The payment gateway is always called outside the row lock.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Optional

import structlog
from django.conf import settings
from django.utils import timezone

from modules.orders.actors import SYSTEM, Actor, UserActor
from modules.orders.constants import (
    SYSTEM_REASON_RETRIES_EXHAUSTED,
    SYSTEM_REASON_RETRY_WINDOW_EXPIRED,
    UNPAID_STATES,
    OrderStatus,
)
from modules.orders.dtos import RetryResultDTO, RetryStatusDTO
from modules.orders.exceptions import (
    IllegalTransition,
    NotRetriable,
    OrderError,
    OrderNotFound,
    RetryAttemptsExhausted,
    RetryWindowExpired,
)
from modules.orders.ports import PaymentInitiationResult, get_collaborator

if TYPE_CHECKING:
    from modules.orders.dtos import TransitionResultDTO
    from modules.orders.engine import StatusTransitionEngine
    from modules.orders.models import Order
    from modules.orders.ports import PaymentGateway
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class _AttemptSnapshot:
    order: Order
    retry_count: int


class PaymentRetryTimer:
    """Retry eligibility, retry attempts and the expired-order sweep."""

    def __init__(
        self,
        order_repository: Optional[IOrderRepository] = None,
        engine: Optional[StatusTransitionEngine] = None,
        payment_gateway: Optional[PaymentGateway] = None,
        max_retries: Optional[int] = None,
        window_minutes: Optional[int] = None,
    ) -> None:
        from modules.orders.engine import StatusTransitionEngine
        from modules.orders.repositories import OrderDjangoRepository

        self._order_repo = order_repository or OrderDjangoRepository()
        self._engine = engine or StatusTransitionEngine(
            order_repository=self._order_repo
        )
        self._gateway = payment_gateway
        self.max_retries = (
            max_retries
            if max_retries is not None
            else settings.ORDER_PAYMENT_MAX_RETRIES
        )
        self.window_minutes = (
            window_minutes
            if window_minutes is not None
            else settings.ORDER_PAYMENT_RETRY_WINDOW_MINUTES
        )

    @property
    def gateway(self) -> PaymentGateway:
        if self._gateway is None:
            self._gateway = get_collaborator("payment_gateway")
        return self._gateway

    # ------------------------------------------------------------------
    # Window bookkeeping
    # ------------------------------------------------------------------

    def init_retry_window(self, order: Order) -> datetime:
        """Set ``payment_retry_expires_at`` once; later calls are no-ops."""
        if order.payment_retry_expires_at is not None:
            return order.payment_retry_expires_at
        expires_at = order.created_at + timedelta(minutes=self.window_minutes)
        if not self._order_repo.set_retry_expiry_if_unset(order.pk, expires_at):
            order.refresh_from_db(fields=["payment_retry_expires_at"])
            return order.payment_retry_expires_at
        order.payment_retry_expires_at = expires_at
        return expires_at

    def retry_deadline(self, order: Order) -> datetime:
        if order.payment_retry_expires_at is not None:
            return order.payment_retry_expires_at
        # TODO: confirm with product whether rows without an expiry should
        # keep this creation-anchored fallback or be backfilled.
        return order.created_at + timedelta(minutes=self.window_minutes)

    def is_window_expired(self, order: Order, now: Optional[datetime] = None) -> bool:
        return (now or timezone.now()) > self.retry_deadline(order)

    def has_exhausted_retries(self, order: Order) -> bool:
        return order.retry_count >= self.max_retries

    def can_retry(self, order: Order, now: Optional[datetime] = None) -> bool:
        return (
            order.status in UNPAID_STATES
            and not self.has_exhausted_retries(order)
            and not self.is_window_expired(order, now)
        )

    def retry_status(
        self, order: Order, now: Optional[datetime] = None
    ) -> RetryStatusDTO:
        now = now or timezone.now()
        remaining = max(0, int((self.retry_deadline(order) - now).total_seconds()))
        return RetryStatusDTO(
            can_retry=self.can_retry(order, now),
            retry_count=order.retry_count,
            max_retries=self.max_retries,
            remaining_seconds=remaining if order.status in UNPAID_STATES else 0,
            is_expired=self.is_window_expired(order, now),
            is_retries_exhausted=self.has_exhausted_retries(order),
        )

    def _ensure_retriable(self, order: Order, now: datetime) -> None:
        if order.status not in UNPAID_STATES:
            raise NotRetriable(
                f"Order {order.order_number} is not awaiting payment."
            )
        if self.has_exhausted_retries(order):
            raise RetryAttemptsExhausted(
                f"Maximum of {self.max_retries} payment attempts reached."
            )
        if self.is_window_expired(order, now):
            raise RetryWindowExpired("The payment retry window has expired.")

    # ------------------------------------------------------------------
    # Retry attempt
    # ------------------------------------------------------------------

    def retry_payment(
        self,
        order_id: int,
        actor: Actor,
        payment_provider: Optional[str] = None,
        payment_phone: Optional[str] = None,
    ) -> RetryResultDTO:
        """Spend one retry attempt and re-initiate payment.

        Raises:
            OrderNotFound: no such order, or another client's order.
            NotRetriable: the order is not unpaid.
            RetryAttemptsExhausted: no attempts left.
            RetryWindowExpired: the retry window elapsed.
        """
        log = logger.bind(order_id=order_id, actor=actor.label)

        def start_attempt(order: Order) -> _AttemptSnapshot:
            if isinstance(actor, UserActor) and not actor.is_admin:
                if order.client_id != actor.user_id:
                    raise OrderNotFound(f"Order {order_id} not found.")
            self._ensure_retriable(order, timezone.now())
            order.retry_count += 1
            fields = ["retry_count"]
            if payment_provider:
                order.payment_provider = payment_provider
                fields.append("payment_provider")
            if payment_phone:
                order.payment_phone = payment_phone
                fields.append("payment_phone")
            self._order_repo.save(order, update_fields=fields)
            if order.status == OrderStatus.PAYMENT_FAILED:
                self._engine.apply(
                    order, OrderStatus.PENDING_PAYMENT, actor, reason="Payment retry"
                )
            return _AttemptSnapshot(order=order, retry_count=order.retry_count)

        attempt = self._order_repo.with_order_lock(order_id, start_attempt)
        log.info("payment.retry_started", retry_count=attempt.retry_count)

        result = self._initiate(attempt.order)
        retries_remaining = max(0, self.max_retries - attempt.retry_count)
        if result.success:
            return RetryResultDTO(
                success=True,
                message="Payment initiated. Please confirm on your phone.",
                status=OrderStatus.PENDING_PAYMENT,
                retry_count=attempt.retry_count,
                retries_remaining=retries_remaining,
            )

        log.warning("payment.retry_failed", error=result.error)
        status = self._handle_initiation_failure(order_id, result.error or "")
        if status == OrderStatus.CANCELLED:
            return RetryResultDTO(
                success=False,
                message=(
                    "Maximum retry attempts reached. Your order has been cancelled."
                ),
                status=status,
                retry_count=attempt.retry_count,
                retries_remaining=0,
                error=result.error,
            )
        return RetryResultDTO(
            success=False,
            message="Payment could not be initiated. Please try again.",
            status=status,
            retry_count=attempt.retry_count,
            retries_remaining=retries_remaining,
            error=result.error,
        )

    def _initiate(self, order: Order) -> PaymentInitiationResult:
        try:
            return self.gateway.initiate_payment(order, order.client)
        except Exception as exc:
            logger.exception("payment.gateway_error", order_id=order.pk, error=str(exc))
            return PaymentInitiationResult(success=False, error=str(exc))

    def _handle_initiation_failure(self, order_id: int, error: str) -> str:
        def settle(order: Order) -> str:
            if order.status == OrderStatus.PENDING_PAYMENT:
                self._engine.apply(
                    order,
                    OrderStatus.PAYMENT_FAILED,
                    SYSTEM,
                    reason=error or "Payment initiation failed",
                )
            if order.status in UNPAID_STATES and self.has_exhausted_retries(order):
                self._engine.apply(
                    order,
                    OrderStatus.CANCELLED,
                    SYSTEM,
                    reason=SYSTEM_REASON_RETRIES_EXHAUSTED,
                )
                logger.info("payment.retries_exhausted", order_id=order.pk)
            return order.status

        return self._order_repo.with_order_lock(order_id, settle)

    # ------------------------------------------------------------------
    # Payment callbacks
    # ------------------------------------------------------------------

    def record_payment_failure(
        self, order_id: int, reason: str = ""
    ) -> TransitionResultDTO:
        """``pending_payment -> payment_failed`` from a gateway callback."""
        return self._engine.transition(
            order_id,
            OrderStatus.PAYMENT_FAILED,
            SYSTEM,
            reason=reason or "Payment failed",
        )

    def record_payment_success(self, order_id: int) -> TransitionResultDTO:
        """``pending_payment|payment_failed -> paid`` from a gateway callback."""
        return self._engine.transition(
            order_id, OrderStatus.PAID, SYSTEM, reason="Payment confirmed"
        )

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    def sweep_expired_orders(self, now: Optional[datetime] = None) -> int:
        """Cancel every unpaid order whose retry window has elapsed.

        Each order goes through the engine's locking path, so an order
        paid just before the sweep reaches it is left alone.  Returns the
        number of orders cancelled.
        """
        now = now or timezone.now()
        order_ids = self._order_repo.find_expired_unpaid_ids(now, self.window_minutes)

        def still_expired(order: Order) -> None:
            if order.status not in UNPAID_STATES or not self.is_window_expired(
                order, now
            ):
                raise IllegalTransition(
                    "Order is no longer awaiting an expired payment.",
                    current_status=order.status,
                    attempted_status=OrderStatus.CANCELLED,
                )

        cancelled = 0
        for order_id in order_ids:
            try:
                self._engine.transition(
                    order_id,
                    OrderStatus.CANCELLED,
                    SYSTEM,
                    reason=SYSTEM_REASON_RETRY_WINDOW_EXPIRED,
                    precondition=still_expired,
                )
            except OrderError as exc:
                logger.info(
                    "order.sweep_skipped",
                    order_id=order_id,
                    code=exc.code,
                    error=str(exc),
                )
                continue
            cancelled += 1

        logger.info(
            "order.sweep_completed", candidates=len(order_ids), cancelled=cancelled
        )
        return cancelled