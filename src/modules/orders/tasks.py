"""Celery tasks of the orders module."""

import structlog
from celery import shared_task

from modules.orders.payment_retry import PaymentRetryTimer

logger = structlog.get_logger(__name__)


@shared_task(name="orders.sweep_expired_orders")
def sweep_expired_orders() -> int:
    """Cancel unpaid orders whose payment retry window has elapsed.

    Scheduled by Celery beat every ``ORDER_SWEEP_INTERVAL_MINUTES``.  Safe
    to overlap with itself: each cancellation takes the order row lock.
    """
    cancelled = PaymentRetryTimer().sweep_expired_orders()
    logger.info("sweep_expired_orders.executed", cancelled=cancelled)
    return cancelled
