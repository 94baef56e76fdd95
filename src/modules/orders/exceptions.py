"""Order domain exceptions.

Raised by the engine and the services built on it when a request cannot
be honoured.  The API layer (Views) catches these and translates them
into HTTP responses; the mass coordinator turns them into per-order
failure entries.

Every exception carries a stable ``code`` so callers can tell apart
situations that need different guidance (e.g. exhausted attempts vs.
an elapsed window) without parsing messages.
"""

from __future__ import annotations

from typing import Optional


class OrderError(Exception):
    """Base class for order lifecycle errors."""

    code = "order_error"
    retryable = False


# ---------------------------------------------------------------------------
# Validation errors (caller mistake, never retried automatically)
# ---------------------------------------------------------------------------


class OrderNotFound(OrderError):
    """The requested order does not exist (or is outside the caller's tenant)."""

    code = "not_found"


class TenantNotFound(OrderError):
    """The tenant referenced by a new order does not exist."""

    code = "tenant_not_found"


class InactiveTenant(OrderError):
    """The tenant is inactive and cannot receive orders."""

    code = "tenant_inactive"


class InvalidStatus(OrderError):
    """The requested status is not a member of the status enumeration."""

    code = "invalid_status"


class ActorRequired(OrderError):
    """A transition was requested without saying who requested it."""

    code = "actor_required"


class IllegalTransition(OrderError):
    """The order's current status does not permit the requested target."""

    code = "illegal_transition"

    def __init__(
        self,
        message: str,
        current_status: str = "",
        attempted_status: str = "",
        next_valid_status: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.current_status = current_status
        self.attempted_status = attempted_status
        self.next_valid_status = next_valid_status


class OverrideReasonRequired(OrderError):
    """An override transition was requested without a reason."""

    code = "override_reason_required"


class OverrideNotPermitted(OrderError):
    """A non-admin actor requested an override transition."""

    code = "override_not_permitted"


class EmptyBatch(OrderError):
    """A bulk action was requested with no order IDs."""

    code = "empty_batch"


class MixedStatusBatch(OrderError):
    """Orders selected for a bulk action do not share one status."""

    code = "mixed_status"


class MixedDeliveryMethodBatch(OrderError):
    """Ready orders selected for a bulk action mix delivery and pickup."""

    code = "mixed_delivery_methods"


# ---------------------------------------------------------------------------
# Concurrency errors (retry the whole operation)
# ---------------------------------------------------------------------------


class ConcurrentModification(OrderError):
    """The order row lock could not be acquired within the bounded wait."""

    code = "concurrent_modification"
    retryable = True


# ---------------------------------------------------------------------------
# Window / limit errors
# ---------------------------------------------------------------------------


class CancellationWindowExpired(OrderError):
    """The client cancellation window for this order has elapsed."""

    code = "cancellation_window_expired"


class RetryAttemptsExhausted(OrderError):
    """The order used all of its payment retry attempts."""

    code = "retry_attempts_exhausted"


class RetryWindowExpired(OrderError):
    """The payment retry window for this order has elapsed."""

    code = "retry_window_expired"


class NotRetriable(OrderError):
    """The order is not awaiting payment, so it cannot be retried."""

    code = "not_retriable"
