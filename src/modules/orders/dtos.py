"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between the API layer (DRF Serializers)
and the Service layer.  DTOs are immutable (``frozen=True``).

- ``CreateOrderDTO``: input for order creation.
- ``TransitionResultDTO``: outcome of one engine transition.
- ``RetryStatusDTO`` / ``RetryResultDTO``: payment retry display and outcome.
- ``SameStatusDTO``: bulk precondition check result.
- ``MassUpdateResultDTO``: per-order report of a bulk transition.
- ``TimelineEntryDTO``: one entry of an order timeline.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator

from modules.orders.constants import DeliveryMethod

# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class CreateOrderDTO(BaseModel):
    """Immutable DTO for order creation requests.

    The client is the authenticated user and is passed separately.
    """

    model_config = ConfigDict(frozen=True)

    tenant_id: UUID
    delivery_method: str = DeliveryMethod.DELIVERY
    grand_total: Decimal = Decimal("0.00")
    cook_id: Optional[int] = None
    payment_provider: str = ""
    payment_phone: str = ""

    @field_validator("delivery_method")
    @classmethod
    def delivery_method_must_be_known(cls, v: str) -> str:
        if v not in DeliveryMethod.values:
            raise ValueError(f"Unknown delivery method: {v}.")
        return v

    @field_validator("grand_total")
    @classmethod
    def grand_total_must_not_be_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Grand total cannot be negative.")
        return v


# ---------------------------------------------------------------------------
# Engine / guard outputs
# ---------------------------------------------------------------------------


class TransitionResultDTO(BaseModel):
    """Immutable outcome of a committed transition."""

    model_config = ConfigDict(frozen=True)

    order_id: int
    order_number: str
    previous_status: str
    new_status: str
    is_override: bool = False
    transition_id: UUID


class RetryStatusDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    can_retry: bool
    retry_count: int
    max_retries: int
    remaining_seconds: int
    is_expired: bool
    is_retries_exhausted: bool


class RetryResultDTO(BaseModel):
    """Outcome of one payment retry attempt."""

    model_config = ConfigDict(frozen=True)

    success: bool
    message: str
    status: str
    retry_count: int
    retries_remaining: int
    error: Optional[str] = None


class SameStatusDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    current_status: str
    next_status: str
    order_count: int


class MassUpdateFailureDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: int
    order_number: str
    reason: str


class MassUpdateResultDTO(BaseModel):
    """Per-order report of a bulk transition."""

    model_config = ConfigDict(frozen=True)

    total: int
    success_count: int
    fail_count: int
    target_status: str
    failures: List[MassUpdateFailureDTO]


# ---------------------------------------------------------------------------
# Read-side DTOs
# ---------------------------------------------------------------------------


class TimelineEntryDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str
    timestamp: datetime
    actor: str
    is_admin_override: bool = False
    reason: str = ""
