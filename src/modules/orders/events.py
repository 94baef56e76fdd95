"""Domain events for the Orders bounded context.

Published on the in-process bus after the transaction that produced them
commits.  Each carries enough of the order to let handlers run without
reloading it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from modules.orders.actors import SYSTEM, Actor
from shared.domain.events import DomainEvent


@dataclass(frozen=True, kw_only=True)
class OrderStatusChanged(DomainEvent):
    """Raised once per committed transition."""

    order_number: str = ""
    tenant_id: Any = None
    client_id: Optional[int] = None
    cook_id: Optional[int] = None
    previous_status: str = ""
    new_status: str = ""
    actor: Actor = SYSTEM
    is_override: bool = False
    reason: str = ""


@dataclass(frozen=True, kw_only=True)
class OrderCancelled(DomainEvent):
    """Raised when an order enters ``cancelled``."""

    order_number: str = ""
    previous_status: str = ""
    client_id: Optional[int] = None
    actor: Actor = SYSTEM
    reason: str = ""


@dataclass(frozen=True, kw_only=True)
class OrderCompleted(DomainEvent):
    """Raised when an order enters ``completed``."""

    order_number: str = ""
    tenant_id: Any = None
    cook_id: Optional[int] = None
