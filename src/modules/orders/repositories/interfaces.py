"""Order repository interface.

Extends ``IRepository[Order, int]`` with what the lifecycle engine needs:
the per-order lock helper, the append-only transition ledger and the
queries behind the payment retry sweep.

The service layer depends exclusively on this contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, TypeVar

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.actors import Actor
    from modules.orders.models import Order, OrderStatusTransition

R = TypeVar("R")


class IOrderRepository(IRepository["Order", int]):
    """Repository contract for the Order aggregate root.

    Every status mutation goes through ``with_order_lock``: it is the
    single choke point that serializes writers on one order.
    """

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order in ``pending_payment``."""

    @abstractmethod
    def get_by_ids(
        self, ids: Iterable[int], tenant_id: Optional[Any] = None
    ) -> Dict[int, Order]:
        """Map of id to order for the ids that exist (and match the tenant)."""

    @abstractmethod
    def save(self, entity: Order, update_fields: Optional[List[str]] = None) -> Order:
        """Persist an order and publish its pending domain events on commit."""

    @abstractmethod
    def with_order_lock(self, order_id: int, fn: Callable[[Order], R]) -> R:
        """Run ``fn`` with the order row locked, inside one transaction.

        Raises ``OrderNotFound`` and ``ConcurrentModification``.
        """

    @abstractmethod
    def add_transition(
        self,
        order: Order,
        previous_status: str,
        new_status: str,
        actor: Actor,
        is_override: bool = False,
        reason: str = "",
    ) -> OrderStatusTransition:
        """Append one entry to the order's transition ledger."""

    @abstractmethod
    def transitions_for(self, order_id: int) -> List[OrderStatusTransition]:
        """Ledger entries of one order, oldest first."""

    @abstractmethod
    def set_retry_expiry_if_unset(self, order_id: int, expires_at: datetime) -> bool:
        """Set ``payment_retry_expires_at`` unless already set."""

    @abstractmethod
    def find_expired_unpaid_ids(
        self, now: datetime, window_minutes: int
    ) -> List[int]:
        """Ids of unpaid orders whose retry window elapsed before ``now``."""

    @abstractmethod
    def count_expired_unpaid(self, now: datetime) -> int:
        """Number of unpaid orders the next sweep would cancel."""
