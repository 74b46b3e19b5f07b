"""Order repository interface.

Read-side contract for the Order aggregate.  Orders are written by the
storefront; this back office only reads them and, through the workflow
module, refreshes their derived status cache.

The Service Layer depends exclusively on this contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional

from modules.core.repositories.interfaces import IReadRepository, Queryable

if TYPE_CHECKING:
    from modules.orders.models import Order


class IOrderRepository(IReadRepository["Order"]):
    """Repository contract for the Order aggregate root."""

    @abstractmethod
    def get_by_id(self, id: int) -> Optional[Order]:
        """Retrieve an order with prefetched items and their statuses."""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> Queryable[Order]:
        """List orders with optional filters."""
