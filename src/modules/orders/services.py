"""Order service layer (read side).

Orders are created by the storefront.  The back office reads them with
their workflow-derived status; status changes happen only through the
workflow module's transition services.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from modules.orders.exceptions import OrderNotFound

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository


class OrderService:
    """Application service for Order queries.

    Receives its repository via constructor injection (DIP).
    """

    def __init__(self, order_repository: IOrderRepository) -> None:
        self._order_repo = order_repository

    def get_order(self, order_id: int) -> Order:
        """Retrieve a single order by ID.

        Raises:
            OrderNotFound: if the order does not exist.
        """
        order = self._order_repo.get_by_id(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def list_orders(self, filters: Optional[Dict[str, Any]] = None):
        """Return orders, optionally filtered."""
        return self._order_repo.list(filters)
