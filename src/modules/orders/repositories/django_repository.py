"""Django ORM implementation of the Order repository."""

from __future__ import annotations

from typing import Any, Dict, Optional

from django.db.models import Count, Prefetch, QuerySet

from modules.orders.models import Order, OrderItem
from modules.orders.repositories.interfaces import IOrderRepository


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    def get_by_id(self, id: int) -> Optional[Order]:
        """Retrieve an order with eager-loaded items.

        ``prefetch_related`` loads the items and their current status in
        one batched query.  Prevents N+1.
        """
        items = OrderItem.objects.select_related("current_status").order_by("id")
        return (
            Order.objects.prefetch_related(Prefetch("items", queryset=items))
            .filter(id=id)
            .first()
        )

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        """List orders with their item count.

        Supported filter keys are any ``Order`` lookups, e.g.
        ``derived_status_key`` or ``created_at__gte``.
        """
        queryset = Order.objects.annotate(item_count=Count("items"))
        if filters:
            queryset = queryset.filter(**filters)
        return queryset
