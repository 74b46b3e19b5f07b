"""Order API views.

Exposes the ``OrderService`` via HTTP using DRF ViewSets.
Domain exceptions are caught and translated into appropriate
HTTP status codes; the view never swallows generic exceptions.
"""

from __future__ import annotations

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.core.actors import has_permission
from modules.core.pagination import StandardResultsSetPagination
from modules.orders.exceptions import OrderNotFound
from modules.orders.filters import OrderFilter
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import OrderListSerializer, OrderSerializer
from modules.orders.services import OrderService
from modules.workflow.constants import PERMISSION_ITEM_STATUS_CHANGE
from modules.workflow.repositories import WorkflowDjangoRepository
from modules.workflow.services import OrderStatusService


class OrderViewSet(GenericViewSet):
    """ViewSet for Order read operations.

    Uses ``OrderService`` with an injected repository (DIP).
    Does **not** extend ``ModelViewSet``: all ORM access goes through
    the service/repository layer.
    """

    queryset = Order.objects.none()
    filterset_class = OrderFilter
    ordering_fields = ["created_at", "derived_status_key"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = OrderService(order_repository=OrderDjangoRepository())

    def get_throttles(self) -> list[BaseThrottle]:
        """Throttling scope per action."""
        throttle_scope: str | None
        if self.action in {"list", "retrieve"}:
            throttle_scope = "order_listing"
        else:
            throttle_scope = None
        self.throttle_scope = throttle_scope
        return super().get_throttles()

    def get_queryset(self):
        return self._service.list_orders()

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/

        Filtering (derived status, legacy status, date range) is handled
        by ``OrderFilter``.  Ordering is handled by ``OrderingFilter``.
        Results are paginated.
        """
        queryset = self.filter_queryset(self.get_queryset())

        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(queryset, request)
        serializer = OrderListSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        if pk is None or not pk.isdigit():
            return Response(
                {"detail": "Order not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        try:
            order = self._service.get_order(int(pk))
        except OrderNotFound:
            return Response(
                {"detail": "Order not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        serializer = OrderSerializer(order)
        return Response(serializer.data)

    # ------------------------------------------------------------------
    # Derived status repair
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def rederive(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/rederive/

        Recomputes the cached derived status from the current items.
        """
        if not has_permission(request.user.permissions, PERMISSION_ITEM_STATUS_CHANGE):
            return Response({"detail": "Forbidden"}, status=status.HTTP_403_FORBIDDEN)
        if pk is None or not pk.isdigit():
            return Response(
                {"detail": "Order not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        try:
            self._service.get_order(int(pk))
        except OrderNotFound:
            return Response(
                {"detail": "Order not found."},
                status=status.HTTP_404_NOT_FOUND,
            )

        service = OrderStatusService.from_repository(WorkflowDjangoRepository())
        change = service.refresh(int(pk))
        return Response(
            {
                "order_id": change.order_id,
                "changed": change.changed,
                "derived_status": {
                    "key": change.derived.key,
                    "label": change.derived.label,
                    "color": change.derived.color,
                },
            }
        )
