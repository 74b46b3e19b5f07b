"""Workflow API views.

Exposes the workflow services via HTTP using a DRF ViewSet.
Domain exceptions are caught and translated into appropriate
HTTP status codes; the view never swallows generic exceptions.
"""

from __future__ import annotations

from typing import Dict, Type

from django.conf import settings
from django.db.models import Count
from django_filters.rest_framework import DjangoFilterBackend
from pydantic import ValidationError as DTOValidationError
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from modules.core.pagination import StandardResultsSetPagination
from modules.orders.models import OrderItem
from modules.workflow.dtos import BulkTransitionDTO, ItemTransitionDTO
from modules.workflow.exceptions import (
    ConcurrentModification,
    Forbidden,
    InvalidTransition,
    ItemNotFound,
    MissingTrackingIdentifier,
    NoItemsTransitionable,
    NoValidItems,
    PersistenceFailure,
    UnknownStatus,
    WorkflowError,
)
from modules.workflow.filters import OrderItemFilter
from modules.workflow.permissions import CanViewItemMasterList
from modules.workflow.repositories import WorkflowDjangoRepository
from modules.workflow.serializers import (
    AllowedTransitionSerializer,
    BulkPreviewSerializer,
    BulkTransitionSerializer,
    ItemTransitionSerializer,
    OrderItemWorkflowSerializer,
    StatusHistorySerializer,
)
from modules.workflow.services import (
    BulkTransitionService,
    ItemTransitionService,
    WorkflowQueryService,
)

ERROR_STATUS: Dict[Type[WorkflowError], int] = {
    Forbidden: status.HTTP_403_FORBIDDEN,
    UnknownStatus: status.HTTP_400_BAD_REQUEST,
    ItemNotFound: status.HTTP_404_NOT_FOUND,
    NoValidItems: status.HTTP_404_NOT_FOUND,
    NoItemsTransitionable: status.HTTP_400_BAD_REQUEST,
    InvalidTransition: status.HTTP_400_BAD_REQUEST,
    MissingTrackingIdentifier: status.HTTP_400_BAD_REQUEST,
    ConcurrentModification: status.HTTP_409_CONFLICT,
    PersistenceFailure: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def workflow_error_response(exc: WorkflowError) -> Response:
    """Translate a domain exception into ``{"detail", "code", ...}``."""
    body = {"detail": str(exc), "code": exc.code}
    if isinstance(exc, NoItemsTransitionable):
        body["skipped"] = [item.model_dump(mode="json") for item in exc.skipped]
        body["skipped_count"] = len(exc.skipped)
    elif isinstance(exc, InvalidTransition) and exc.reason is not None:
        body["reason"] = exc.reason.value
    elif isinstance(exc, PersistenceFailure):
        body["detail"] = "Failed to update workflow status."
    return Response(body, status=ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST))


def dto_error_response(exc: DTOValidationError) -> Response:
    return Response(
        {
            "detail": "Invalid request.",
            "code": "validation_error",
            "errors": [error["msg"] for error in exc.errors()],
        },
        status=status.HTTP_400_BAD_REQUEST,
    )


class OrderItemWorkflowViewSet(GenericViewSet):
    """ViewSet for order item workflow operations.

    Does **not** extend ``ModelViewSet``: every write goes through the
    transition services, which receive the repository and the
    configuration snapshots by injection.
    """

    queryset = OrderItem.objects.none()
    permission_classes = [IsAuthenticated]
    filterset_class = OrderItemFilter
    filter_backends = [DjangoFilterBackend]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._repository = WorkflowDjangoRepository()
        self._query_service = None

    def get_permissions(self):
        if self.action in {"list", "status_summary"}:
            return [IsAuthenticated(), CanViewItemMasterList()]
        return super().get_permissions()

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    @property
    def query_service(self) -> WorkflowQueryService:
        if self._query_service is None:
            self._query_service = WorkflowQueryService.from_repository(self._repository)
        return self._query_service

    def _actor(self, request: Request):
        return request.user.context

    def get_queryset(self):
        if getattr(self, "swagger_fake_view", False):
            return OrderItem.objects.none()
        return self.query_service.visible_items(self._actor(self.request))

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context["catalog"] = self.query_service.catalog
        return context

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/order-items/

        Role-scoped: each role only sees the statuses it works on.
        Filtering (status, tracking, order, dates) is handled by
        ``OrderItemFilter``.  Results are paginated.
        """
        queryset = self.filter_queryset(self.get_queryset())

        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(queryset, request)
        serializer = OrderItemWorkflowSerializer(
            page, many=True, context=self.get_serializer_context()
        )
        return paginator.get_paginated_response(serializer.data)

    @action(detail=False, methods=["get"], url_path="status-summary")
    def status_summary(self, request: Request) -> Response:
        """GET /api/v1/order-items/status-summary/

        Item counts per status over the role-visible set.
        """
        counts = {
            row["current_status__key"]: row["count"]
            for row in self.get_queryset()
            .order_by()
            .values("current_status__key")
            .annotate(count=Count("id"))
        }
        statuses = [
            {
                "key": definition.key,
                "label": definition.label,
                "color": definition.color,
                "count": counts.get(definition.key, 0),
            }
            for definition in self.query_service.catalog
            if definition.key in counts
        ]
        unset = counts.get(None, 0)
        return Response(
            {
                "statuses": statuses,
                "unset": unset,
                "total": sum(counts.values()),
            }
        )

    # ------------------------------------------------------------------
    # Single item
    # ------------------------------------------------------------------

    @action(detail=True, methods=["get", "put"])
    def workflow(self, request: Request, pk: str | None = None) -> Response:
        """GET / PUT /api/v1/order-items/{pk}/workflow/

        GET lists the moves the caller may apply; PUT applies one.
        """
        item_id = _parse_id(pk)
        if item_id is None:
            return Response(
                {"detail": "Order item not found.", "code": ItemNotFound.code},
                status=status.HTTP_404_NOT_FOUND,
            )
        if request.method == "PUT":
            return self._apply_transition(request, item_id)

        try:
            item, transitions = self.query_service.allowed_transitions(
                self._actor(request), item_id
            )
        except WorkflowError as exc:
            return workflow_error_response(exc)

        return Response(
            {
                "item_id": item.id,
                "product_name": item.product_name,
                "tracking_number": item.tracking_number,
                "workflow_status": OrderItemWorkflowSerializer(
                    item, context=self.get_serializer_context()
                ).data["workflow_status"],
                "allowed_transitions": AllowedTransitionSerializer(
                    transitions, many=True
                ).data,
            }
        )

    def _apply_transition(self, request: Request, item_id: int) -> Response:
        serializer = ItemTransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        payload = {
            "item_id": item_id,
            "to_status_key": data["to_status_key"],
            "note": data.get("note", ""),
        }
        # Absent keeps the stored tracking number; blank or null clears it.
        if "tracking_number" in data:
            payload["tracking_number"] = data["tracking_number"]

        try:
            dto = ItemTransitionDTO.model_validate(payload)
        except DTOValidationError as exc:
            return dto_error_response(exc)

        service = ItemTransitionService.from_repository(self._repository)
        try:
            result = service.apply(self._actor(request), dto)
        except WorkflowError as exc:
            return workflow_error_response(exc)

        return Response(
            {
                "success": True,
                "item": {
                    "id": result.item_id,
                    "order_id": result.order_id,
                    "workflow_status_key": result.status_key,
                    "workflow_status_label": result.status_label,
                    "is_terminal": result.is_terminal,
                    "tracking_number": result.tracking_number,
                },
                "order_status_changed": result.order_status_changed,
                "order_status": {
                    "key": result.order_status.key,
                    "label": result.order_status.label,
                    "color": result.order_status.color,
                },
            }
        )

    @action(detail=True, methods=["get"])
    def history(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/order-items/{pk}/history/"""
        item_id = _parse_id(pk)
        if item_id is None:
            return Response(
                {"detail": "Order item not found.", "code": ItemNotFound.code},
                status=status.HTTP_404_NOT_FOUND,
            )
        try:
            entries = self.query_service.history(item_id)
        except WorkflowError as exc:
            return workflow_error_response(exc)
        return Response(StatusHistorySerializer(entries, many=True).data)

    # ------------------------------------------------------------------
    # Bulk
    # ------------------------------------------------------------------

    @action(detail=False, methods=["put"], url_path="bulk-workflow")
    def bulk_workflow(self, request: Request) -> Response:
        """PUT /api/v1/order-items/bulk-workflow/

        Partial success is a normal outcome: ``outcome`` is ``succeeded``
        or ``partial``; a request where nothing could move answers 400
        with the skip list.
        """
        serializer = BulkTransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            dto = BulkTransitionDTO.model_validate(
                {
                    "item_ids": data["item_ids"],
                    "to_status_key": data["to_status_key"],
                    "tracking_number": data.get("tracking_number"),
                },
                context={"max_batch_size": settings.WORKFLOW_MAX_BATCH_SIZE},
            )
        except DTOValidationError as exc:
            return dto_error_response(exc)

        service = BulkTransitionService.from_repository(self._repository)
        try:
            result = service.apply_bulk(self._actor(request), dto)
        except WorkflowError as exc:
            return workflow_error_response(exc)

        return Response(
            {
                "success": True,
                "updated_count": result.updated_count,
                "skipped_count": result.skipped_count,
                "skipped": [item.model_dump(mode="json") for item in result.skipped],
                "target_status": result.target_status.model_dump(),
                "order_status_changes": {
                    str(order_id): {
                        "key": derived.key,
                        "label": derived.label,
                        "color": derived.color,
                    }
                    for order_id, derived in result.order_status_changes.items()
                },
                "outcome": result.outcome.value,
            }
        )

    @action(detail=False, methods=["post"], url_path="bulk-workflow/preview")
    def bulk_preview(self, request: Request) -> Response:
        """POST /api/v1/order-items/bulk-workflow/preview/

        Moves that apply to every item of a selection.
        """
        serializer = BulkPreviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        item_ids = list(dict.fromkeys(serializer.validated_data["item_ids"]))
        if len(item_ids) > settings.WORKFLOW_MAX_BATCH_SIZE:
            return Response(
                {
                    "detail": f"Maximum {settings.WORKFLOW_MAX_BATCH_SIZE} items per batch.",
                    "code": "validation_error",
                },
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            items, transitions = self.query_service.common_transitions(
                self._actor(request), item_ids
            )
        except WorkflowError as exc:
            return workflow_error_response(exc)

        return Response(
            {
                "item_count": len(items),
                "status_keys": sorted(
                    {
                        item.current_status.key if item.current_status_id else "unset"
                        for item in items
                    }
                ),
                "common_transitions": AllowedTransitionSerializer(
                    transitions, many=True
                ).data,
            }
        )


def _parse_id(pk: str | None) -> int | None:
    if pk is None or not str(pk).isdigit() or int(pk) < 1:
        return None
    return int(pk)
