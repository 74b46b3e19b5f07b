"""Workflow DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.orders.models import OrderItem, OrderItemStatusHistory

# Upper bound of the BigAutoField primary keys.
MAX_ITEM_ID = 2**63 - 1

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class ItemTransitionSerializer(serializers.Serializer):
    """Validates a single-item transition request."""

    to_status_key = serializers.CharField(max_length=40)
    tracking_number = serializers.CharField(
        max_length=100, required=False, allow_blank=True, allow_null=True
    )
    note = serializers.CharField(required=False, default="", allow_blank=True)


class BulkTransitionSerializer(serializers.Serializer):
    """Validates the shape of a bulk request.

    Deduplication and the batch-size limit are enforced by
    ``BulkTransitionDTO``, on distinct ids.
    """

    item_ids = serializers.ListField(
        child=serializers.IntegerField(max_value=MAX_ITEM_ID), allow_empty=False
    )
    to_status_key = serializers.CharField(max_length=40)
    tracking_number = serializers.CharField(
        max_length=100, required=False, allow_blank=True, allow_null=True
    )


class BulkPreviewSerializer(serializers.Serializer):
    item_ids = serializers.ListField(
        child=serializers.IntegerField(max_value=MAX_ITEM_ID), allow_empty=False
    )


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class AllowedTransitionSerializer(serializers.Serializer):
    to_status_key = serializers.CharField()
    to_status_label = serializers.CharField()
    requires_tracking = serializers.BooleanField()
    is_terminal = serializers.BooleanField()


class WorkflowStatusMixin:
    """Display status of an item; unset items show the initial status.

    Expects the ``StatusCatalog`` snapshot in ``context["catalog"]``.
    """

    def _display_status(self, item: OrderItem):
        catalog = self.context["catalog"]
        if item.current_status_id is None:
            return catalog.initial
        return catalog.by_id(item.current_status_id)

    def get_workflow_status(self, item: OrderItem):
        definition = self._display_status(item)
        if definition is None:
            return None
        return {
            "key": definition.key,
            "label": definition.label,
            "color": definition.color,
            "is_terminal": definition.is_terminal,
            "is_set": item.current_status_id is not None,
        }


class OrderItemWorkflowSerializer(WorkflowStatusMixin, serializers.ModelSerializer):
    """Read serializer for items in the master list."""

    workflow_status = serializers.SerializerMethodField()

    class Meta:
        model = OrderItem
        fields = [
            "id",
            "order_id",
            "product_reference",
            "product_name",
            "quantity",
            "tracking_number",
            "workflow_status",
            "status_updated_at",
            "status_updated_by",
        ]
        read_only_fields = fields


class StatusHistorySerializer(serializers.ModelSerializer):
    """Read serializer for item status history records."""

    from_status_key = serializers.CharField(
        source="from_status.key", read_only=True, default=None
    )
    to_status_key = serializers.CharField(source="to_status.key", read_only=True)
    to_status_label = serializers.CharField(source="to_status.label", read_only=True)

    class Meta:
        model = OrderItemStatusHistory
        fields = [
            "id",
            "order_item_id",
            "order_id",
            "from_status_key",
            "to_status_key",
            "to_status_label",
            "changed_by",
            "tracking_number_snapshot",
            "note",
            "changed_at",
        ]
        read_only_fields = fields
