"""Order DRF serializers for API output.

Orders are read-only here; item status changes go through the workflow
endpoints.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.orders.models import Order, OrderItem


class DerivedStatusField(serializers.Field):
    """Renders the cached ``derived_status_*`` columns as one object."""

    def __init__(self, **kwargs):
        kwargs["source"] = "*"
        kwargs["read_only"] = True
        super().__init__(**kwargs)

    def to_representation(self, order: Order):
        if not order.derived_status_key:
            return None
        return {
            "key": order.derived_status_key,
            "label": order.derived_status_label,
            "color": order.derived_status_color,
        }


class OrderItemSerializer(serializers.ModelSerializer):
    """Read serializer for order items with their workflow status."""

    workflow_status_key = serializers.CharField(
        source="current_status.key", read_only=True, default=None
    )
    workflow_status_label = serializers.CharField(
        source="current_status.label", read_only=True, default=None
    )

    class Meta:
        model = OrderItem
        fields = [
            "id",
            "product_reference",
            "product_name",
            "quantity",
            "tracking_number",
            "workflow_status_key",
            "workflow_status_label",
            "status_updated_at",
            "legacy_status",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Read serializer for orders with nested items."""

    derived_status = DerivedStatusField()
    items = OrderItemSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "customer_name",
            "legacy_status",
            "derived_status",
            "derived_at",
            "created_at",
            "updated_at",
            "items",
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for order list (no nested relations)."""

    derived_status = DerivedStatusField()
    item_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "customer_name",
            "legacy_status",
            "derived_status",
            "item_count",
            "created_at",
        ]
        read_only_fields = fields
