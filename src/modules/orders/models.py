"""Order, OrderItem, and OrderItemStatusHistory models.

Business rules implemented:
- An item's workflow status changes only through the transition services;
  ``current_status`` is a cache of the latest history entry.
- Each successful transition appends exactly one history record.
- History records are immutable and carry a snapshot of the tracking
  number, never a live reference.
- The order's ``derived_status_*`` fields are a display cache recomputed by
  ``OrderStatusDeriver`` whenever an owned item changes status.
- Items are removed only by deleting their order (CASCADE).
"""

from __future__ import annotations

from typing import Any

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import BaseModel, TimeStampedModel


LEGACY_STATUS_PENDING = 9


class Order(TimeStampedModel):
    """Order aggregate root.

    ``legacy_status`` is the numeric order status still consumed by the
    storefront; the workflow only writes it for terminal outcomes
    (cancelled / refunded).
    """

    customer_name = models.CharField(max_length=255, blank=True, default="")
    legacy_status = models.PositiveSmallIntegerField(default=LEGACY_STATUS_PENDING)
    derived_status_key = models.CharField(max_length=40, blank=True, default="")
    derived_status_label = models.CharField(max_length=100, blank=True, default="")
    derived_status_color = models.CharField(max_length=20, blank=True, default="")
    derived_at = models.DateTimeField(null=True, blank=True, default=None)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["derived_status_key"], name="orders_derived_status_idx"),
        ]

    def __str__(self) -> str:
        return f"Order #{self.pk} ({self.derived_status_key or 'unset'})"


class OrderItem(TimeStampedModel):
    """Line item of an order moving through the fulfillment pipeline.

    ``current_status`` is nullable: items created by the storefront start
    without a workflow status and need an explicit first transition.
    ``status_updated_by`` stores the actor id issued by the identity
    service (no local user row exists for back-office actors).
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="items",
    )
    product_reference = models.CharField(max_length=100)
    product_name = models.CharField(max_length=255, blank=True, default="")
    quantity = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
    )
    tracking_number = models.CharField(max_length=100, null=True, blank=True)  # noqa: DJ01
    current_status: models.ForeignKey = models.ForeignKey(
        "workflow.ItemStatus",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="items",
    )
    status_updated_at = models.DateTimeField(null=True, blank=True, default=None)
    status_updated_by = models.BigIntegerField(null=True, blank=True, default=None)
    legacy_status = models.PositiveSmallIntegerField(null=True, blank=True, default=None)

    class Meta:
        db_table = "order_items"
        ordering = ["id"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="order_items_quantity_positive",
            ),
        ]
        indexes = [
            models.Index(fields=["current_status"], name="order_items_status_idx"),
        ]

    def clean(self) -> None:
        super().clean()
        if self.quantity is not None and self.quantity < 1:
            raise ValidationError({"quantity": "Quantity must be at least 1."})

    def __str__(self) -> str:
        return f"{self.product_reference} x{self.quantity} (order {self.order_id})"


class OrderItemStatusHistory(BaseModel):
    """Append-only audit trail for order item status transitions.

    ``order`` is denormalised from the item for query locality.
    ``from_status`` is ``None`` only for the first assignment of a status.
    Rows are written once and never updated or deleted individually.
    """

    order_item: models.ForeignKey = models.ForeignKey(
        "orders.OrderItem",
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="item_status_history",
    )
    from_status: models.ForeignKey = models.ForeignKey(
        "workflow.ItemStatus",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="+",
    )
    to_status: models.ForeignKey = models.ForeignKey(
        "workflow.ItemStatus",
        on_delete=models.PROTECT,
        related_name="+",
    )
    changed_by = models.BigIntegerField()
    tracking_number_snapshot = models.CharField(  # noqa: DJ01
        max_length=100, null=True, blank=True
    )
    note = models.TextField(blank=True, default="")
    changed_at = models.DateTimeField()

    class Meta:
        db_table = "order_item_status_history"
        ordering = ["-changed_at", "-id"]
        indexes = [
            models.Index(
                fields=["order_item", "-changed_at"],
                name="oish_item_changed_idx",
            ),
            models.Index(
                fields=["order", "-changed_at"],
                name="oish_order_changed_idx",
            ),
        ]

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self._state.adding:
            raise ValidationError("Status history entries are immutable.")
        super().save(*args, **kwargs)

    def delete(self, *args: Any, **kwargs: Any):
        raise ValidationError("Status history entries cannot be deleted.")

    def __str__(self) -> str:
        return f"item {self.order_item_id}: {self.from_status_id} -> {self.to_status_id}"
