import django_filters
from django.db.models import Q

from modules.orders.models import OrderItem

UNSET_STATUS = "unset"


class OrderItemFilter(django_filters.FilterSet):
    workflow_status = django_filters.CharFilter(method="filter_workflow_status")
    tracking = django_filters.ChoiceFilter(
        choices=[("has", "Has tracking"), ("missing", "Missing tracking")],
        method="filter_tracking",
    )
    order = django_filters.NumberFilter(field_name="order_id")
    updated_after = django_filters.DateTimeFilter(
        field_name="status_updated_at", lookup_expr="gte"
    )
    updated_before = django_filters.DateTimeFilter(
        field_name="status_updated_at", lookup_expr="lte"
    )

    class Meta:
        model = OrderItem
        fields = [
            "workflow_status",
            "tracking",
            "order",
            "updated_after",
            "updated_before",
        ]

    def filter_workflow_status(self, queryset, name, value):
        if value == UNSET_STATUS:
            return queryset.filter(current_status__isnull=True)
        return queryset.filter(current_status__key=value)

    def filter_tracking(self, queryset, name, value):
        missing = Q(tracking_number__isnull=True) | Q(tracking_number="")
        if value == "missing":
            return queryset.filter(missing)
        return queryset.exclude(missing)
