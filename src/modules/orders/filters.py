import django_filters

from modules.orders.models import Order


class OrderFilter(django_filters.FilterSet):
    derived_status = django_filters.CharFilter(
        field_name="derived_status_key", lookup_expr="iexact"
    )
    legacy_status = django_filters.NumberFilter(field_name="legacy_status")
    start_date = django_filters.DateFilter(field_name="created_at", lookup_expr="gte")
    end_date = django_filters.DateFilter(field_name="created_at", lookup_expr="lte")

    class Meta:
        model = Order
        fields = [
            "derived_status",
            "legacy_status",
            "start_date",
            "end_date",
        ]
