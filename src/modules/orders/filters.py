import django_filters

from modules.orders.models import Order


class OrderFilter(django_filters.FilterSet):
    status = django_filters.CharFilter(field_name="status", lookup_expr="iexact")
    venue = django_filters.UUIDFilter(field_name="venue_id")
    branch = django_filters.UUIDFilter(field_name="branch_id")
    staff = django_filters.UUIDFilter(field_name="staff_id")
    is_timeout = django_filters.BooleanFilter(field_name="is_timeout")
    start_date = django_filters.DateFilter(field_name="created_at", lookup_expr="gte")
    end_date = django_filters.DateFilter(field_name="created_at", lookup_expr="lte")

    class Meta:
        model = Order
        fields = [
            "status",
            "venue",
            "branch",
            "staff",
            "is_timeout",
            "start_date",
            "end_date",
        ]
