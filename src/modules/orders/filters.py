import django_filters

from modules.orders.constants import DeliveryMethod, OrderStatus
from modules.orders.models import Order


class OrderFilter(django_filters.FilterSet):
    status = django_filters.ChoiceFilter(choices=OrderStatus.choices)
    delivery_method = django_filters.ChoiceFilter(choices=DeliveryMethod.choices)
    tenant = django_filters.UUIDFilter(field_name="tenant_id")
    start_date = django_filters.DateFilter(field_name="created_at", lookup_expr="gte")
    end_date = django_filters.DateFilter(field_name="created_at", lookup_expr="lte")

    class Meta:
        model = Order
        fields = [
            "status",
            "delivery_method",
            "tenant",
            "start_date",
            "end_date",
        ]
