from django_filters import rest_framework as filters

from .models import Order


class OrderFilter(filters.FilterSet):
    status = filters.MultipleChoiceFilter(choices=Order.STATUS_CHOICES)
    created_after = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")
    created_before = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="lte")
    number = filters.CharFilter(field_name="number", lookup_expr="iexact")

    class Meta:
        model = Order
        fields = ["status", "external_id", "number"]
