from django_filters import rest_framework as filters

from .models import InventoryMovement


class InventoryMovementFilter(filters.FilterSet):
    created_after = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")
    created_before = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="lte")

    class Meta:
        model = InventoryMovement
        fields = ["product", "order", "kind"]
