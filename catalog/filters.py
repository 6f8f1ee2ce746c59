from django_filters import rest_framework as filters

from .models import Product


class ProductFilter(filters.FilterSet):
    sku = filters.CharFilter(field_name="sku", lookup_expr="iexact")
    name = filters.CharFilter(field_name="name", lookup_expr="icontains")
    negative_stock = filters.BooleanFilter(method="filter_negative_stock")

    class Meta:
        model = Product
        fields = ["sku", "name", "is_active"]

    def filter_negative_stock(self, queryset, name, value):
        if value is None:
            return queryset
        return queryset.filter(stock__lt=0) if value else queryset.filter(stock__gte=0)
