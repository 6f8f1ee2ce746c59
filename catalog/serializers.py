from rest_framework import serializers

from .models import Product


class ProductSerializer(serializers.ModelSerializer):
    """Read-only product representation including the cached stock level."""

    class Meta:
        model = Product
        fields = ["id", "name", "sku", "stock", "is_active", "updated_at"]
        read_only_fields = fields
