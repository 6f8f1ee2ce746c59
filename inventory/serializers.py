"""Serializers for the inventory ledger (read-only)."""

from rest_framework import serializers

from .models import InventoryMovement


class InventoryMovementSerializer(serializers.ModelSerializer):
    sku = serializers.CharField(source="product.sku", read_only=True)

    class Meta:
        model = InventoryMovement
        fields = [
            "id",
            "product",
            "sku",
            "quantity",
            "kind",
            "order",
            "line_item",
            "stock_after",
            "reference",
            "created_at",
        ]
        read_only_fields = fields


class DriftRowSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    sku = serializers.CharField()
    cached_stock = serializers.IntegerField()
    ledger_stock = serializers.IntegerField()
    drift = serializers.IntegerField()
    negative = serializers.BooleanField()
