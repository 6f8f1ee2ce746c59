"""DRF serializers for Orders.

Read serializers expose status, version and stock flags; write serializers
validate the "order created" / "order updated" event payloads before they
reach ``orders.services``.
"""

from rest_framework import serializers

from .models import Order, OrderLineItem, OrderStatusChange


class OrderLineItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderLineItem
        fields = [
            "id",
            "product",
            "product_name",
            "sku",
            "quantity",
            "stock_deducted",
            "stock_deducted_at",
            "stock_restored",
            "stock_restored_at",
        ]
        read_only_fields = fields


class OrderStatusChangeSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderStatusChange
        fields = ["from_status", "to_status", "version", "actor", "note", "created_at"]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    items = OrderLineItemSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "number",
            "external_id",
            "status",
            "version",
            "customer_name",
            "customer_phone",
            "carrier_reference",
            "status_changed_at",
            "confirmed_at",
            "in_preparation_at",
            "ready_to_ship_at",
            "shipped_at",
            "delivered_at",
            "cancelled_at",
            "created_at",
            "items",
        ]
        read_only_fields = fields


class OrderDetailSerializer(OrderSerializer):
    status_changes = OrderStatusChangeSerializer(many=True, read_only=True)

    class Meta(OrderSerializer.Meta):
        fields = OrderSerializer.Meta.fields + ["status_changes"]
        read_only_fields = fields


class LineItemInputSerializer(serializers.Serializer):
    product_id = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(min_value=1)


class OrderCreateSerializer(serializers.Serializer):
    number = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")
    external_id = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    customer_name = serializers.CharField(max_length=200, required=False, allow_blank=True, default="")
    customer_phone = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")
    carrier_reference = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    items = LineItemInputSerializer(many=True, allow_empty=False)


class OrderPatchSerializer(serializers.Serializer):
    customer_name = serializers.CharField(max_length=200, required=False, allow_blank=True)
    customer_phone = serializers.CharField(max_length=32, required=False, allow_blank=True)
    carrier_reference = serializers.CharField(max_length=64, required=False, allow_blank=True)
    items = LineItemInputSerializer(many=True, required=False, allow_empty=False)
    status = serializers.ChoiceField(choices=Order.STATUS_CHOICES, required=False)
    expected_version = serializers.IntegerField(required=False, min_value=1)


class OrderTransitionSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.STATUS_CHOICES)
    expected_version = serializers.IntegerField(required=False, min_value=1)
    note = serializers.CharField(max_length=200, required=False, allow_blank=True, default="")
