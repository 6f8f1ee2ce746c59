from rest_framework import serializers

from .models import PickingSession


class PickingSessionSerializer(serializers.ModelSerializer):
    order_ids = serializers.SerializerMethodField()

    class Meta:
        model = PickingSession
        fields = [
            "id",
            "code",
            "status",
            "created_by",
            "last_activity_at",
            "picking_started_at",
            "picking_completed_at",
            "packing_started_at",
            "completed_at",
            "completed_by",
            "abandoned_at",
            "abandoned_by",
            "abandon_reason",
            "stale_flagged_at",
            "created_at",
            "order_ids",
        ]
        read_only_fields = fields

    def get_order_ids(self, obj: PickingSession) -> list[int]:
        qs = obj.session_orders.all()
        if obj.is_active:
            qs = qs.filter(released_at__isnull=True)
        return list(qs.order_by("order_id").values_list("order_id", flat=True))


class CreateSessionSerializer(serializers.Serializer):
    order_ids = serializers.ListField(child=serializers.IntegerField(min_value=1), allow_empty=False)


class NonZeroDeltaField(serializers.IntegerField):
    default_error_messages = {"zero": "Must be non-zero."}

    def to_internal_value(self, data):
        value = super().to_internal_value(data)
        if value == 0:
            self.fail("zero")
        return value


class PickSerializer(serializers.Serializer):
    product_id = serializers.IntegerField(min_value=1)
    quantity = NonZeroDeltaField(required=False, default=1)


class PackSerializer(serializers.Serializer):
    order_id = serializers.IntegerField(min_value=1)
    product_id = serializers.IntegerField(min_value=1)
    quantity = NonZeroDeltaField(required=False, default=1)


class AbandonSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=200, required=False, allow_blank=True, default="")


class PickingListRowSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    product_name = serializers.CharField()
    sku = serializers.CharField()
    stock = serializers.IntegerField()
    total_quantity_needed = serializers.IntegerField()
    quantity_picked = serializers.IntegerField()
    is_complete = serializers.BooleanField()


class PackingItemSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    product_name = serializers.CharField()
    sku = serializers.CharField()
    quantity_needed = serializers.IntegerField()
    quantity_packed = serializers.IntegerField()
    is_complete = serializers.BooleanField()


class PackingOrderSerializer(serializers.Serializer):
    order_id = serializers.IntegerField()
    number = serializers.CharField()
    customer_name = serializers.CharField()
    status = serializers.CharField()
    items = PackingItemSerializer(many=True)
    is_complete = serializers.BooleanField()


class BasketRowSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    product_name = serializers.CharField()
    quantity_picked = serializers.IntegerField()
    quantity_packed = serializers.IntegerField()
    remaining = serializers.IntegerField()


class PackingListSerializer(serializers.Serializer):
    session = PickingSessionSerializer()
    orders = PackingOrderSerializer(many=True)
    basket = BasketRowSerializer(many=True)


class PackingProgressSerializer(serializers.Serializer):
    session_id = serializers.IntegerField()
    order_id = serializers.IntegerField()
    product_id = serializers.IntegerField()
    quantity_needed = serializers.IntegerField()
    quantity_packed = serializers.IntegerField()
    is_complete = serializers.BooleanField()


class SessionItemSerializer(serializers.Serializer):
    session_id = serializers.IntegerField()
    product_id = serializers.IntegerField()
    total_quantity_needed = serializers.IntegerField()
    quantity_picked = serializers.IntegerField()
