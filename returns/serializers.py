"""
Returns Module - Serializers

Output serializers turn Return / ReturnItem rows into JSON.
Input serializers only check the SHAPE of a request (types, required keys,
non-negative numbers); every business rule is enforced by ReturnService.
"""

from rest_framework import serializers

from .models import Return, ReturnItem, ReturnStatusHistory, ShippingMethod


# ============================================================
# OUTPUT SERIALIZERS
# ============================================================

class ReturnItemSerializer(serializers.ModelSerializer):
    item_id = serializers.IntegerField(read_only=True)
    reason_id = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = ReturnItem
        fields = [
            'id', 'item_id', 'quantity', 'requested_quantity',
            'received_quantity', 'is_requested', 'reason_id', 'note', 'metadata',
        ]


class ShippingMethodSerializer(serializers.ModelSerializer):
    shipping_option_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = ShippingMethod
        fields = ['id', 'shipping_option_id', 'price', 'data']


class ReturnStatusHistorySerializer(serializers.ModelSerializer):
    """What ops see as the return timeline."""

    class Meta:
        model = ReturnStatusHistory
        fields = [
            'id', 'from_status', 'to_status', 'changed_by',
            'comment', 'created_at',
        ]
        read_only_fields = fields


class ReturnSerializer(serializers.ModelSerializer):
    """
    Full return details with items and the return shipping method:
    {
        "id": 12,
        "order_id": 3,
        "status": "requested",
        "refund_amount": 2000,
        "items": [{"item_id": 7, "quantity": 2, ...}],
        "shipping_method": {"shipping_option_id": 1, "price": 500, ...}
    }
    """

    order_id = serializers.IntegerField(read_only=True, allow_null=True)
    swap_id = serializers.IntegerField(read_only=True, allow_null=True)
    claim_order_id = serializers.IntegerField(read_only=True, allow_null=True)
    items = ReturnItemSerializer(many=True, read_only=True)
    shipping_method = serializers.SerializerMethodField()

    class Meta:
        model = Return
        fields = [
            'id', 'order_id', 'swap_id', 'claim_order_id', 'status',
            'refund_amount', 'shipping_data', 'received_at', 'metadata',
            'no_notification', 'items', 'shipping_method',
            'created_at', 'updated_at',
        ]

    def get_shipping_method(self, obj):
        try:
            method = obj.shipping_method
        except ShippingMethod.DoesNotExist:
            return None
        return ShippingMethodSerializer(method).data


class ReturnListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for listing returns (no nested items)."""

    order_id = serializers.IntegerField(read_only=True, allow_null=True)
    swap_id = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = Return
        fields = [
            'id', 'order_id', 'swap_id', 'status', 'refund_amount',
            'received_at', 'created_at',
        ]


# ============================================================
# INPUT SERIALIZERS
# ============================================================

class ReturnItemInputSerializer(serializers.Serializer):
    item_id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1)
    reason_id = serializers.IntegerField(required=False, allow_null=True)
    note = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=2000)
    metadata = serializers.DictField(required=False)


class ShippingMethodInputSerializer(serializers.Serializer):
    option_id = serializers.IntegerField()
    price = serializers.IntegerField(required=False, min_value=0)


class CreateReturnSerializer(serializers.Serializer):
    """
    POST body for a new return:
    {
        "order_id": 3,
        "items": [{"item_id": 7, "quantity": 2, "reason_id": 1, "note": "Too small"}],
        "shipping_method": {"option_id": 1},
        "no_notification": false,
        "idempotency_key": "unique-key-123"
    }
    """

    order_id = serializers.IntegerField(required=False)
    swap_id = serializers.IntegerField(required=False)
    claim_order_id = serializers.IntegerField(required=False)
    items = ReturnItemInputSerializer(many=True, allow_empty=False)
    shipping_method = ShippingMethodInputSerializer(required=False)
    refund_amount = serializers.IntegerField(required=False, min_value=0)
    no_notification = serializers.BooleanField(required=False)
    metadata = serializers.DictField(required=False)
    idempotency_key = serializers.CharField(required=False, max_length=100)

    def validate(self, attrs):
        if 'order_id' not in attrs and 'swap_id' not in attrs:
            raise serializers.ValidationError("Either order_id or swap_id is required.")
        return attrs


class UpdateReturnSerializer(serializers.Serializer):
    metadata = serializers.DictField(required=False)
    no_notification = serializers.BooleanField(required=False)
    refund_amount = serializers.IntegerField(required=False, min_value=0)


class ReceiveReturnSerializer(serializers.Serializer):
    items = ReturnItemInputSerializer(many=True, allow_empty=False)
    refund = serializers.IntegerField(required=False, min_value=0)
    allow_mismatch = serializers.BooleanField(default=False)


class CheckEligibilitySerializer(serializers.Serializer):
    order_id = serializers.IntegerField(help_text="Order ID to check")
