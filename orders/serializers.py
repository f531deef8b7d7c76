from django.contrib.auth import get_user_model
from rest_framework import serializers

from core.serializers import UserSummarySerializer
from inventory.models import MAX_QUANTITY
from orders.models import Order, OrderLine, Request

User = get_user_model()


class OrderLineSerializer(serializers.ModelSerializer):
    item_name = serializers.CharField(source="item.name", read_only=True)

    class Meta:
        model = OrderLine
        fields = ["id", "item", "item_name", "quantity"]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    user = UserSummarySerializer(read_only=True)
    lines = OrderLineSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = ["id", "user", "status", "lines", "created_at", "updated_at"]
        read_only_fields = fields


class OrderItemInputSerializer(serializers.Serializer):
    id = serializers.UUIDField()
    quantity = serializers.IntegerField(
        min_value=1,
        max_value=MAX_QUANTITY,
        error_messages={"min_value": "Quantity must be at least 1"},
    )


class OrderCreateSerializer(serializers.Serializer):
    user_id = serializers.PrimaryKeyRelatedField(queryset=User.objects.all(), required=False)
    items = OrderItemInputSerializer(
        many=True,
        allow_empty=False,
        error_messages={"empty": "Order must contain at least one item"},
    )


class OrderStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.Status.choices)


class RequestSerializer(serializers.ModelSerializer):
    user = UserSummarySerializer(read_only=True)
    item_name = serializers.CharField(source="item.name", read_only=True)
    quantity = serializers.IntegerField(min_value=1, max_value=MAX_QUANTITY, default=1)

    class Meta:
        model = Request
        fields = ["id", "user", "item", "item_name", "type", "quantity", "notes", "status", "created_at", "updated_at"]
        read_only_fields = ["id", "user", "status", "created_at", "updated_at"]


class RequestStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Request.Status.choices)
