"""Serializers for payments workflows.

Validates the submitted payment form and exposes transaction state.
"""

from datetime import date

from rest_framework import serializers

from .models import Transaction


class PaymentFormSerializer(serializers.Serializer):
    """Validate the payment form posted at checkout.

    Fields:
    - card fields: only needed by gateways that take raw card data
    - token: client-side token for gateways that tokenize in the browser
    All fields are optional; off-site gateways need none of them.
    """

    first_name = serializers.CharField(required=False, allow_blank=True, max_length=100)
    last_name = serializers.CharField(required=False, allow_blank=True, max_length=100)
    number = serializers.CharField(required=False, allow_blank=True, max_length=19)
    expiry_month = serializers.IntegerField(required=False, min_value=1, max_value=12)
    expiry_year = serializers.IntegerField(required=False, min_value=2000, max_value=2100)
    cvv = serializers.CharField(required=False, allow_blank=True, max_length=4)
    token = serializers.CharField(required=False, allow_blank=True, max_length=255)

    def validate_number(self, value: str) -> str:
        norm = (value or "").replace(" ", "").replace("-", "")
        if norm and not norm.isdigit():
            raise serializers.ValidationError("Card number must contain digits only")
        return norm

    def validate(self, attrs):
        month, year = attrs.get("expiry_month"), attrs.get("expiry_year")
        if month and year:
            today = date.today()
            if (year, month) < (today.year, today.month):
                raise serializers.ValidationError({"expiry_year": "Card has expired"})
        return attrs


class TransactionSerializer(serializers.ModelSerializer):
    """Read serializer exposing transaction state and the tree link."""

    order_id = serializers.IntegerField(read_only=True)
    parent_hash = serializers.SerializerMethodField()
    gateway = serializers.CharField(source="gateway.handle", read_only=True)

    class Meta:
        model = Transaction
        fields = (
            "id",
            "hash",
            "order_id",
            "parent_hash",
            "gateway",
            "type",
            "status",
            "amount",
            "currency",
            "payment_amount",
            "payment_currency",
            "payment_rate",
            "reference",
            "code",
            "message",
            "created_at",
            "updated_at",
        )

    def get_parent_hash(self, obj):
        return obj.parent.hash if obj.parent_id else None
