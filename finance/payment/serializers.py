from rest_framework import serializers
from drf_spectacular.utils import extend_schema_field
from drf_spectacular.types import OpenApiTypes

from core.validators import validate_kenyan_phone, format_phone_display
from .models import PaymentRecord


class PaymentRecordSerializer(serializers.ModelSerializer):
    order_id = serializers.CharField(read_only=True)
    user_id = serializers.CharField(read_only=True)
    phone_display = serializers.SerializerMethodField()

    class Meta:
        model = PaymentRecord
        fields = [
            'id', 'order_id', 'user_id', 'phone_number', 'phone_display', 'amount',
            'payment_method', 'status', 'checkout_request_id', 'merchant_request_id',
            'mpesa_receipt_number', 'result_code', 'result_desc', 'created_at', 'updated_at',
        ]
        read_only_fields = fields

    @extend_schema_field(OpenApiTypes.STR)
    def get_phone_display(self, obj):
        return format_phone_display(obj.phone_number)


class PaymentCreateSerializer(serializers.Serializer):
    """Body of POST /api/v1/payments/. Any amount sent by the client is ignored."""
    id = serializers.CharField(max_length=64)
    order_id = serializers.CharField(max_length=64)
    phone_number = serializers.CharField(max_length=20, validators=[validate_kenyan_phone])
    payment_method = serializers.ChoiceField(
        choices=PaymentRecord.PAYMENT_METHOD_CHOICES, default='mpesa', required=False
    )


class StkPushRequestSerializer(serializers.Serializer):
    """
    Body of POST /api/v1/payments/mpesa/stk-push/, in the mobile app's camelCase.

    Phone format is checked by the initiator so the error keeps its own message.
    """
    phone = serializers.CharField(max_length=20)
    orderId = serializers.CharField(source='order_id', max_length=64)
    paymentId = serializers.CharField(source='payment_id', max_length=64)
    accountReference = serializers.CharField(
        source='account_reference', max_length=20, required=False, allow_blank=True
    )
    transactionDesc = serializers.CharField(
        source='transaction_desc', max_length=100, required=False, allow_blank=True
    )


class StkCallbackResponseSerializer(serializers.Serializer):
    ResultCode = serializers.IntegerField()
    ResultDesc = serializers.CharField()
