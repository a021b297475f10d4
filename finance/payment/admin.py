from django.contrib import admin
from .models import PaymentRecord, PaymentLog

@admin.register(PaymentRecord)
class PaymentRecordAdmin(admin.ModelAdmin):
    list_display = ['id', 'order', 'user', 'amount', 'status', 'mpesa_receipt_number', 'created_at']
    list_filter = ['status', 'payment_method', 'created_at']
    search_fields = ['id', 'order__id', 'checkout_request_id', 'mpesa_receipt_number', 'phone_number']
    readonly_fields = ['checkout_request_id', 'merchant_request_id', 'mpesa_receipt_number',
                       'result_code', 'result_desc', 'created_at', 'updated_at']

@admin.register(PaymentLog)
class PaymentLogAdmin(admin.ModelAdmin):
    list_display = ['payment_id', 'action', 'order_id', 'user_id', 'created_at']
    list_filter = ['action', 'created_at']
    search_fields = ['payment_id', 'order_id']
    readonly_fields = ['payment_id', 'order_id', 'user_id', 'action', 'payload', 'created_at']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
