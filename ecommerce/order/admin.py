from django.contrib import admin
from .models import Order


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'total', 'status', 'payment_method', 'payment_id', 'created_at']
    list_filter = ['status', 'payment_method', 'created_at']
    search_fields = ['id', 'payment_id', 'user__username', 'user__email']
    readonly_fields = ['tracking_events', 'created_at', 'updated_at']
