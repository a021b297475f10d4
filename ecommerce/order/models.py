from django.conf import settings
from django.db import models
from django.utils import timezone
from decimal import Decimal
import logging

logger = logging.getLogger(__name__)


class Order(models.Model):
    """
    Storefront order, as far as the payment flow is concerned.

    Catalog lines, addresses and cart arithmetic live with the storefront;
    only the fields the M-Pesa flow reads (total, owner) or writes (status,
    tracking events) are modelled here.
    """
    PENDING_PAYMENT = 'pending_payment'
    PROCESSING = 'processing'
    SHIPPED = 'shipped'
    DELIVERED = 'delivered'
    CANCELLED = 'cancelled'

    ORDER_STATUS_CHOICES = [
        (PENDING_PAYMENT, "Pending Payment"),
        (PROCESSING, "Processing"),
        (SHIPPED, "Shipped"),
        (DELIVERED, "Delivered"),
        (CANCELLED, "Cancelled"),
    ]

    PAYMENT_METHOD_CHOICES = [
        ("mpesa", "M-Pesa"),
        ("cash_on_delivery", "Cash on Delivery"),
    ]

    id = models.CharField(primary_key=True, max_length=64)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='orders')

    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    shipping = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))

    status = models.CharField(max_length=30, choices=ORDER_STATUS_CHOICES, default=PENDING_PAYMENT)
    payment_method = models.CharField(max_length=30, choices=PAYMENT_METHOD_CHOICES, default='mpesa')
    payment_id = models.CharField(max_length=64, blank=True, null=True)
    tracking_events = models.JSONField(default=list, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'ecommerce_orders'
        ordering = ['-created_at']
        verbose_name = 'Order'
        verbose_name_plural = 'Orders'
        indexes = [
            models.Index(fields=['status'], name='idx_ecom_order_status'),
            models.Index(fields=['user'], name='idx_ecom_order_user'),
        ]

    def __str__(self):
        return f"{self.id} - {self.get_status_display()}"

    def add_tracking_event(self, status, description):
        self.tracking_events = list(self.tracking_events or []) + [{
            'status': status,
            'date': timezone.now().isoformat(),
            'description': description,
        }]

    def mark_payment_received(self, receipt_number=None):
        """
        Move the order from pending_payment to processing.

        Only the first confirmed payment moves the order; later calls
        (duplicate callbacks) leave it alone and return False.
        """
        if self.status != self.PENDING_PAYMENT:
            logger.info(f"Order {self.id} already in '{self.status}', not advancing")
            return False
        self.status = self.PROCESSING
        description = 'Payment confirmed via M-Pesa'
        if receipt_number:
            description = f"{description} ({receipt_number})"
        self.add_tracking_event(self.PROCESSING, description)
        self.save(update_fields=['status', 'tracking_events', 'updated_at'])
        return True
