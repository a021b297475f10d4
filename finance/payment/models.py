from django.conf import settings
from django.db import models
from django.utils import timezone
from decimal import Decimal


class PaymentRecord(models.Model):
    """
    One row per payment attempt, source of truth for payment status.

    The id is generated by the client so the app, the relay and the gateway
    callback can all refer to the same attempt.
    """
    PENDING = 'pending'
    PROCESSING = 'processing'
    COMPLETED = 'completed'
    FAILED = 'failed'
    CANCELLED = 'cancelled'
    TIMEOUT = 'timeout'

    STATUS_CHOICES = [
        (PENDING, 'Pending'),
        (PROCESSING, 'Processing'),
        (COMPLETED, 'Completed'),
        (FAILED, 'Failed'),
        (CANCELLED, 'Cancelled'),
        # Declared by the client only; the relay never writes it
        (TIMEOUT, 'Timeout'),
    ]

    TERMINAL_STATUSES = (COMPLETED, FAILED, CANCELLED)

    PAYMENT_METHOD_CHOICES = [
        ('mpesa', 'M-Pesa'),
        ('cash_on_delivery', 'Cash on Delivery'),
    ]

    id = models.CharField(primary_key=True, max_length=64)
    order = models.ForeignKey('order.Order', on_delete=models.CASCADE, related_name='payment_records')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='payment_records')
    phone_number = models.CharField(max_length=20)
    amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    payment_method = models.CharField(max_length=30, choices=PAYMENT_METHOD_CHOICES, default='mpesa')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=PENDING)

    # Gateway correlation, set once the push request is accepted
    checkout_request_id = models.CharField(max_length=100, unique=True, blank=True, null=True)
    merchant_request_id = models.CharField(max_length=100, blank=True, null=True)

    mpesa_receipt_number = models.CharField(max_length=100, blank=True, null=True)
    result_code = models.CharField(max_length=20, blank=True, null=True)
    result_desc = models.TextField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'payments'
        ordering = ['-created_at']
        verbose_name = 'Payment Record'
        verbose_name_plural = 'Payment Records'
        indexes = [
            models.Index(fields=['status'], name='idx_payment_status'),
            models.Index(fields=['order'], name='idx_payment_order'),
        ]

    def __str__(self):
        return f"Payment {self.id} - {self.status}"

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    def mark_processing(self, checkout_request_id, merchant_request_id, amount=None):
        """Record the gateway's correlation ids once a push has been accepted."""
        self.checkout_request_id = checkout_request_id
        self.merchant_request_id = merchant_request_id
        self.status = self.PROCESSING
        # A fresh attempt carries no outcome yet
        self.mpesa_receipt_number = None
        self.result_code = None
        self.result_desc = None
        if amount is not None:
            self.amount = amount
        self.save()

    def apply_callback_result(self, is_success, result_code, result_desc, receipt_number=None):
        self.status = self.COMPLETED if is_success else self.FAILED
        if receipt_number:
            self.mpesa_receipt_number = receipt_number
        self.result_code = None if result_code is None else str(result_code)
        self.result_desc = result_desc
        self.save(update_fields=['status', 'mpesa_receipt_number', 'result_code', 'result_desc', 'updated_at'])


class PaymentLog(models.Model):
    """
    Append-only audit trail of payment transitions, for forensics only.

    Ids are stored as plain strings so entries outlive the rows they describe.
    """
    STK_PUSH_INITIATED = 'stk_push_initiated'
    CALLBACK_RECEIVED = 'callback_received'

    ACTION_CHOICES = [
        (STK_PUSH_INITIATED, 'STK Push Initiated'),
        (CALLBACK_RECEIVED, 'Callback Received'),
    ]

    payment_id = models.CharField(max_length=64, db_index=True)
    order_id = models.CharField(max_length=64, blank=True, null=True)
    user_id = models.CharField(max_length=64, blank=True, null=True)
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    payload = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(default=timezone.now, editable=False)

    class Meta:
        db_table = 'payment_logs'
        ordering = ['created_at', 'id']
        verbose_name = 'Payment Log'
        verbose_name_plural = 'Payment Logs'
        indexes = [
            models.Index(fields=['action'], name='idx_payment_log_action'),
        ]

    def __str__(self):
        return f"{self.action} - {self.payment_id}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Payment log entries are append-only")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Payment log entries are append-only")
