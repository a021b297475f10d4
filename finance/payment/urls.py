"""
URL routing for M-Pesa checkout payments
"""
from django.urls import path
from .views import (
    PaymentCreateView,
    PaymentDetailView,
    StkPushView,
    MpesaCallbackView,
)

app_name = 'payment'

urlpatterns = [
    path('', PaymentCreateView.as_view(), name='payment-create'),
    # M-Pesa specific endpoints
    path('mpesa/stk-push/', StkPushView.as_view(), name='mpesa-stk-push'),
    path('mpesa/callback/', MpesaCallbackView.as_view(), name='mpesa-callback'),
    path('<str:payment_id>/', PaymentDetailView.as_view(), name='payment-detail'),
]
