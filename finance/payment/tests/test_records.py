from decimal import Decimal

from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from ecommerce.order.models import Order
from finance.payment.models import PaymentRecord
from .base import PaymentAPITestCase


class PaymentCreateTests(PaymentAPITestCase):

    def setUp(self):
        super().setUp()
        self.url = reverse('payment:payment-create')

    def test_create_pending_payment(self):
        response = self.client.post(self.url, {
            'id': 'PAY123',
            'order_id': 'ORD456',
            'phone_number': '0712345678',
            'payment_method': 'mpesa',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        body = response.json()
        self.assertTrue(body['success'])
        self.assertEqual(body['data']['id'], 'PAY123')
        self.assertEqual(body['data']['order_id'], 'ORD456')
        self.assertEqual(body['data']['status'], 'pending')
        self.assertEqual(body['data']['phone_display'], '+254 712 345 678')

        payment = PaymentRecord.objects.get(pk='PAY123')
        self.assertEqual(payment.user, self.user)
        self.assertIsNone(payment.checkout_request_id)
        self.assertEqual(Order.objects.get(pk='ORD456').payment_id, 'PAY123')

    def test_amount_comes_from_order(self):
        self.order.total = Decimal('11.20')
        self.order.save()

        response = self.client.post(self.url, {
            'id': 'PAY123',
            'order_id': 'ORD456',
            'phone_number': '0712345678',
            'amount': '1.00',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(PaymentRecord.objects.get(pk='PAY123').amount, Decimal('11.20'))

    def test_recreating_own_payment_returns_existing(self):
        self.create_payment()

        response = self.client.post(self.url, {
            'id': 'PAY123', 'order_id': 'ORD456', 'phone_number': '0712345678',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json()['message'], 'Payment already exists')
        self.assertEqual(PaymentRecord.objects.count(), 1)

    def test_payment_id_owned_by_someone_else(self):
        other = self.create_other_user()
        other_order = Order.objects.create(id='ORD999', user=other, total=Decimal('50.00'))
        self.create_payment('PAY999', order=other_order)

        response = self.client.post(self.url, {
            'id': 'PAY999', 'order_id': 'ORD456', 'phone_number': '0712345678',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.json()['error']['code'], 'PAYMENT_ID_CONFLICT')
        self.assertEqual(PaymentRecord.objects.get(pk='PAY999').order_id, 'ORD999')

    def test_foreign_order_is_forbidden(self):
        other = self.create_other_user()
        Order.objects.create(id='ORD999', user=other, total=Decimal('50.00'))

        response = self.client.post(self.url, {
            'id': 'PAY123', 'order_id': 'ORD999', 'phone_number': '0712345678',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(PaymentRecord.objects.exists())

    def test_unknown_order(self):
        response = self.client.post(self.url, {
            'id': 'PAY123', 'order_id': 'NOPE', 'phone_number': '0712345678',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_invalid_phone(self):
        response = self.client.post(self.url, {
            'id': 'PAY123', 'order_id': 'ORD456', 'phone_number': '123',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        body = response.json()
        self.assertEqual(body['error']['code'], 'VALIDATION_ERROR')
        self.assertIn('phone_number', body['error']['details']['fields'])

    def test_requires_authentication(self):
        response = APIClient().post(self.url, {
            'id': 'PAY123', 'order_id': 'ORD456', 'phone_number': '0712345678',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.json()['success'])
        self.assertEqual(response.json()['error']['code'], 'NOT_AUTHENTICATED')


class PaymentDetailTests(PaymentAPITestCase):

    def test_owner_can_read_payment(self):
        self.create_payment(status=PaymentRecord.PROCESSING, checkout_request_id='ws_abc')

        response = self.client.get(reverse('payment:payment-detail', args=['PAY123']))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.json()['data']
        self.assertEqual(data['status'], 'processing')
        self.assertEqual(data['checkout_request_id'], 'ws_abc')
        self.assertIsNone(data['mpesa_receipt_number'])

    def test_other_users_payment_is_not_found(self):
        other = self.create_other_user()
        other_order = Order.objects.create(id='ORD999', user=other, total=Decimal('50.00'))
        self.create_payment('PAY999', order=other_order)

        response = self.client.get(reverse('payment:payment-detail', args=['PAY999']))

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.json()['error']['code'], 'RESOURCE_NOT_FOUND')

    def test_missing_payment(self):
        response = self.client.get(reverse('payment:payment-detail', args=['NOPE']))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
