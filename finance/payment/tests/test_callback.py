from unittest.mock import patch

from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from core.audit import log_stk_push_initiated
from ecommerce.order.models import Order
from finance.payment.models import PaymentRecord, PaymentLog
from finance.payment.services import PaymentOrchestrationService, CallbackOutcome
from .base import PaymentAPITestCase, stk_callback

ACK = {'ResultCode': 0, 'ResultDesc': 'Accepted'}


class MpesaCallbackTests(PaymentAPITestCase):

    def setUp(self):
        super().setUp()
        self.url = reverse('payment:mpesa-callback')
        # Daraja does not authenticate
        self.gateway = APIClient()
        self.payment = self.create_payment(
            status=PaymentRecord.PROCESSING,
            checkout_request_id='ws_abc',
            merchant_request_id='mr_abc',
        )

    def deliver(self, payload, **kwargs):
        return self.gateway.post(self.url, payload, format='json', **kwargs)

    def test_success_completes_payment_and_releases_order(self):
        response = self.deliver(stk_callback('ws_abc', receipt_number='QGR123XYZ'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json(), ACK)

        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, PaymentRecord.COMPLETED)
        self.assertEqual(self.payment.mpesa_receipt_number, 'QGR123XYZ')
        self.assertEqual(self.payment.result_code, '0')

        order = Order.objects.get(pk='ORD456')
        self.assertEqual(order.status, Order.PROCESSING)
        self.assertEqual(len(order.tracking_events), 1)
        self.assertIn('QGR123XYZ', order.tracking_events[0]['description'])

        entry = PaymentLog.objects.get(action=PaymentLog.CALLBACK_RECEIVED)
        self.assertTrue(entry.payload['is_success'])
        self.assertEqual(entry.payload['receipt'], 'QGR123XYZ')
        self.assertFalse(entry.payload['duplicate'])

    def test_duplicate_delivery_moves_order_once(self):
        payload = stk_callback('ws_abc', receipt_number='QGR123XYZ')

        self.deliver(payload)
        Order.objects.filter(pk='ORD456').update(status=Order.SHIPPED)
        response = self.deliver(payload)

        self.assertEqual(response.json(), ACK)
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, PaymentRecord.COMPLETED)
        order = Order.objects.get(pk='ORD456')
        self.assertEqual(order.status, Order.SHIPPED)
        self.assertEqual(len(order.tracking_events), 1)

        entries = PaymentLog.objects.filter(action=PaymentLog.CALLBACK_RECEIVED)
        self.assertEqual(entries.count(), 2)
        self.assertTrue(entries.last().payload['duplicate'])

    def test_failure_marks_payment_failed(self):
        response = self.deliver(stk_callback('ws_abc', result_code=1032, result_desc='Request cancelled by user'))

        self.assertEqual(response.json(), ACK)
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, PaymentRecord.FAILED)
        self.assertEqual(self.payment.result_code, '1032')
        self.assertEqual(self.payment.result_desc, 'Request cancelled by user')
        self.assertIsNone(self.payment.mpesa_receipt_number)
        self.assertEqual(Order.objects.get(pk='ORD456').status, Order.PENDING_PAYMENT)

    def test_late_success_does_not_reopen_failed_payment(self):
        self.deliver(stk_callback('ws_abc', result_code=1037, result_desc='DS timeout user cannot be reached'))
        self.deliver(stk_callback('ws_abc', receipt_number='QGR123XYZ'))

        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, PaymentRecord.FAILED)
        self.assertEqual(Order.objects.get(pk='ORD456').status, Order.PENDING_PAYMENT)

    def test_string_result_code(self):
        self.deliver(stk_callback('ws_abc', result_code='0', receipt_number='QGR123XYZ'))

        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, PaymentRecord.COMPLETED)

    def test_unmatched_checkout_id_changes_nothing(self):
        response = self.deliver(stk_callback('ws_unknown', receipt_number='QGR123XYZ'))

        self.assertEqual(response.json(), ACK)
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, PaymentRecord.PROCESSING)
        self.assertEqual(Order.objects.get(pk='ORD456').status, Order.PENDING_PAYMENT)
        self.assertFalse(PaymentLog.objects.exists())

    def test_malformed_bodies_are_acknowledged(self):
        for payload in [{}, {'Body': {}}, {'Body': {'stkCallback': 'nope'}}, {'Body': {'stkCallback': {}}}, ['x']]:
            response = self.deliver(payload)
            self.assertEqual(response.status_code, status.HTTP_200_OK)
            self.assertEqual(response.json(), ACK)

        response = self.gateway.post(self.url, 'not json', content_type='application/json')
        self.assertEqual(response.json(), ACK)

        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, PaymentRecord.PROCESSING)

    def test_internal_error_is_still_acknowledged(self):
        with patch('finance.payment.views.get_payment_service') as mock_service:
            mock_service.return_value.process_stk_callback.side_effect = RuntimeError('database is locked')
            response = self.deliver(stk_callback('ws_abc', receipt_number='QGR123XYZ'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json(), ACK)


class SupersededPromptTests(PaymentAPITestCase):
    """A retry replaced prompt ws_old with ws_new on the same payment."""

    def setUp(self):
        super().setUp()
        self.payment = self.create_payment(
            status=PaymentRecord.PROCESSING,
            checkout_request_id='ws_old',
            merchant_request_id='mr_old',
        )
        log_stk_push_initiated(self.payment, 12, '254712345678')
        self.payment.mark_processing('ws_new', 'mr_new')
        log_stk_push_initiated(self.payment, 12, '254712345678')
        self.service = PaymentOrchestrationService()

    def test_success_on_old_prompt_completes_payment(self):
        outcome = self.service.process_stk_callback(stk_callback('ws_old', receipt_number='QGR123XYZ'))

        self.assertEqual(outcome, CallbackOutcome.COMPLETED)
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, PaymentRecord.COMPLETED)
        self.assertEqual(self.payment.mpesa_receipt_number, 'QGR123XYZ')
        self.assertEqual(Order.objects.get(pk='ORD456').status, Order.PROCESSING)

    def test_failure_on_old_prompt_is_ignored(self):
        outcome = self.service.process_stk_callback(
            stk_callback('ws_old', result_code=1032, result_desc='Request cancelled by user')
        )

        self.assertEqual(outcome, CallbackOutcome.SUPERSEDED)
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, PaymentRecord.PROCESSING)
        self.assertEqual(self.payment.checkout_request_id, 'ws_new')

    def test_outcomes(self):
        self.assertEqual(self.service.process_stk_callback({'Body': {}}), CallbackOutcome.IGNORED)
        self.assertEqual(self.service.process_stk_callback(stk_callback('ws_nope')), CallbackOutcome.UNMATCHED)
        self.assertEqual(
            self.service.process_stk_callback(stk_callback('ws_new', receipt_number='QGR123XYZ')),
            CallbackOutcome.COMPLETED,
        )
        self.assertEqual(
            self.service.process_stk_callback(stk_callback('ws_new', receipt_number='QGR123XYZ')),
            CallbackOutcome.DUPLICATE,
        )


class ReceiptExtractionTests(PaymentAPITestCase):

    def test_receipt_is_read_by_name(self):
        callback = stk_callback('ws_abc', receipt_number='QGR123XYZ')['Body']['stkCallback']
        self.assertEqual(PaymentOrchestrationService.extract_receipt_number(callback), 'QGR123XYZ')

    def test_missing_metadata(self):
        self.assertIsNone(PaymentOrchestrationService.extract_receipt_number({'ResultCode': 1032}))
        self.assertIsNone(PaymentOrchestrationService.extract_receipt_number({'CallbackMetadata': {'Item': 'x'}}))
