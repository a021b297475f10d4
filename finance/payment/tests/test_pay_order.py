from io import StringIO
from unittest.mock import patch

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import SimpleTestCase

from ecommerce.checkout.session import PaymentSession
from ecommerce.checkout.tests.fakes import ManualScheduler, FakePaymentAPI
from finance.payment.management.commands.pay_order import TIMEOUT_MESSAGE

COMMAND = 'finance.payment.management.commands.pay_order'
PROCESSING = {'id': 'PAY123', 'status': 'processing', 'mpesa_receipt_number': None, 'result_desc': None}
COMPLETED = {'id': 'PAY123', 'status': 'completed', 'mpesa_receipt_number': 'QGR123XYZ', 'result_desc': 'ok'}


class PayOrderCommandTests(SimpleTestCase):

    def setUp(self):
        self.api = FakePaymentAPI()
        self.scheduler = ManualScheduler()
        patcher_client = patch(f'{COMMAND}.PaymentAPIClient', return_value=self.api)
        patcher_timers = patch(f'{COMMAND}.TimerScheduler', return_value=self.scheduler)
        patcher_client.start()
        patcher_timers.start()
        self.addCleanup(patcher_client.stop)
        self.addCleanup(patcher_timers.stop)

    def pay(self):
        out = StringIO()
        call_command(
            'pay_order', order='ORD456', payment='PAY123', phone='0712345678', token='t0ken', stdout=out
        )
        return out.getvalue()

    def test_unsettled_wait_cancels_and_reports_timeout(self):
        self.api.record = PROCESSING

        with patch.object(PaymentSession, 'wait', return_value=False):
            with self.assertRaisesMessage(CommandError, TIMEOUT_MESSAGE):
                self.pay()

        self.assertEqual(self.scheduler.active_jobs, [])
        self.assertEqual(len(self.api.calls_named('push')), 1)

    def test_completed_payment(self):
        self.api.record = COMPLETED

        def settle(timeout=None):
            self.scheduler.advance(3)
            return True

        with patch.object(PaymentSession, 'wait', side_effect=settle):
            out = self.pay()

        self.assertIn('Enter your M-Pesa PIN', out)
        self.assertIn('Payment completed for order ORD456 (receipt QGR123XYZ)', out)
