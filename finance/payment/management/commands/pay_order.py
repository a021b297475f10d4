from django.core.management.base import BaseCommand, CommandError
from ecommerce.checkout.api_client import PaymentAPIClient
from ecommerce.checkout.session import PaymentSession, MAX_WAIT_SECONDS
from ecommerce.checkout.timers import TimerScheduler
from core.validators import format_phone_display

TIMEOUT_MESSAGE = "Timed out waiting for confirmation. The payment may still complete; check the order later."


class Command(BaseCommand):
    help = 'Pays an order with M-Pesa against a running payment relay and waits for the result'

    def add_arguments(self, parser):
        parser.add_argument('--order', required=True, help='Order id to pay')
        parser.add_argument('--payment', required=True, help='Client-generated payment id')
        parser.add_argument('--phone', required=True, help='Safaricom number, e.g. 0712345678')
        parser.add_argument('--token', required=True, help='API token of the order owner')
        parser.add_argument('--user', default='cli', help='User id shown in the session (default: cli)')
        parser.add_argument(
            '--base-url',
            default='http://localhost:8000',
            help='Payment relay base URL (default: http://localhost:8000)',
        )
        parser.add_argument(
            '--retries',
            type=int,
            default=0,
            help='Times to retry after failure or timeout (default: 0)',
        )

    def handle(self, *args, **options):
        client = PaymentAPIClient(options['base_url'], options['token'])
        scheduler = TimerScheduler()

        def report(session, state):
            if state == PaymentSession.WAITING:
                self.stdout.write(
                    f"Prompt sent to {format_phone_display(session.phone)}. Enter your M-Pesa PIN on the phone."
                )

        session = PaymentSession(
            api_client=client,
            scheduler=scheduler,
            user_id=options['user'],
            order_id=options['order'],
            payment_id=options['payment'],
            phone=options['phone'],
            on_state_change=report,
        )

        try:
            session.start()
            settled = session.wait(MAX_WAIT_SECONDS + 5)
            retries = options['retries']
            while settled and session.state in PaymentSession.RETRYABLE_STATES and retries > 0:
                retries -= 1
                self.stdout.write(self.style.WARNING(f"{session.state}: {session.error_message}. Retrying..."))
                session.retry()
                settled = session.wait(MAX_WAIT_SECONDS + 5)
            if not settled:
                session.cancel()
        finally:
            scheduler.shutdown()

        if session.state == PaymentSession.COMPLETED:
            result = session.confirm()
            self.stdout.write(self.style.SUCCESS(
                f"Payment completed for order {result['order_id']} (receipt {result['receipt_number'] or 'n/a'})"
            ))
            return

        if not settled or session.state == PaymentSession.TIMEOUT:
            raise CommandError(TIMEOUT_MESSAGE)
        raise CommandError(f"Payment {session.state}: {session.error_message or 'no details'}")
