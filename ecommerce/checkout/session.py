"""
M-Pesa payment session, the device side of checkout.

Drives one payment from "send the prompt" to a final answer:
create the pending record, ask the relay for an STK push, then poll the
record every few seconds while a countdown runs. The server decides the
outcome; a local timeout only means we stopped waiting.
"""
from functools import partial
import logging
import math
import threading

from core.validators import normalize_phone_number, is_valid_kenyan_phone

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 3
MAX_WAIT_SECONDS = 60
COUNTDOWN_INTERVAL_SECONDS = 1

ACCOUNT_REFERENCE = 'BlossomBeauty'

MISSING_CONTEXT_MESSAGE = "Missing payment information. Please go back and try again."
INVALID_PHONE_MESSAGE = "Please enter a valid Safaricom number (e.g. 0712345678)."
NOT_COMPLETED_MESSAGE = "Payment was not completed"
UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred"


class PaymentSession:
    """
    State machine for a single checkout payment.

    States: initiating -> waiting -> completed | failed | timeout, or error
    when the prompt could not be sent. failed, timeout and error can be
    retried with the same ids; cancel() closes the session from any state.

    The api client and scheduler are injected (see api_client.PaymentAPIClient
    and timers.TimerScheduler).
    """

    INITIATING = 'initiating'
    WAITING = 'waiting'
    COMPLETED = 'completed'
    FAILED = 'failed'
    TIMEOUT = 'timeout'
    ERROR = 'error'

    RETRYABLE_STATES = (FAILED, TIMEOUT, ERROR)
    FINAL_STATES = (COMPLETED, FAILED, TIMEOUT, ERROR)

    def __init__(self, api_client, scheduler, user_id, order_id, payment_id, phone,
                 poll_interval=POLL_INTERVAL_SECONDS, max_wait=MAX_WAIT_SECONDS,
                 on_state_change=None, on_exit=None):
        self.api_client = api_client
        self.scheduler = scheduler
        self.user_id = user_id
        self.order_id = order_id
        self.payment_id = payment_id
        self.phone = phone
        self.poll_interval = poll_interval
        self.max_wait = max_wait
        self.on_state_change = on_state_change
        self.on_exit = on_exit

        self.state = self.INITIATING
        self.seconds_left = max_wait
        self.error_message = ''
        self.receipt_number = ''
        self.closed = False

        self._started = False
        self._attempt = 0
        self._deadline = None
        self._lock = threading.RLock()
        self._poll_timer = None
        self._countdown_timer = None
        self._settled = threading.Event()

    # --- Public actions ---

    def start(self):
        """
        Run the entry logic once; the session is waiting or settled afterwards.

        Returns False if the session was already started or closed.
        """
        with self._lock:
            if self.closed or self._started:
                return False
            self._started = True
        self._enter()
        return True

    def retry(self):
        """
        Try again with the same order and payment ids.

        The record is re-read first: if a late callback already completed it,
        no new prompt is sent.
        """
        with self._lock:
            if self.closed or self.state not in self.RETRYABLE_STATES:
                return False
            self._stop_timers()
            self.error_message = ''
            self.receipt_number = ''
            # Claims the retry; _enter() announces the state
            self.state = self.INITIATING

        record = None
        if self.payment_id:
            try:
                record = self.api_client.fetch_payment(self.payment_id)
            except Exception as e:
                logger.warning(f"Could not re-check payment {self.payment_id} before retrying: {str(e)}")
        if record and record.get('status') == 'completed':
            with self._lock:
                if self.closed:
                    return False
                self.receipt_number = record.get('mpesa_receipt_number') or ''
                self._set_state(self.COMPLETED)
            return True

        self._enter()
        return True

    def cancel(self):
        """Leave the payment screen. The server is not told; the prompt may still be answered."""
        with self._lock:
            if self.closed:
                return
            self._stop_timers()
            self.closed = True
            self._started = True
            self._attempt += 1
            self._settled.set()
        logger.info(f"Payment session for {self.payment_id} cancelled")
        if self.on_exit:
            self.on_exit(None)

    def confirm(self):
        """
        Hand over to the order confirmation step.

        Returns:
            {'order_id', 'payment_method', 'receipt_number'} or None unless completed
        """
        with self._lock:
            if self.closed or self.state != self.COMPLETED:
                return None
            self.closed = True
            self._stop_timers()
        result = {
            'order_id': self.order_id,
            'payment_method': 'mpesa',
            'receipt_number': self.receipt_number,
        }
        if self.on_exit:
            self.on_exit(result)
        return result

    def wait(self, timeout=None):
        """Block until the session settles. Returns False if timeout elapsed first."""
        return self._settled.wait(timeout)

    # --- Entry logic ---

    def _enter(self):
        with self._lock:
            if self.closed:
                return
            self._stop_timers()
            self._attempt += 1
            attempt = self._attempt
            self._settled.clear()

            if not all([self.user_id, self.order_id, self.payment_id, self.phone]):
                self._fail(MISSING_CONTEXT_MESSAGE)
                return
            if not is_valid_kenyan_phone(self.phone):
                self._fail(INVALID_PHONE_MESSAGE)
                return

            self.seconds_left = self.max_wait
            self._set_state(self.INITIATING)

        normalized_phone = normalize_phone_number(self.phone)
        try:
            created = self.api_client.create_payment(
                payment_id=self.payment_id,
                order_id=self.order_id,
                phone_number=normalized_phone,
            )
            if not created.get('success'):
                logger.info(f"Payment record may already exist, continuing... ({created.get('error')})")

            result = self.api_client.initiate_stk_push(
                phone=normalized_phone,
                order_id=self.order_id,
                payment_id=self.payment_id,
                account_reference=ACCOUNT_REFERENCE,
                transaction_desc=f"Payment for order {self.order_id}",
            )
        except Exception as e:
            logger.error(f"Payment initiation error: {str(e)}", exc_info=True)
            result = {'success': False, 'error': UNEXPECTED_ERROR_MESSAGE}

        with self._lock:
            if not self._is_current(attempt):
                return
            if not result.get('success'):
                logger.info(f"STK Push failed: {result.get('error')}")
                self._fail(result.get('error') or UNEXPECTED_ERROR_MESSAGE)
                return

            logger.info(f"STK Push initiated: {result['data'].get('CheckoutRequestID')}")
            self._set_state(self.WAITING)
            self._start_timers(attempt)

    def _fail(self, message):
        self._stop_timers()
        self.error_message = message
        self._set_state(self.ERROR)

    # --- Timers ---

    def _start_timers(self, attempt):
        logger.info(f"Starting status polling for payment: {self.payment_id}")
        self._deadline = self.scheduler.clock() + self.max_wait
        self._countdown_timer = self.scheduler.every(
            COUNTDOWN_INTERVAL_SECONDS, partial(self._tick, attempt), name='payment-countdown'
        )
        self._poll_timer = self.scheduler.every(
            self.poll_interval, partial(self._poll, attempt), name='payment-poll', blocking=True
        )

    def _stop_timers(self):
        for timer in (self._poll_timer, self._countdown_timer):
            if timer is not None:
                timer.cancel()
        self._poll_timer = None
        self._countdown_timer = None

    def _is_current(self, attempt):
        return not self.closed and attempt == self._attempt

    def _tick(self, attempt):
        with self._lock:
            if not self._is_current(attempt) or self.state != self.WAITING:
                return
            self.seconds_left = max(0, math.ceil(self._deadline - self.scheduler.clock()))
            if self.seconds_left == 0:
                self._stop_timers()
                logger.info(f"Stopped waiting for payment {self.payment_id}")
                self._set_state(self.TIMEOUT)

    def _poll(self, attempt):
        with self._lock:
            if not self._is_current(attempt) or self.state != self.WAITING:
                return

        try:
            record = self.api_client.fetch_payment(self.payment_id)
        except Exception as e:
            logger.warning(f"Poll error: {str(e)}")
            return

        status = record.get('status') if record else None
        logger.debug(f"Poll result: {status}")

        with self._lock:
            if not self._is_current(attempt) or self.state != self.WAITING:
                return
            if status == 'completed':
                self._stop_timers()
                self.receipt_number = record.get('mpesa_receipt_number') or ''
                self._set_state(self.COMPLETED)
            elif status in ('failed', 'cancelled'):
                self._stop_timers()
                self.error_message = record.get('result_desc') or NOT_COMPLETED_MESSAGE
                self._set_state(self.FAILED)

    def _set_state(self, state):
        self.state = state
        if state in self.FINAL_STATES:
            self._settled.set()
        if self.on_state_change:
            self.on_state_change(self, state)
