"""
REST client for the payment relay, as used by the checkout session.

Every failure comes back as a display string; no transport exception
reaches the caller.
"""
import requests
import logging

logger = logging.getLogger(__name__)

NETWORK_ERROR_MESSAGE = "Network error. Please check your connection and try again."
GENERIC_ERROR_MESSAGE = "Failed to initiate payment"


class PaymentAPIClient:
    """
    Talks to /api/v1/payments/ with the customer's bearer token.

    `session` may be any object with requests.Session's post/get signature.
    """

    def __init__(self, base_url, token, session=None, timeout=30):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.session = session or requests.Session()
        self.timeout = timeout

    def _headers(self):
        return {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
        }

    def _url(self, path):
        return f"{self.base_url}/api/v1/payments/{path}"

    @staticmethod
    def _json(resp):
        try:
            data = resp.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _error_message(data, default):
        error = data.get('error')
        if isinstance(error, dict):
            return error.get('message') or error.get('detail') or default
        return error or data.get('message') or default

    def create_payment(self, payment_id, order_id, phone_number, payment_method='mpesa'):
        """
        Create (or confirm) the pending payment record.

        Returns:
            {'success': True, 'data': record} or {'success': False, 'error': message}
        """
        try:
            resp = self.session.post(
                self._url(''),
                json={
                    'id': payment_id,
                    'order_id': order_id,
                    'phone_number': phone_number,
                    'payment_method': payment_method,
                },
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"Create payment request failed: {str(e)}")
            return {'success': False, 'error': NETWORK_ERROR_MESSAGE}

        data = self._json(resp)
        if 200 <= resp.status_code < 300:
            return {'success': True, 'data': data.get('data')}
        return {'success': False, 'error': self._error_message(data, "Could not create payment")}

    def initiate_stk_push(self, phone, order_id, payment_id, account_reference=None, transaction_desc=None):
        """
        Ask the relay to send the STK prompt.

        Returns:
            {'success': True, 'data': gateway payload} or {'success': False, 'error': message}
        """
        payload = {'phone': phone, 'orderId': order_id, 'paymentId': payment_id}
        if account_reference:
            payload['accountReference'] = account_reference
        if transaction_desc:
            payload['transactionDesc'] = transaction_desc

        try:
            resp = self.session.post(
                self._url('mpesa/stk-push/'),
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"STK push request failed: {str(e)}")
            return {'success': False, 'error': NETWORK_ERROR_MESSAGE}

        data = self._json(resp)
        if not 200 <= resp.status_code < 300:
            return {'success': False, 'error': self._error_message(data, GENERIC_ERROR_MESSAGE)}
        if str(data.get('ResponseCode')) != '0':
            return {
                'success': False,
                'error': data.get('ResponseDescription') or data.get('errorMessage') or GENERIC_ERROR_MESSAGE,
            }
        return {'success': True, 'data': data}

    def fetch_payment(self, payment_id):
        """Current server view of the record, or None when it cannot be read."""
        try:
            resp = self.session.get(self._url(f'{payment_id}/'), headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"Fetch payment {payment_id} failed: {str(e)}")
            return None

        if resp.status_code != 200:
            logger.warning(f"Fetch payment {payment_id} returned {resp.status_code}")
            return None
        record = self._json(resp).get('data')
        return record if isinstance(record, dict) else None
