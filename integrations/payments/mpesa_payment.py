from django.core.cache import cache
from datetime import datetime
import base64
import requests
import logging

from ..services.config_service import IntegrationConfigService

logger = logging.getLogger(__name__)


class MpesaError(Exception):
    """Base class for failures talking to the Daraja API."""


class MpesaConfigurationError(MpesaError):
    pass


class MpesaAuthError(MpesaError):
    pass


class MpesaRequestError(MpesaError):
    pass


class MpesaPaymentService:
    """
    M-Pesa Daraja client: OAuth token, STK password and push submission.
    Used by finance.payment.services.PaymentOrchestrationService.
    """

    TOKEN_CACHE_KEY = 'mpesa_access_token:{environment}:{short_code}'
    TOKEN_EXPIRY_MARGIN = 60
    SUCCESS_RESPONSE_CODE = '0'

    def __init__(self, config=None):
        self.config = config or IntegrationConfigService.get_mpesa_config()

    def _ensure_configured(self):
        if not IntegrationConfigService.is_mpesa_configured(self.config):
            raise MpesaConfigurationError("Mpesa settings not configured")

    def get_access_token(self):
        """
        Returns a valid access token from Safaricom Daraja.
        Cached slightly shorter than the lifetime Daraja reports.
        """
        self._ensure_configured()
        cache_key = self.TOKEN_CACHE_KEY.format(
            environment=self.config['environment'], short_code=self.config['short_code']
        )
        token = cache.get(cache_key)
        if token:
            return token

        try:
            auth_resp = requests.get(
                f"{self.config['base_url']}/oauth/v1/generate?grant_type=client_credentials",
                auth=(self.config['consumer_key'], self.config['consumer_secret']),
                timeout=20,
            )
            token_data = auth_resp.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Mpesa token request failed: {str(e)}")
            raise MpesaAuthError("Failed to authenticate with M-Pesa") from e

        token = token_data.get('access_token') if isinstance(token_data, dict) else None
        if not token:
            logger.error(f"Failed to get Daraja access token: {token_data}")
            raise MpesaAuthError("Failed to authenticate with M-Pesa")

        try:
            expires_in = int(token_data.get('expires_in', 3599))
        except (TypeError, ValueError):
            expires_in = 3599
        cache.set(cache_key, token, timeout=max(expires_in - self.TOKEN_EXPIRY_MARGIN, 60))
        return token

    @staticmethod
    def generate_password(short_code, passkey, timestamp=None):
        """
        Base64 of ShortCode + PassKey + Timestamp.

        Returns:
            (password, timestamp) where timestamp is 'YYYYMMDDHHMMSS'
        """
        timestamp = timestamp or datetime.now().strftime('%Y%m%d%H%M%S')
        password = base64.b64encode(f"{short_code}{passkey}{timestamp}".encode()).decode('utf-8')
        return password, timestamp

    def initiate_stk_push(self, phone, amount, callback_url, account_reference=None, description="Payment"):
        """
        Submit an STK push prompt to the customer's phone.

        Returns the gateway's JSON body whatever its ResponseCode; the caller
        decides what acceptance means. Transport failures raise MpesaRequestError.
        """
        access_token = self.get_access_token()
        password, timestamp = self.generate_password(self.config['short_code'], self.config['passkey'])

        payload = {
            "BusinessShortCode": self.config['short_code'],
            "Password": password,
            "Timestamp": timestamp,
            "TransactionType": self.config['transaction_type'],
            "Amount": int(amount),
            "PartyA": phone,
            "PartyB": self.config['short_code'],
            "PhoneNumber": phone,
            "CallBackURL": callback_url,
            "AccountReference": account_reference or self.config['account_reference'],
            "TransactionDesc": description,
        }
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

        try:
            resp = requests.post(
                f"{self.config['base_url']}/mpesa/stkpush/v1/processrequest",
                json=payload,
                headers=headers,
                timeout=self.config['request_timeout'],
            )
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Mpesa STK initiation error: {str(e)}")
            raise MpesaRequestError("STK Push request failed") from e

        logger.info(f"M-Pesa STK Push response: {data}")
        return data if isinstance(data, dict) else {'errorMessage': str(data)}

    @classmethod
    def is_accepted(cls, response_data):
        return str(response_data.get('ResponseCode')) == cls.SUCCESS_RESPONSE_CODE
