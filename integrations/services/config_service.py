"""
Centralized Integration Configuration Service

Single place the payment code reads gateway settings from:
- Environment-backed Django settings (see BlossomBeautyAPI/settings.py)
- Defaults when a value is not configured
- Sandbox/production base URL selection
"""
from typing import Dict, Any
from django.conf import settings
import logging

logger = logging.getLogger(__name__)


class IntegrationConfigService:
    """
    Centralized service for M-Pesa (Daraja) configuration.
    """

    SANDBOX_URL = 'https://sandbox.safaricom.co.ke'
    PRODUCTION_URL = 'https://api.safaricom.co.ke'

    # Default configuration (used when a setting is not present)
    DEFAULT_MPESA_CONFIG = {
        'consumer_key': '',
        'consumer_secret': '',
        'passkey': '',
        'short_code': '',
        'environment': 'sandbox',
        'callback_url': '',
        'transaction_type': 'CustomerPayBillOnline',
        'account_reference': 'BlossomBeauty',
        'request_timeout': 30,
    }

    REQUIRED_MPESA_KEYS = ('consumer_key', 'consumer_secret', 'passkey', 'short_code')

    @classmethod
    def get_mpesa_config(cls) -> Dict[str, Any]:
        """
        Get M-Pesa configuration with the base URL resolved from the environment flag.
        """
        config = dict(cls.DEFAULT_MPESA_CONFIG)
        overrides = {
            'consumer_key': getattr(settings, 'MPESA_CONSUMER_KEY', None),
            'consumer_secret': getattr(settings, 'MPESA_CONSUMER_SECRET', None),
            'passkey': getattr(settings, 'MPESA_PASSKEY', None),
            'short_code': getattr(settings, 'MPESA_SHORTCODE', None),
            'environment': getattr(settings, 'MPESA_ENVIRONMENT', None),
            'callback_url': getattr(settings, 'MPESA_CALLBACK_URL', None),
            'account_reference': getattr(settings, 'MPESA_ACCOUNT_REFERENCE', None),
            'request_timeout': getattr(settings, 'MPESA_REQUEST_TIMEOUT', None),
        }
        config.update({key: value for key, value in overrides.items() if value not in (None, '')})

        config['environment'] = str(config['environment']).lower()
        config['base_url'] = cls.PRODUCTION_URL if config['environment'] == 'production' else cls.SANDBOX_URL
        return config

    @classmethod
    def is_mpesa_configured(cls, config: Dict[str, Any] = None) -> bool:
        config = config if config is not None else cls.get_mpesa_config()
        missing = [key for key in cls.REQUIRED_MPESA_KEYS if not config.get(key)]
        if missing:
            logger.warning(f"M-Pesa configuration incomplete, missing: {', '.join(missing)}")
            return False
        return True
