from rest_framework import status
from rest_framework.exceptions import APIException


class PaymentError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Payment request failed.'
    default_code = 'payment_error'

    @property
    def message(self):
        return str(self.detail)


class Unauthorized(PaymentError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = 'Authentication required.'
    default_code = 'unauthorized'


class Forbidden(PaymentError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'You do not have permission to pay for this order.'
    default_code = 'forbidden'


class OrderNotFound(PaymentError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Order not found.'
    default_code = 'order_not_found'


class PaymentNotFound(PaymentError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Payment not found.'
    default_code = 'payment_not_found'


class PaymentIdConflict(PaymentError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Payment id is already in use.'
    default_code = 'payment_id_conflict'


class InvalidPhoneNumber(PaymentError):
    default_detail = 'Please enter a valid Safaricom number (e.g. 0712345678).'
    default_code = 'invalid_phone'


class PaymentAlreadyCompleted(PaymentError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'This payment has already been completed.'
    default_code = 'payment_completed'


class GatewayConfigurationError(PaymentError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = 'M-Pesa payments are not available right now.'
    default_code = 'gateway_not_configured'


class GatewayAuthError(PaymentError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = 'Could not connect to payment provider.'
    default_code = 'gateway_auth_failed'


class GatewayRejected(PaymentError):
    default_detail = 'Failed to initiate M-Pesa payment.'
    default_code = 'gateway_rejected'


class GatewayUnavailable(PaymentError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = 'Network error, please retry.'
    default_code = 'gateway_unavailable'
