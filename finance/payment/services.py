"""
Payment orchestration for M-Pesa checkout.

Two server-side writers live here:
- the push-payment initiator (pending -> processing + gateway correlation ids)
- the callback receiver (processing -> completed/failed + receipt, order release)

Nothing else mutates a PaymentRecord.
"""
import logging
from decimal import Decimal, ROUND_CEILING
from django.db import IntegrityError, transaction

from core.audit import log_stk_push_initiated, log_callback_received
from core.validators import normalize_phone_number, is_valid_kenyan_phone
from ecommerce.order.models import Order
from finance.payment.models import PaymentRecord, PaymentLog
from finance.payment.exceptions import (
    Unauthorized, Forbidden, OrderNotFound, PaymentNotFound, PaymentIdConflict,
    InvalidPhoneNumber, PaymentAlreadyCompleted, GatewayConfigurationError,
    GatewayAuthError, GatewayRejected, GatewayUnavailable,
)
from integrations.payments.mpesa_payment import (
    MpesaPaymentService, MpesaConfigurationError, MpesaAuthError, MpesaRequestError,
)

logger = logging.getLogger(__name__)


class CallbackOutcome:
    """What the callback receiver did with a delivery. Never sent to the gateway."""
    IGNORED = 'ignored'          # malformed body
    UNMATCHED = 'unmatched'      # no payment carries this CheckoutRequestID
    DUPLICATE = 'duplicate'      # payment already terminal
    SUPERSEDED = 'superseded'    # failure for a prompt a retry replaced
    COMPLETED = 'completed'
    FAILED = 'failed'


class PaymentOrchestrationService:
    """
    Coordinates payment records, the M-Pesa gateway and the order they pay for.
    """

    RECEIPT_ITEM_NAME = 'MpesaReceiptNumber'

    def __init__(self, gateway=None):
        self._gateway = gateway

    @property
    def gateway(self):
        if self._gateway is None:
            self._gateway = MpesaPaymentService()
        return self._gateway

    # --- Payment record store ---

    def create_payment(self, user, payment_id, order_id, phone_number, payment_method='mpesa'):
        """
        Create the pending record a push payment will be tracked on.

        The amount always comes from the order. Re-creating a record the
        caller already owns returns it unchanged.

        Returns:
            (payment, created)
        """
        order = Order.objects.filter(id=order_id).first()
        if not order:
            raise OrderNotFound()
        if order.user_id != user.pk:
            raise Forbidden()

        existing = PaymentRecord.objects.filter(pk=payment_id).first()
        if existing:
            return self._existing_payment(existing, user, order), False

        try:
            with transaction.atomic():
                payment = PaymentRecord.objects.create(
                    id=payment_id,
                    order=order,
                    user=user,
                    phone_number=phone_number,
                    amount=order.total,
                    payment_method=payment_method,
                    status=PaymentRecord.PENDING,
                )
                Order.objects.filter(pk=order.pk).update(payment_id=payment.id)
        except IntegrityError:
            # Lost a race with a concurrent create for the same id
            existing = PaymentRecord.objects.get(pk=payment_id)
            return self._existing_payment(existing, user, order), False

        logger.info(f"Payment {payment.id} created for order {order.id} ({payment.amount})")
        return payment, True

    @staticmethod
    def _existing_payment(payment, user, order):
        if payment.user_id != user.pk or payment.order_id != order.id:
            raise PaymentIdConflict()
        logger.info(f"Payment {payment.id} already exists, reusing it")
        return payment

    @staticmethod
    def get_payment_for_user(user, payment_id):
        return PaymentRecord.objects.filter(pk=payment_id, user_id=user.pk).first()

    # --- Push-payment initiator ---

    @staticmethod
    def payable_amount(order):
        """Order total rounded up to whole shillings, the smallest unit Daraja accepts."""
        return int(Decimal(order.total).to_integral_value(rounding=ROUND_CEILING))

    def initiate_push_payment(self, user, order_id, payment_id, phone, callback_url,
                              account_reference=None, transaction_desc=None):
        """
        Send an STK push for an order the caller owns.

        Every check runs before the gateway is contacted. On acceptance the
        record moves to processing with the gateway's correlation ids; on any
        failure it is left as it was so the client can retry.

        Returns:
            The gateway's acceptance payload
        """
        if user is None or not getattr(user, 'is_authenticated', False):
            raise Unauthorized()

        order = Order.objects.filter(id=order_id).first()
        if not order:
            raise OrderNotFound()
        if order.user_id != user.pk:
            logger.warning(f"User {user.pk} attempted to pay for order {order.id} they do not own")
            raise Forbidden()

        normalized_phone = normalize_phone_number(phone)
        if not is_valid_kenyan_phone(normalized_phone):
            raise InvalidPhoneNumber()

        payment = PaymentRecord.objects.filter(pk=payment_id).first()
        if not payment:
            raise PaymentNotFound()
        if payment.order_id != order.id or payment.user_id != user.pk:
            raise Forbidden()
        if payment.status == PaymentRecord.COMPLETED:
            raise PaymentAlreadyCompleted()

        amount = self.payable_amount(order)
        description = transaction_desc or f"Payment for order {order.id}"

        logger.info(f"Initiating STK Push for order {order.id}, payment {payment.id}, amount {amount}")
        try:
            response_data = self.gateway.initiate_stk_push(
                phone=normalized_phone,
                amount=amount,
                callback_url=callback_url,
                account_reference=account_reference,
                description=description,
            )
        except MpesaConfigurationError:
            logger.error("M-Pesa credentials not configured")
            raise GatewayConfigurationError()
        except MpesaAuthError:
            raise GatewayAuthError()
        except MpesaRequestError:
            raise GatewayUnavailable()

        if not MpesaPaymentService.is_accepted(response_data):
            logger.error(f"M-Pesa STK Push failed for payment {payment.id}: {response_data}")
            raise GatewayRejected(
                response_data.get('ResponseDescription')
                or response_data.get('errorMessage')
                or GatewayRejected.default_detail
            )

        with transaction.atomic():
            payment = PaymentRecord.objects.select_for_update().get(pk=payment.pk)
            if payment.status == PaymentRecord.COMPLETED:
                # A callback for an earlier prompt finished it meanwhile
                logger.warning(f"Payment {payment.id} completed while a new prompt was being sent")
                return response_data
            if payment.checkout_request_id:
                logger.info(
                    f"Payment {payment.id} prompt {payment.checkout_request_id} superseded by "
                    f"{response_data.get('CheckoutRequestID')}"
                )
            payment.mark_processing(
                checkout_request_id=response_data.get('CheckoutRequestID'),
                merchant_request_id=response_data.get('MerchantRequestID'),
                amount=order.total,
            )
            log_stk_push_initiated(payment, amount, normalized_phone)

        logger.info(f"STK Push initiated: {payment.checkout_request_id}")
        return response_data

    # --- Callback receiver ---

    @staticmethod
    def extract_stk_callback(payload):
        if not isinstance(payload, dict):
            return None
        body = payload.get('Body')
        if not isinstance(body, dict):
            return None
        callback = body.get('stkCallback')
        return callback if isinstance(callback, dict) else None

    @classmethod
    def extract_receipt_number(cls, callback):
        metadata = callback.get('CallbackMetadata')
        items = metadata.get('Item') if isinstance(metadata, dict) else None
        if not isinstance(items, list):
            return None
        receipt = next(
            (
                item.get('Value')
                for item in items
                if isinstance(item, dict) and item.get('Name') == cls.RECEIPT_ITEM_NAME
            ),
            None,
        )
        return None if receipt is None else str(receipt)

    @staticmethod
    def is_success_code(result_code):
        try:
            return int(result_code) == 0
        except (TypeError, ValueError):
            return False

    @staticmethod
    def _find_superseded_payment(checkout_request_id):
        entry = (
            PaymentLog.objects
            .filter(action=PaymentLog.STK_PUSH_INITIATED, payload__checkout_request_id=checkout_request_id)
            .order_by('-created_at', '-id')
            .first()
        )
        if not entry:
            return None
        return PaymentRecord.objects.select_for_update().filter(pk=entry.payment_id).first()

    def process_stk_callback(self, payload):
        """
        Apply a gateway result callback.

        Safe to call repeatedly with the same delivery: a payment that is
        already terminal keeps its state and the order moves at most once.

        Returns:
            One of the CallbackOutcome values
        """
        callback = self.extract_stk_callback(payload)
        if callback is None:
            logger.warning("No stkCallback in body, acknowledging.")
            return CallbackOutcome.IGNORED

        checkout_request_id = callback.get('CheckoutRequestID')
        if not checkout_request_id:
            logger.warning("Missing CheckoutRequestID in callback, acknowledging.")
            return CallbackOutcome.IGNORED

        result_code = callback.get('ResultCode')
        result_desc = callback.get('ResultDesc')
        receipt_number = self.extract_receipt_number(callback)
        is_success = self.is_success_code(result_code)

        with transaction.atomic():
            superseded = False
            payment = (
                PaymentRecord.objects.select_for_update()
                .filter(checkout_request_id=checkout_request_id)
                .first()
            )
            if payment is None:
                payment = self._find_superseded_payment(checkout_request_id)
                if payment is None:
                    logger.warning(f"Payment not found for CheckoutRequestID: {checkout_request_id}")
                    return CallbackOutcome.UNMATCHED
                superseded = True

            audit_kwargs = dict(
                checkout_request_id=checkout_request_id,
                result_code=result_code,
                result_desc=result_desc,
                is_success=is_success,
                receipt_number=receipt_number,
                superseded=superseded,
            )

            if payment.is_terminal:
                logger.info(f"Payment {payment.id} already {payment.status}, callback is a duplicate")
                log_callback_received(payment, duplicate=True, **audit_kwargs)
                return CallbackOutcome.DUPLICATE

            if superseded and not is_success:
                logger.info(
                    f"Ignoring failed result for superseded prompt {checkout_request_id} on payment {payment.id}"
                )
                log_callback_received(payment, **audit_kwargs)
                return CallbackOutcome.SUPERSEDED

            payment.apply_callback_result(
                is_success=is_success,
                result_code=result_code,
                result_desc=result_desc,
                receipt_number=receipt_number,
            )

            if is_success:
                order = Order.objects.select_for_update().filter(pk=payment.order_id).first()
                if order is None:
                    logger.error(f"Order {payment.order_id} for payment {payment.id} no longer exists")
                else:
                    order.mark_payment_received(receipt_number)

            log_callback_received(payment, **audit_kwargs)

        logger.info(f"Payment {payment.id} {payment.status} via callback (ResultCode {result_code})")
        return CallbackOutcome.COMPLETED if is_success else CallbackOutcome.FAILED


def get_payment_service(gateway=None):
    """Get a payment orchestration service, optionally with an explicit gateway client."""
    return PaymentOrchestrationService(gateway=gateway)
