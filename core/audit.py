"""
Payment Audit Trail

Append-only record of payment transitions:
- Which payment, order and user the entry belongs to
- What happened (action tag)
- A structured snapshot of the data at that moment

Entries are written to the payment_logs table and mirrored to the 'audit'
logger. They exist for forensic reconstruction, never for control flow.
"""

import logging
from typing import Any, Dict, Optional
from django.db import transaction
from django.utils import timezone

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger('audit')


class AuditTrail:
    """
    Audit trail tracking for payment operations.
    """

    # Action tags
    STK_PUSH_INITIATED = 'stk_push_initiated'
    CALLBACK_RECEIVED = 'callback_received'

    ACTIONS = [STK_PUSH_INITIATED, CALLBACK_RECEIVED]

    @staticmethod
    def log(
        action: str,
        payment_id: Any,
        order_id: Any = None,
        user_id: Any = None,
        payload: Optional[Dict[str, Any]] = None,
    ):
        """
        Append an audit trail entry.

        Args:
            action: One of AuditTrail.ACTIONS
            payment_id: Payment record id
            order_id: Order the payment belongs to
            user_id: Owner of the payment
            payload: JSON-serializable snapshot of the transition

        Returns:
            PaymentLog or None if the entry could not be written

        Example:
            AuditTrail.log(
                action=AuditTrail.CALLBACK_RECEIVED,
                payment_id=payment.id,
                order_id=payment.order_id,
                user_id=payment.user_id,
                payload={'result_code': 0, 'is_success': True, 'receipt': 'QGR123XYZ'},
            )
        """
        # Dynamic import to avoid circular imports
        from finance.payment.models import PaymentLog

        audit_record = {
            'timestamp': timezone.now().isoformat(),
            'action': action,
            'payment_id': str(payment_id),
            'order_id': None if order_id is None else str(order_id),
            'user_id': None if user_id is None else str(user_id),
            'payload': payload or {},
        }

        try:
            # Savepoint so a failed insert does not poison the caller's transaction
            with transaction.atomic():
                entry = PaymentLog.objects.create(
                    payment_id=audit_record['payment_id'],
                    order_id=audit_record['order_id'],
                    user_id=audit_record['user_id'],
                    action=action,
                    payload=audit_record['payload'],
                )
        except Exception as e:
            # The audit trail must never undo the transition it describes
            logger.error(f"Error writing audit trail for payment {payment_id}: {str(e)}", exc_info=True)
            return None

        audit_logger.info(
            f"AUDIT: {action} payment#{payment_id} order#{order_id}",
            extra={'audit': audit_record}
        )
        return entry


def log_stk_push_initiated(payment, amount, phone_number):
    """Log an accepted STK push."""
    return AuditTrail.log(
        action=AuditTrail.STK_PUSH_INITIATED,
        payment_id=payment.id,
        order_id=payment.order_id,
        user_id=payment.user_id,
        payload={
            'checkout_request_id': payment.checkout_request_id,
            'merchant_request_id': payment.merchant_request_id,
            'amount': amount,
            'phone_number': phone_number,
        },
    )


def log_callback_received(payment, checkout_request_id, result_code, result_desc, is_success,
                          receipt_number=None, duplicate=False, superseded=False):
    """Log a gateway callback that matched a payment."""
    return AuditTrail.log(
        action=AuditTrail.CALLBACK_RECEIVED,
        payment_id=payment.id,
        order_id=payment.order_id,
        user_id=payment.user_id,
        payload={
            'checkout_request_id': checkout_request_id,
            'result_code': result_code,
            'result_desc': result_desc,
            'is_success': is_success,
            'receipt': receipt_number,
            'duplicate': duplicate,
            'superseded': superseded,
        },
    )
