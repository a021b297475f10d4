"""
API endpoints for M-Pesa checkout payments
"""
from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework.exceptions import AuthenticationFailed, NotAuthenticated
from django.conf import settings
from django.urls import reverse
from drf_spectacular.utils import extend_schema, OpenApiResponse
from drf_spectacular.types import OpenApiTypes

from .services import get_payment_service
from .serializers import (
    PaymentRecordSerializer,
    PaymentCreateSerializer,
    StkPushRequestSerializer,
    StkCallbackResponseSerializer,
)
from .exceptions import PaymentError, Unauthorized
from core.response import APIResponse, get_correlation_id
import logging

logger = logging.getLogger(__name__)

CALLBACK_ACK = {"ResultCode": 0, "ResultDesc": "Accepted"}


class PaymentCreateView(APIView):
    """
    Create the pending payment record a checkout will be tracked on
    """
    permission_classes = [IsAuthenticated]

    @extend_schema(request=PaymentCreateSerializer, responses={201: PaymentRecordSerializer, 200: PaymentRecordSerializer})
    def post(self, request, format=None):
        correlation_id = get_correlation_id(request)
        serializer = PaymentCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return APIResponse.validation_error(errors=serializer.errors, correlation_id=correlation_id)

        data = serializer.validated_data
        try:
            payment, created = get_payment_service().create_payment(
                user=request.user,
                payment_id=data['id'],
                order_id=data['order_id'],
                phone_number=data['phone_number'],
                payment_method=data.get('payment_method', 'mpesa'),
            )
        except PaymentError as e:
            return APIResponse.error(
                error_code=e.default_code.upper(),
                message=e.message,
                status_code=e.status_code,
                correlation_id=correlation_id,
            )

        payload = PaymentRecordSerializer(payment).data
        if created:
            return APIResponse.created(data=payload, message='Payment created', correlation_id=correlation_id)
        return APIResponse.success(data=payload, message='Payment already exists', correlation_id=correlation_id)


class PaymentDetailView(APIView):
    """
    Polling read of a single payment record, owner only
    """
    permission_classes = [IsAuthenticated]

    @extend_schema(responses={200: PaymentRecordSerializer})
    def get(self, request, payment_id, format=None):
        correlation_id = get_correlation_id(request)
        payment = get_payment_service().get_payment_for_user(request.user, payment_id)
        if payment is None:
            return APIResponse.not_found(message='Payment not found', correlation_id=correlation_id)
        return APIResponse.success(
            data=PaymentRecordSerializer(payment).data,
            message='Payment retrieved',
            correlation_id=correlation_id,
        )


class StkPushView(APIView):
    """
    Initiate an M-Pesa STK push for an order the caller owns.

    Success returns the gateway's acceptance payload as-is; every failure is
    a non-2xx {"error": "..."} body the mobile app shows directly.
    """
    permission_classes = []

    def perform_authentication(self, request):
        # Resolved inside post() so a bad token gets the {"error"} body too
        pass

    def _get_user(self, request):
        try:
            user = request.user
        except (AuthenticationFailed, NotAuthenticated):
            return None
        return user if user and user.is_authenticated else None

    def _callback_url(self, request):
        return getattr(settings, 'MPESA_CALLBACK_URL', '') or request.build_absolute_uri(
            reverse('payment:mpesa-callback')
        )

    @extend_schema(
        request=StkPushRequestSerializer,
        responses={200: OpenApiTypes.OBJECT, 400: OpenApiTypes.OBJECT, 401: OpenApiTypes.OBJECT},
    )
    def post(self, request, format=None):
        try:
            user = self._get_user(request)
            if user is None:
                raise Unauthorized()

            serializer = StkPushRequestSerializer(data=request.data)
            if not serializer.is_valid():
                missing = ', '.join(sorted(serializer.errors.keys()))
                return Response({'error': f'Invalid or missing fields: {missing}'}, status=status.HTTP_400_BAD_REQUEST)
            data = serializer.validated_data

            response_data = get_payment_service().initiate_push_payment(
                user=user,
                order_id=data['order_id'],
                payment_id=data['payment_id'],
                phone=data['phone'],
                callback_url=self._callback_url(request),
                account_reference=data.get('account_reference') or None,
                transaction_desc=data.get('transaction_desc') or None,
            )
            return Response(response_data, status=status.HTTP_200_OK)

        except PaymentError as e:
            return Response({'error': e.message}, status=e.status_code)
        except Exception as e:
            logger.error(f"Error initiating M-Pesa payment: {str(e)}", exc_info=True)
            return Response({'error': 'Payment initiation failed'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


class MpesaCallbackView(APIView):
    """
    Handle M-Pesa callbacks from Daraja.
    The gateway always gets an acknowledgement, whatever happened here.
    """
    authentication_classes = []
    permission_classes = []  # No authentication for callbacks

    @extend_schema(
        request=OpenApiTypes.OBJECT,
        responses={200: OpenApiResponse(response=StkCallbackResponseSerializer)},
    )
    def post(self, request, format=None):
        try:
            outcome = get_payment_service().process_stk_callback(request.data)
            logger.info(f"M-Pesa callback processed: {outcome}")
        except Exception as e:
            logger.error(f"Error processing M-Pesa callback: {str(e)}", exc_info=True)

        return Response(CALLBACK_ACK, status=status.HTTP_200_OK)
