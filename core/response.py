"""
Standardized API Response Wrapper

One envelope for every JSON endpoint that is not talking to Daraja or the
STK push screen:

    {"success": true, "message": ..., "data": ..., "timestamp": ..., "correlation_id": ...}
    {"success": false, "error": {"code": ..., "message": ..., "details": ...}, "timestamp": ..., "correlation_id": ...}
"""

import uuid
from typing import Any, Dict, Optional
from rest_framework import status
from rest_framework.response import Response
from django.utils import timezone


def _envelope(success: bool, correlation_id: Optional[str], **body) -> Dict[str, Any]:
    return {
        'success': success,
        **body,
        'timestamp': timezone.now().isoformat(),
        'correlation_id': correlation_id or str(uuid.uuid4()),
    }


class APIResponse:
    """
    The mobile client reads `data` on success and `error.message` otherwise.

    Example:
        return APIResponse.success(data=PaymentRecordSerializer(payment).data, message='Payment retrieved')
    """

    @staticmethod
    def success(data: Any = None, message: str = "Success", status_code: int = status.HTTP_200_OK,
                correlation_id: Optional[str] = None) -> Response:
        return Response(_envelope(True, correlation_id, message=message, data=data), status=status_code)

    @staticmethod
    def created(data: Any, message: str = "Resource created successfully",
                correlation_id: Optional[str] = None) -> Response:
        return APIResponse.success(data, message, status.HTTP_201_CREATED, correlation_id)

    @staticmethod
    def error(error_code: str, message: str, status_code: int = status.HTTP_400_BAD_REQUEST,
              details: Optional[Dict[str, Any]] = None, correlation_id: Optional[str] = None) -> Response:
        """
        Args:
            error_code: Upper-case machine code, e.g. 'PAYMENT_ID_CONFLICT'
            message: Text the app can show as-is
            details: Extra structured context (field errors and the like)
        """
        error = {'code': error_code, 'message': message}
        if details:
            error['details'] = details
        return Response(_envelope(False, correlation_id, error=error), status=status_code)

    @staticmethod
    def validation_error(errors: Optional[Dict[str, Any]] = None, message: str = "Validation failed",
                         correlation_id: Optional[str] = None) -> Response:
        return APIResponse.error('VALIDATION_ERROR', message, status.HTTP_400_BAD_REQUEST,
                                 {'fields': errors or {}}, correlation_id)

    @staticmethod
    def not_found(message: str = "Resource not found", correlation_id: Optional[str] = None) -> Response:
        return APIResponse.error('RESOURCE_NOT_FOUND', message, status.HTTP_404_NOT_FOUND,
                                 correlation_id=correlation_id)


def get_correlation_id(request) -> str:
    """X-Correlation-ID from the client when present, otherwise a fresh one."""
    return request.META.get('HTTP_X_CORRELATION_ID') or str(uuid.uuid4())
