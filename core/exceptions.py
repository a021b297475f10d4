"""
Project-wide DRF exception handler.

Errors raised anywhere under the API leave in the APIResponse.error()
envelope, so clients parse one shape whatever failed.
"""
from typing import Any, Optional
from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework import status
import logging

from .response import APIResponse, get_correlation_id

logger = logging.getLogger(__name__)

# Headers DRF sets on error responses that clients rely on
PRESERVED_HEADERS = ('WWW-Authenticate', 'Retry-After')


def _error_message(data: Any) -> str:
    if isinstance(data, dict) and 'detail' in data:
        return str(data['detail'])
    if isinstance(data, list) and data:
        return str(data[0])
    if isinstance(data, dict):
        return 'Validation failed'
    return 'Request failed'


def api_exception_handler(exc: Exception, context: dict[str, Any]) -> Optional[Response]:
    request = context.get("request")
    correlation_id = get_correlation_id(request) if request is not None else None
    response = exception_handler(exc, context)

    if response is None:
        view = context.get("view")
        logger.error(
            f"Unhandled API error in {view.__class__.__name__ if view else 'unknown view'}: {exc}",
            exc_info=True,
        )
        return APIResponse.error(
            error_code='INTERNAL_ERROR',
            message='An unexpected error occurred',
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            correlation_id=correlation_id,
        )

    details = None
    if isinstance(response.data, dict) and 'detail' not in response.data:
        details = {'fields': response.data}

    wrapped = APIResponse.error(
        error_code=str(getattr(exc, 'default_code', 'error')).upper(),
        message=_error_message(response.data),
        status_code=response.status_code,
        details=details,
        correlation_id=correlation_id,
    )
    for header in PRESERVED_HEADERS:
        if response.has_header(header):
            wrapped[header] = response[header]
    return wrapped
