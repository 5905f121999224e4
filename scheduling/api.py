"""Translate scheduling errors into DRF responses shared by the API views."""

import logging

from rest_framework import status
from rest_framework.response import Response

from .exceptions import (
    BookingError,
    ConflictError,
    NotFoundError,
    OutsideWorkingHoursError,
    ProviderBusyError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def error_status(exc: BookingError) -> int:
    if isinstance(exc, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, ConflictError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, ProviderBusyError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_response(exc: BookingError) -> Response:
    body = {"detail": exc.message, "code": exc.code}
    if isinstance(exc, (ConflictError, OutsideWorkingHoursError)):
        body["conflicts"] = [conflict.as_dict() for conflict in exc.conflicts]

    code = error_status(exc)
    if code >= 500:
        logger.error("[API] %s: %s", exc.code, exc.message)
    return Response(body, status=code)
