from __future__ import annotations

from fastapi import status
from pydantic import BaseModel


class ErrorDetail(BaseModel):
    code: str
    message: str
    field: str | None = None


# ---------------------------------------------------------------------------
# Custom Exception Hierarchy
# ---------------------------------------------------------------------------

class AppBaseException(Exception):
    """Base for all application-level exceptions."""
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: list[ErrorDetail] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or []


class NotFoundException(AppBaseException):
    http_status = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"


class ConflictException(AppBaseException):
    http_status = status.HTTP_409_CONFLICT
    error_code = "CONFLICT"


class PayloadTooLargeException(AppBaseException):
    http_status = 413
    error_code = "PAYLOAD_TOO_LARGE"


class ServiceUnavailableException(AppBaseException):
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "SERVICE_UNAVAILABLE"


class ValidationError(AppBaseException):
    """Malformed input rejected before it reaches the domain logic."""
    http_status = 422
    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        details = [ErrorDetail(code="invalid", message=message, field=field)] if field else None
        super().__init__(message, details)
        self.field = field


# ---------------------------------------------------------------------------
# Real-time delivery
# ---------------------------------------------------------------------------

class DeliveryError(AppBaseException):
    """A payload could not be handed to one client connection.

    Contained by the hub: the connection is dropped, the broadcast goes on.
    """
    error_code = "DELIVERY_FAILED"


class RegistryError(ServiceUnavailableException):
    """The broadcast hub refused the operation (shut down, or bad connection)."""
    error_code = "REGISTRY_CLOSED"
