"""
Error taxonomy for the auth core.

Every class is an ``HTTPException`` so services can raise them directly and
FastAPI renders ``{"detail": ...}`` with the right status.
"""
from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class ServiceError(HTTPException):
    default_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal server error"

    def __init__(
        self,
        detail: Any = None,
        status_code: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(
            status_code=status_code or self.default_status,
            detail=detail if detail is not None else self.default_detail,
            headers=headers,
        )


class ValidationFailed(ServiceError):
    default_status = status.HTTP_400_BAD_REQUEST
    default_detail = "Validation failed"


class AuthenticationFailure(ServiceError):
    """401 when no credentials were presented, 403 when presented but invalid."""

    default_status = status.HTTP_401_UNAUTHORIZED
    default_detail = "Invalid credentials"


class AuthorizationFailure(ServiceError):
    default_status = status.HTTP_403_FORBIDDEN
    default_detail = "Admin access required"


class NotFound(ServiceError):
    default_status = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class Conflict(ServiceError):
    default_status = status.HTTP_400_BAD_REQUEST
    default_detail = "Conflict"


class TooManyAttempts(ServiceError):
    default_status = status.HTTP_429_TOO_MANY_REQUESTS
    default_detail = "Too many 2FA attempts. Please try again later."

    def __init__(self, retry_after_seconds: int, detail: Any = None):
        super().__init__(detail, headers={"Retry-After": str(retry_after_seconds)})


class TransientStoreError(ServiceError):
    default_status = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Service temporarily unavailable"

    def __init__(self, detail: Any = None):
        super().__init__(detail, headers={"Retry-After": "5"})
