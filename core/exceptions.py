from typing import Any, Dict, Optional
from fastapi import status


class AppError(Exception):
    """Base error rendered as {"error": message, ...extra} by the app handlers."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, extra: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.extra = extra or {}
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        payload = {"error": self.message}
        payload.update(self.extra)
        return payload


class Unauthenticated(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden"


class BadRequest(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Bad request"


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflict"


class InsufficientCredits(AppError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    default_message = "Credit limit reached"

    def __init__(self, credits_needed: float, remaining: float, message: Optional[str] = None):
        self.credits_needed = credits_needed
        self.remaining = remaining
        super().__init__(message, {"creditsNeeded": credits_needed, "remaining": remaining})


class UpstreamProviderError(AppError):
    """An AI vendor call failed. `status` is the vendor's HTTP status when known."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "AI provider request failed"

    def __init__(self, message: Optional[str] = None, status: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        self.status = status
        super().__init__(message, {"details": details} if details else None)


class ConfigurationError(AppError):
    default_message = "Service is not configured"


class InternalError(AppError):
    pass
