"""Service-level exceptions.

Every exception carries the HTTP status it maps to and a ``message`` that is
safe to show to clients. Exceptions raised for internal faults (storage,
upstream services) keep their detail in ``detail`` for logging only.

Classes:
    ServiceError:
        Base class for all errors translated into HTTP responses.

    InvalidRequestError:
        Malformed input (400).

    LinkNotFoundError:
        Unknown, expired or inactive short code (404).

    RateLimitedError:
        Creation quota exhausted (429).

    ForbiddenError, UnsafeUrlError, AccessDeniedError:
        Policy refusals (403).

    VerificationError:
        Transient failure while reading on-chain state (500, retryable).

    AllocationExhaustedError:
        Short-code collisions exhausted the retry budget (500).

    StorageError, UpstreamError:
        Internal faults (500, generic public message).
"""

from typing import Optional

from fastapi import status


GENERIC_ERROR_MESSAGE = "Internal server error"


class ServiceError(Exception):
    """Base class for errors rendered as ``{"error": message}``."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = GENERIC_ERROR_MESSAGE

    def __init__(self, message: Optional[str] = None, detail: Optional[str] = None):
        if message is not None:
            self.message = message
        self.detail = detail or self.message
        super().__init__(self.detail)

    def to_dict(self) -> dict:
        return {"error": self.message}


class InvalidRequestError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid request"


class LinkNotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Link not found"


class RateLimitedError(ServiceError):
    """Raised when a creation request is refused by the rate limiter."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    message = "Rate limit exceeded"

    def __init__(self, scope: str, reset: Optional[int], remaining: int, limit: int, suggestion: str):
        super().__init__(f"Rate limit exceeded ({scope})")
        self.scope = scope
        self.reset = reset
        self.remaining = remaining
        self.limit = limit
        self.suggestion = suggestion

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "type": self.scope,
            "reset": self.reset,
            "remaining": self.remaining,
            "limit": self.limit,
            "suggestion": self.suggestion,
        }


class ForbiddenError(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "Forbidden"


class UnsafeUrlError(ForbiddenError):
    message = "URL has been flagged as unsafe and cannot be shortened"


class AccessDeniedError(ForbiddenError):
    message = "Access denied"


class VerificationError(ServiceError):
    """On-chain state could not be read. Clients may retry."""

    message = "Failed to verify balance on-chain"

    def to_dict(self) -> dict:
        return {"error": self.message, "retryable": True}


class AllocationExhaustedError(ServiceError):
    message = "Failed to generate unique short code. Please try again."


class StorageError(ServiceError):
    pass


class UpstreamError(ServiceError):
    pass
