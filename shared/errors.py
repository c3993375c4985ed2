"""
Shared error handling for the response cache layer.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from shared.logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class CacheLayerException(Exception):
    """Base exception for cache layer components."""

    status_code: int = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class StoreUnavailable(CacheLayerException):
    """The key-value store refused, timed out or reported an error."""

    status_code = 503

    def __init__(self, message: str = "Store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORE_UNAVAILABLE", message, details)


class SerializationError(CacheLayerException):
    """A payload could not be encoded for, or decoded from, the store."""

    status_code = 500

    def __init__(self, message: str = "Serialization failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("SERIALIZATION_ERROR", message, details)


class InvalidPattern(CacheLayerException):
    """A glob pattern the store's matching syntax rejects."""

    status_code = 400

    def __init__(self, pattern: str, message: str = "Invalid key pattern", details: Optional[Dict[str, Any]] = None):
        self.pattern = pattern
        super().__init__("INVALID_PATTERN", f"{message}: {pattern!r}", details)
