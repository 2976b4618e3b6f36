"""
Shared error handling for the resource layer.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class ResourceLayerException(Exception):
    """Base exception for the resource layer."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(ResourceLayerException):
    """Bad request shape: missing name, identity, endpoint or data."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class PolicyRefusalError(ResourceLayerException):
    """Operation refused without touching the network."""

    def __init__(self, message: str = "Operation refused", details: Optional[Dict[str, Any]] = None):
        super().__init__("POLICY_REFUSAL", message, details)


class MalformedResponseError(ResourceLayerException):
    """Response body had an unexpected shape."""

    def __init__(self, response: Any, message: str = "Data appears to be malformed",
                 details: Optional[Dict[str, Any]] = None):
        self.response = response
        super().__init__("MALFORMED_RESPONSE", message, details)


class TransportError(ResourceLayerException):
    """A request failed at the transport.

    ``response`` exposes ``status`` and ``status_text``; ``config`` exposes the
    request ``method``, ``url``, ``params``, ``headers`` and ``data``.
    """

    def __init__(self, response: Any, config: Any, message: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        self.response = response
        self.config = config
        if message is None:
            message = f"Request error: {response.status_text}, {response.status}"
        super().__init__("TRANSPORT_ERROR", message, details)
