"""
Adapters package for the resource layer.

Contains the transport boundary types and the default httpx-backed
transport. Adapters encapsulate:

- Base URLs and request shapes
- Mapping of failed requests onto shared.errors.TransportError

Keep adapters thin and side-effect free outside of explicit calls.
"""

from .transport import (
    ErrorResponseInfo,
    RequestConfig,
    Transport,
    TransportRequest,
    TransportResponse,
)
from .http_transport import HttpxTransport

__all__ = [
    "ErrorResponseInfo",
    "RequestConfig",
    "Transport",
    "TransportRequest",
    "TransportResponse",
    "HttpxTransport",
]
