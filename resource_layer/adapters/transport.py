"""
Transport boundary types.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional


@dataclass(frozen=True)
class TransportRequest:
    """A single request handed to the transport."""

    url: str
    method: str = "get"
    data: Any = None
    params: Optional[Dict[str, Any]] = None
    multipart: bool = False


@dataclass(frozen=True)
class TransportResponse:
    """A successful transport result."""

    data: Any = None
    status: int = 200
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ErrorResponseInfo:
    """Response side of a failed request."""

    status: int
    status_text: str


@dataclass(frozen=True)
class RequestConfig:
    """Request side of a failed request, kept for diagnostics."""

    method: str
    url: str
    params: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    data: Optional[str] = None


Transport = Callable[[TransportRequest], Awaitable[TransportResponse]]
