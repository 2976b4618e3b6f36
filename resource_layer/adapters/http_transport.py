"""
Default HTTP transport built on httpx.
"""

import json
from typing import Any, Dict, Optional, Tuple

import httpx

from shared.config import ResourceSettings
from shared.errors import TransportError
from shared.logging import get_logger
from .transport import ErrorResponseInfo, RequestConfig, TransportRequest, TransportResponse


class HttpxTransport:
    """Issues resource requests against a REST backend."""

    def __init__(self, base_url: str = "", timeout: float = 10.0,
                 headers: Optional[Dict[str, str]] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.headers = dict(headers or {})
        self.logger = get_logger("resource_layer.http_transport")

    @classmethod
    def from_settings(cls, settings: ResourceSettings,
                      headers: Optional[Dict[str, str]] = None) -> "HttpxTransport":
        """Build a transport from resource settings."""
        return cls(settings.base_url, timeout=settings.request_timeout, headers=headers)

    async def __call__(self, request: TransportRequest) -> TransportResponse:
        method = request.method.upper()
        url = f"{self.base_url}{request.url}" if request.url.startswith("/") else request.url
        params = dict(request.params or {})
        kwargs: Dict[str, Any] = {"params": params, "headers": self.headers}

        if request.data is not None:
            if request.multipart:
                form, files = self._split_multipart(request.data)
                kwargs["data"] = form
                kwargs["files"] = files
            else:
                kwargs["json"] = request.data

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            self.logger.error("Resource request failed", method=method, url=url, error=str(exc))
            raise TransportError(
                ErrorResponseInfo(status=0, status_text=str(exc)),
                self._request_config(method, url, params, request),
                details={"http_error": str(exc)}
            ) from exc

        if response.status_code >= 400:
            raise TransportError(
                ErrorResponseInfo(status=response.status_code, status_text=response.reason_phrase),
                self._request_config(method, url, params, request),
                details={"status_code": response.status_code, "body": response.text}
            )

        try:
            data = response.json() if response.content else None
        except ValueError as exc:
            self.logger.error("Resource response is not JSON", method=method, url=url,
                              status_code=response.status_code)
            raise TransportError(
                ErrorResponseInfo(status=response.status_code, status_text=response.reason_phrase),
                self._request_config(method, url, params, request),
                message=f"Invalid JSON response: {response.reason_phrase}, {response.status_code}",
                details={"status_code": response.status_code, "body": response.text}
            ) from exc

        self.logger.debug("Resource request completed", method=method, url=url,
                          status_code=response.status_code)
        return TransportResponse(
            data=data,
            status=response.status_code,
            headers=dict(response.headers),
        )

    def _request_config(self, method: str, url: str, params: Dict[str, Any],
                        request: TransportRequest) -> RequestConfig:
        body = None
        if request.data is not None and not request.multipart:
            body = json.dumps(request.data, default=str)
        return RequestConfig(method=method.lower(), url=url, params=params,
                             headers=dict(self.headers), data=body)

    @staticmethod
    def _split_multipart(data: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """Separate file payloads from plain form fields."""
        form: Dict[str, Any] = {}
        files: Dict[str, Any] = {}
        for key, value in data.items():
            if isinstance(value, (bytes, bytearray)) or hasattr(value, "read"):
                files[key] = value
            else:
                form[key] = value
        return form, files
