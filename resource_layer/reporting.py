"""
Diagnostic reporting for failed resource requests.
"""

import json
from typing import Any, Dict, Optional

from shared.errors import ResourceLayerException
from shared.logging import get_logger, get_route_context


class ErrorReporter:
    """Logs request failures with enough context to reproduce them.

    Reporting never alters control flow; callers re-raise the original error.
    """

    def __init__(self, logger_name: str = "resource_layer.reporting"):
        self.logger = get_logger(logger_name)

    def report(self, error: BaseException, resource: Optional[str] = None) -> None:
        """Log a failed request for ``resource``."""
        fields: Dict[str, Any] = {"resource": resource, "error": str(error)}

        response = getattr(error, "response", None)
        if response is not None:
            fields["status"] = getattr(response, "status", None)
            fields["status_text"] = getattr(response, "status_text", None)

        config = getattr(error, "config", None)
        if config is not None:
            method = getattr(config, "method", None) or ""
            fields["method"] = method.upper()
            fields["url"] = getattr(config, "url", None)
            params = getattr(config, "params", None)
            if params:
                fields["params"] = dict(params)
            body = self._decode_body(getattr(config, "data", None))
            if body:
                fields["data"] = body
            headers = getattr(config, "headers", None)
            if headers:
                fields["headers"] = dict(headers)

        route = get_route_context()
        if route:
            fields["route_path"] = route.get("full_path")
            fields["route_name"] = route.get("name")
            if route.get("params"):
                fields["route_params"] = route["params"]

        if isinstance(error, ResourceLayerException):
            fields["code"] = error.to_response().code

        self.logger.error("Request error", **fields)

    @staticmethod
    def _decode_body(data: Any) -> Any:
        if data is None:
            return None
        if isinstance(data, (str, bytes, bytearray)):
            try:
                return json.loads(data)
            except ValueError:
                # Diagnostics only
                return None
        return data
