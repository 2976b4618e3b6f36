"""
URL resolution table for resource endpoints.
"""

from typing import Callable, Dict, Optional

from shared.errors import ValidationError

UrlFunction = Callable[..., str]

DETAIL_ENDPOINT = "detail"
LIST_ENDPOINT = "list"


class UrlTable:
    """Maps ``<namespace>:<resource>:<endpoint>`` keys onto URL builders.

    A URL builder takes an optional identity and returns a concrete path.
    """

    def __init__(self, routes: Optional[Dict[str, UrlFunction]] = None):
        self._routes: Dict[str, UrlFunction] = dict(routes or {})

    def register(self, key: str, url_function: UrlFunction) -> None:
        """Register a URL builder under ``key``."""
        self._routes[key] = url_function

    def register_resource(self, resource_name: str, base_path: str) -> None:
        """Register REST-style ``list`` and ``detail`` builders for a resource."""
        base_path = base_path.rstrip("/")
        self._routes[f"{resource_name}:{LIST_ENDPOINT}"] = lambda: f"{base_path}/"
        self._routes[f"{resource_name}:{DETAIL_ENDPOINT}"] = lambda identity: f"{base_path}/{identity}/"

    def __contains__(self, key: str) -> bool:
        return key in self._routes

    def resolve(self, key: str) -> UrlFunction:
        """Return the URL builder for ``key``."""
        try:
            return self._routes[key]
        except KeyError:
            raise ValidationError(
                f"No url registered for {key}",
                details={"url_name": key}
            )
