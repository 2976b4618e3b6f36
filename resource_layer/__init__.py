"""
Client-side data access and caching for REST resources.

A ``Registry`` per resource type deduplicates entities across every query
result that contains them, serializes fetch/save/delete per object and keeps
sync state consistent between an entity and its groups.
"""

from .adapters import HttpxTransport, TransportRequest, TransportResponse
from .caching import make_cache_key
from .domain import Entity, Group
from .options import ResourceOptions
from .registry import Registry
from .reporting import ErrorReporter
from .urls import UrlTable

__all__ = [
    "Entity",
    "ErrorReporter",
    "Group",
    "HttpxTransport",
    "Registry",
    "ResourceOptions",
    "TransportRequest",
    "TransportResponse",
    "UrlTable",
    "make_cache_key",
]
