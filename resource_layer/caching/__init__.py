"""
Caching primitives for the resource layer.

Provides the canonical cache-key codec used for registry slots and group
membership, and the per-object operation queue that keeps fetch, save and
delete calls from racing ahead of earlier outstanding work.
"""

from .cache_key import make_cache_key, merge_params
from .operation_queue import OperationQueue

__all__ = [
    "make_cache_key",
    "merge_params",
    "OperationQueue",
]
