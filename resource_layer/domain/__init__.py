"""
Domain objects for the resource layer.

Entities are single remote records; groups are ordered, deduplicated views
over entities that share one query. Both are created and cached by a
registry and never instantiated directly by application code.
"""

from .entity import Entity
from .group import Group

__all__ = [
    "Entity",
    "Group",
]
