"""
Canonical cache keys for parameter sets.
"""

import json
from typing import Any, Dict, Mapping, Optional


def merge_params(*params: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Merge parameter mappings left to right, later keys winning."""
    merged: Dict[str, Any] = {}
    for param_set in params:
        if param_set:
            merged.update(param_set)
    return merged


def make_cache_key(*params: Optional[Mapping[str, Any]], id_key: str = "id") -> str:
    """
    Build a canonical string key from one or more parameter mappings.

    Two parameter sets holding the same key/value pairs produce the same key
    regardless of insertion order. The identity field is compared by its
    string form, so ``7`` and ``"7"`` collide.
    """
    merged = merge_params(*params)
    ordered = {
        key: str(merged[key]) if key == id_key else merged[key]
        for key in sorted(merged)
    }
    return json.dumps(ordered, sort_keys=True, separators=(",", ":"), default=str)
