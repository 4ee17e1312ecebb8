"""Cache key construction."""

import json
from collections.abc import Mapping
from typing import Any


def make_key(method: str, path: str, params: Mapping[str, Any] | None = None) -> str:
    """Build a stable cache key: ``METHOD:path:JSON(sorted params)``.

    The same logical request always yields the same string, which is what
    lets the in-flight registry deduplicate independent callers.

    Example:
        make_key("get", "/analytics", {"year": 2024, "hotel": "h1"})
        # 'GET:/analytics:{"hotel":"h1","year":2024}'
    """
    encoded = json.dumps(
        dict(params or {}), sort_keys=True, separators=(",", ":"), default=str
    )
    return f"{method.upper()}:{path}:{encoded}"
