"""
Cache key derivation from query parameters.
"""
from typing import Any, Dict, Optional


def _format_value(value: Any) -> str:
    if isinstance(value, (list, tuple, set, frozenset)):
        items = sorted(value) if isinstance(value, (set, frozenset)) else value
        return ",".join(str(v) for v in items)
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


def build_key(prefix: str, params: Optional[Dict[str, Any]] = None) -> str:
    """
    Generate cache key from a prefix and query params.

    Parameters with a None value are ignored and parameter order does not
    matter, so equivalent queries share one key:

        build_key("students", {"status": "active", "page": 1})
        -> "students:page=1&status=active"
    """
    if not params:
        return prefix
    sorted_params = sorted((k, v) for k, v in params.items() if v is not None)
    if not sorted_params:
        return prefix
    query = "&".join(f"{k}={_format_value(v)}" for k, v in sorted_params)
    return f"{prefix}:{query}"


def build_list_key(
    prefix: str,
    page: int = 1,
    page_size: int = 20,
    filters: Optional[Dict[str, Any]] = None,
    sort: Optional[str] = None,
) -> str:
    """Key for one page of a paginated list query."""
    params = dict(filters or {})
    params.update({"page": page, "page_size": page_size, "sort": sort})
    return build_key(prefix, params)
