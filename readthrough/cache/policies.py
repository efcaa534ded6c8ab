"""
Namespace presets and invalidation groups.
"""
from typing import Dict, List, Tuple, Any

from .core import NamespaceConfig


MINUTE = 60

# Namespace configuration (TTL and stale grace in seconds)
NAMESPACE_CONFIG: Dict[str, Dict[str, Any]] = {
    # Per-entity detail lookups
    "users": {
        "ttl": 15 * MINUTE,
        "stale_grace": 5 * MINUTE,
        "max_entries": 1000,
    },
    # Login lookups by email; never serve a stale credential row
    "user-auth": {
        "ttl": 10 * MINUTE,
        "stale_grace": 0,
        "max_entries": 1000,
    },
    "students": {
        "ttl": 10 * MINUTE,
        "stale_grace": 3 * MINUTE,
        "max_entries": 100,
    },
    # Paginated list / search results change often
    "student-list": {
        "ttl": 2 * MINUTE,
        "stale_grace": 30,
        "max_entries": 200,
    },
    "dashboard": {
        "ttl": 30 * MINUTE,
        "stale_grace": 10 * MINUTE,
        "max_entries": 50,
    },
    "dashboard-stats": {
        "ttl": 1 * MINUTE,
        "stale_grace": 2 * MINUTE,
        "max_entries": 50,
    },
    "audit": {
        "ttl": 20 * MINUTE,
        "stale_grace": 5 * MINUTE,
        "max_entries": 100,
    },
    # Near-static reference data (faculties, departments, academic years)
    "academic": {
        "ttl": 60 * MINUTE,
        "stale_grace": 30 * MINUTE,
        "max_entries": 50,
    },
    # Certificate verification results, short-lived
    "verification": {
        "ttl": 5 * MINUTE,
        "stale_grace": 0,
        "max_entries": 500,
    },
}


# Invalidation groups: group name -> [(namespace, key prefix or None for all)]
INVALIDATION_GROUPS: Dict[str, List[Tuple[str, Any]]] = {
    "academic": [("academic", None)],
    "faculties": [("academic", "faculties")],
    "departments": [("academic", "departments")],
    "academic-years": [("academic", "academic-years")],
    "students": [
        ("students", None),
        ("student-list", None),
        ("dashboard", None),
        ("dashboard-stats", None),
    ],
    "users": [("users", None), ("user-auth", None)],
    "dashboard": [("dashboard", None), ("dashboard-stats", None)],
    "audit": [("audit", None)],
}


def get_namespace_config(name: str) -> NamespaceConfig:
    """
    Build the preset NamespaceConfig for a known namespace.

    Raises:
        KeyError: If there is no preset for `name`
    """
    preset = NAMESPACE_CONFIG[name]
    return NamespaceConfig(
        name=name,
        ttl_seconds=preset["ttl"],
        stale_grace_seconds=preset.get("stale_grace", 0),
        max_entries=preset.get("max_entries", 1000),
    )


def default_namespaces() -> List[NamespaceConfig]:
    """All preset namespaces."""
    return [get_namespace_config(name) for name in NAMESPACE_CONFIG]


def register_defaults(registry) -> List[NamespaceConfig]:
    """
    Register every preset namespace not already present in `registry`.

    Returns:
        The configs that were registered
    """
    registered = []
    for config in default_namespaces():
        if config.name not in registry:
            registered.append(registry.register(config))
    return registered


def get_invalidation_group(group: str) -> List[Tuple[str, Any]]:
    """
    Targets of an invalidation group.

    Raises:
        KeyError: If the group is unknown
    """
    return INVALIDATION_GROUPS[group]
