"""
Declared cache invalidation for write-path operations.

Instead of remembering to call the cache after every create/update/delete,
a write operation declares which entries it makes obsolete:

    @invalidates(
        Invalidate("students", key=lambda student_id, *_, **__: f"detail_{student_id}"),
        Invalidate("student-list"),
        Invalidate.group("dashboard"),
    )
    def update_student(student_id, changes):
        ...

The targets are applied only after the wrapped call returns; if it raises,
the cache is left alone.
"""
import logging
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, List, Optional, Union

from readthrough.cache import CacheManager, get_cache_manager
from readthrough.cache.policies import get_invalidation_group

logger = logging.getLogger("cache.invalidation")

KeySpec = Union[str, Callable[..., Optional[str]]]


@dataclass(frozen=True)
class Invalidate:
    """
    One invalidation target.

    - namespace only: clear the whole namespace
    - key: drop one key (a string, or a callable receiving the wrapped
      call's arguments and returning the key)
    - prefix: drop every key starting with the prefix (string or callable)
    """
    namespace: str
    key: Optional[KeySpec] = None
    prefix: Optional[KeySpec] = None

    def __post_init__(self):
        if self.key is not None and self.prefix is not None:
            raise ValueError("Invalidate takes either key or prefix, not both")

    @staticmethod
    def group(name: str) -> List["Invalidate"]:
        """Targets for a named invalidation group."""
        return [
            Invalidate(namespace, prefix=prefix)
            for namespace, prefix in get_invalidation_group(name)
        ]

    def apply(self, manager: CacheManager, args: tuple = (), kwargs: Optional[dict] = None) -> int:
        """
        Apply this target against the arguments of the write call.

        Returns:
            Number of entries removed
        """
        if self.key is not None:
            key = _resolve(self.key, args, kwargs)
            if key is None:
                return 0
            return 1 if manager.invalidate(self.namespace, key) else 0
        if self.prefix is not None:
            prefix = _resolve(self.prefix, args, kwargs)
            if prefix is None:
                return 0
            return manager.invalidate_prefix(self.namespace, prefix)
        return manager.invalidate_namespace(self.namespace)


def _resolve(spec: KeySpec, args: tuple, kwargs: Optional[dict]) -> Optional[str]:
    if callable(spec):
        return spec(*args, **(kwargs or {}))
    return spec


def _flatten(targets) -> List[Invalidate]:
    flat = []
    for target in targets:
        if isinstance(target, Invalidate):
            flat.append(target)
        else:
            flat.extend(target)
    return flat


def apply_invalidations(
    targets: List[Invalidate],
    manager: Optional[CacheManager] = None,
    args: tuple = (),
    kwargs: Optional[dict] = None,
) -> int:
    """Apply a list of targets; returns total entries removed."""
    if manager is None:
        manager = get_cache_manager()
    return sum(target.apply(manager, args, kwargs) for target in _flatten(targets))


def invalidate_group(name: str, manager: Optional[CacheManager] = None) -> int:
    """
    Invalidate every target of a named group.

    Raises:
        KeyError: If the group is unknown
    """
    removed = apply_invalidations(Invalidate.group(name), manager)
    logger.info(f"Invalidated group '{name}' ({removed} entries)")
    return removed


def invalidates(*targets, manager: Optional[CacheManager] = None):
    """
    Decorator declaring the cache entries a write operation invalidates.

    Targets may be Invalidate instances or lists of them (e.g. from
    Invalidate.group). The manager defaults to the global one, resolved at
    call time.
    """
    declared = _flatten(targets)

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(func)
        def wrapper(*args, **kwargs):
            result = func(*args, **kwargs)
            removed = apply_invalidations(declared, manager, args, kwargs)
            logger.debug(f"{func.__name__} invalidated {removed} cache entries")
            return result

        wrapper.invalidates = tuple(declared)
        return wrapper

    return decorator
