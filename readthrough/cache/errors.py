"""
Cache error taxonomy.
"""
from typing import Optional


class CacheError(Exception):
    """Base class for errors raised by the cache layer itself."""


class UnknownNamespace(CacheError, KeyError):
    """Namespace was used before being registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(name)

    def __str__(self) -> str:
        return f"Cache namespace '{self.name}' is not registered"


class DuplicateNamespace(CacheError, ValueError):
    """Namespace name is already registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Cache namespace '{name}' is already registered")


class LoaderFailure(CacheError):
    """
    Wraps an exception raised by a loader outside of a caller's control flow
    (background refresh, proactive warm-up).

    Synchronous misses never raise this: the loader's own exception
    propagates unchanged.
    """

    def __init__(self, namespace: str, key: str, cause: BaseException):
        self.namespace = namespace
        self.key = key
        self.cause = cause
        super().__init__(f"Loader for {namespace}:{key} failed: {cause!r}")

    def to_dict(self) -> dict:
        return {
            "namespace": self.namespace,
            "key": self.key,
            "error": type(self.cause).__name__,
            "message": str(self.cause),
        }


def describe(error: Optional[BaseException]) -> Optional[str]:
    """Short `Type: message` description used in log lines and stats."""
    if error is None:
        return None
    return f"{type(error).__name__}: {error}"
