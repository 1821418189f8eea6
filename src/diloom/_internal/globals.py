from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K")

_MISSING: Any = object()


@dataclass(slots=True)
class CacheTier(Generic[K]):
    """Materialized values plus the in-flight builds for one cache owner."""

    values: dict[K, Any] = field(default_factory=dict)
    pending: dict[K, asyncio.Task[Any]] = field(default_factory=dict)

    def lookup(self, cache_key: K) -> Any:
        """Return the cached value or the ``MISSING`` sentinel."""
        return self.values.get(cache_key, _MISSING)

    def store_if_absent(self, cache_key: K, value: Any) -> Any:
        """Store ``value`` unless a value already exists; return the winner."""
        return self.values.setdefault(cache_key, value)

    def clear(self) -> None:
        """Drop materialized values.

        In-flight builds stay registered until they settle, so a resolution
        started after ``clear`` joins them instead of invoking the factory again.
        """
        self.values.clear()


MISSING = _MISSING

_global_cache: CacheTier[str] | None = None


def get_global_cache() -> CacheTier[str]:
    """Return the process-wide cache for global singletons, creating it on first use."""
    global _global_cache  # noqa: PLW0603
    if _global_cache is None:
        _global_cache = CacheTier()
    return _global_cache


def reset_global_cache() -> None:
    """Forget every global singleton value and in-flight build.

    Values are dropped without being disposed. Builds still in flight settle
    into the discarded cache. Intended for tests and for hot-reload setups
    that rebuild their object graph.
    """
    global _global_cache  # noqa: PLW0603
    if _global_cache is not None:
        logger.debug("Resetting global cache with %d values", len(_global_cache.values))
        _global_cache.clear()
    _global_cache = None
