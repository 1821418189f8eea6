from __future__ import annotations

import itertools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeAlias

from diloom.tokens import ServiceKey

if TYPE_CHECKING:
    from diloom._internal.engine import ServiceResolver

ServiceFactory: TypeAlias = Callable[["ServiceResolver"], Any]
"""A callable receiving a path-bound resolver and returning a value or an awaitable."""

DisposeFn: TypeAlias = Callable[..., "None | Awaitable[None]"]
"""A sync or async teardown callable."""

_DESCRIPTOR_IDS = itertools.count(1)


class Lifetime(str, Enum):
    """Defines how produced instances are shared and which owner disposes them."""

    TRANSIENT = "transient"
    """A new instance is created every time the service is requested."""

    SCOPED = "scoped"
    """Instance is shared within a scope, different instances across scopes."""

    SINGLETON = "singleton"
    """A single instance is created and shared for the lifetime of the provider."""

    GLOBAL_SINGLETON = "global_singleton"
    """A single instance is shared by every provider in the process and survives their disposal."""


@dataclass(frozen=True, eq=False, kw_only=True)
class ServiceDescriptor:
    """A registered recipe producing a value for a token and optional key.

    Descriptors hash by identity: two registrations with identical fields are
    still two cache entries.
    """

    token: Any
    """The token this descriptor is registered under."""
    factory: ServiceFactory
    """Callable invoked with a resolver to materialize the value."""
    lifetime: Lifetime
    """Sharing policy of produced values."""
    key: ServiceKey | None = None
    """Optional key distinguishing several descriptors under one token."""
    dispose_priority: int = 0
    """Higher priorities are disposed first."""
    global_key: str | None = None
    """Explicit process-global cache key for ``GLOBAL_SINGLETON`` descriptors."""
    source: str | None = None
    """Registration call stack, when captured."""
    custom_dispose: DisposeFn | None = None
    """Disposer used instead of auto-detected ``dispose``/``close``/``destroy`` methods."""
    registered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: int = field(default_factory=lambda: next(_DESCRIPTOR_IDS))


@dataclass(frozen=True, slots=True)
class TraceEvent:
    """Observation emitted each time the engine selects a descriptor."""

    token: Any
    key: ServiceKey | None
    lifetime: Lifetime
    path: tuple[str, ...]
    is_async: bool


TraceCallback: TypeAlias = Callable[[TraceEvent], None]
