from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from diloom._internal.collection import ServiceCollection
from diloom._internal.descriptors import Lifetime, ServiceFactory
from diloom._internal.engine import ServiceResolver
from diloom._internal.provider import ServiceProvider
from diloom._internal.scope import ServiceScope
from diloom.tokens import ServiceKey, TokenLike

T = TypeVar("T")
R = TypeVar("R")


def factory(token: TokenLike) -> ServiceFactory:
    """Build a factory producing a zero-argument callable that resolves ``token`` on each call.

    Examples:
        .. code-block:: python

            services.add_transient("make_session", factory(Session))
            make_session = provider.resolve("make_session")
            session = make_session()

    """

    def _factory(resolver: ServiceResolver) -> Callable[[], Any]:
        return lambda: resolver.resolve(token)

    return _factory


def lazy(token: TokenLike) -> ServiceFactory:
    """Build a factory producing a callable that resolves ``token`` once and memoizes it."""

    def _factory(resolver: ServiceResolver) -> Callable[[], Any]:
        cached: list[Any] = []

        def _get() -> Any:
            if not cached:
                cached.append(resolver.resolve(token))
            return cached[0]

        return _get

    return _factory


def use_existing(
    services: ServiceCollection,
    token: Any,
    existing: TokenLike,
    *,
    lifetime: Lifetime = Lifetime.SINGLETON,
    key: ServiceKey | None = None,
) -> ServiceCollection:
    """Register ``token`` as an alias resolving ``existing``."""
    return services.add(
        token,
        lambda resolver: resolver.resolve(existing),
        lifetime=lifetime,
        key=key,
        multiple=True,
    )


def use_class(
    services: ServiceCollection,
    token: Any,
    concrete_type: type[T],
    *,
    lifetime: Lifetime = Lifetime.TRANSIENT,
    key: ServiceKey | None = None,
) -> ServiceCollection:
    """Register ``token`` as a no-argument construction of ``concrete_type``."""
    return services.add(
        token,
        lambda _resolver: concrete_type(),
        lifetime=lifetime,
        key=key,
        multiple=True,
    )


async def with_scope(
    provider: ServiceProvider,
    work: Callable[[ServiceScope], Awaitable[R]],
) -> R:
    """Run ``work`` with a fresh scope and dispose it afterwards, whatever the outcome."""
    return await provider.with_scope(work)


__all__ = ["factory", "lazy", "use_class", "use_existing", "with_scope"]
