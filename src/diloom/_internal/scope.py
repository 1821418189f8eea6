from __future__ import annotations

import logging
from collections.abc import Callable, Hashable
from types import TracebackType
from typing import TYPE_CHECKING, Any, TypeVar, overload

from diloom._internal.descriptors import Lifetime, ServiceDescriptor
from diloom._internal.disposal import DisposalQueue, drain_in_order, instance_disposer
from diloom._internal.engine import try_resolve, try_resolve_async
from diloom._internal.globals import CacheTier
from diloom.exceptions import DILoomScopeResolutionError
from diloom.tokens import ServiceKey, TokenLike, token_label

if TYPE_CHECKING:
    from typing_extensions import Self

    from diloom._internal.provider import ServiceProvider

T = TypeVar("T")

logger = logging.getLogger(__name__)


class ServiceScope:
    """A bounded resolution context, typically one request or job.

    A scope owns the cache for ``Lifetime.SCOPED`` descriptors and its own
    dispose hooks. Lookup and lifetime dispatch are delegated to the provider's
    resolution engine; singletons keep coming from the provider.

    Examples:
        .. code-block:: python

            async with provider.create_scope() as scope:
                handler = scope.resolve(Handler)

    """

    def __init__(self, provider: ServiceProvider) -> None:
        self._provider = provider
        self._engine = provider.engine
        self.cache: CacheTier[ServiceDescriptor] = CacheTier()
        self._hooks = DisposalQueue(lifo=False)
        self._instances = DisposalQueue(lifo=True)
        self._disposed = False

    @property
    def provider(self) -> ServiceProvider:
        return self._provider

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def active_count(self) -> int:
        """Number of scoped instances materialized in this scope."""
        return len(self.cache.values)

    # region Resolution

    @overload
    def resolve(self, token: type[T], key: ServiceKey | None = None) -> T: ...

    @overload
    def resolve(self, token: TokenLike, key: ServiceKey | None = None) -> Any: ...

    def resolve(self, token: TokenLike, key: ServiceKey | None = None) -> Any:
        return self._engine.resolve(token, key, scope=self)

    @overload
    async def resolve_async(self, token: type[T], key: ServiceKey | None = None) -> T: ...

    @overload
    async def resolve_async(self, token: TokenLike, key: ServiceKey | None = None) -> Any: ...

    async def resolve_async(self, token: TokenLike, key: ServiceKey | None = None) -> Any:
        return await self._engine.resolve_async(token, key, scope=self)

    def try_resolve(self, token: TokenLike, key: ServiceKey | None = None) -> Any | None:
        return try_resolve(self, token, key)

    async def try_resolve_async(self, token: TokenLike, key: ServiceKey | None = None) -> Any | None:
        return await try_resolve_async(self, token, key)

    def resolve_all(self, token: TokenLike) -> list[Any]:
        return self._engine.resolve_all(token, scope=self)

    async def resolve_all_async(self, token: TokenLike) -> list[Any]:
        return await self._engine.resolve_all_async(token, scope=self)

    def resolve_map(self, token: TokenLike) -> dict[Hashable, Any]:
        return self._engine.resolve_map(token, scope=self)

    async def resolve_map_async(self, token: TokenLike) -> dict[Hashable, Any]:
        return await self._engine.resolve_map_async(token, scope=self)

    def get_or_create(self, descriptor: ServiceDescriptor) -> Any:
        """Return this scope's instance of a scoped descriptor, creating it synchronously.

        Raises:
            DILoomScopeResolutionError: If the descriptor is not scoped.
            DILoomAsyncFactoryError: If the factory is asynchronous or still pending.

        """
        if descriptor.lifetime is not Lifetime.SCOPED:
            msg = f"Descriptor for {token_label(descriptor.token)} is not scoped."
            raise DILoomScopeResolutionError(msg, token=descriptor.token, key=descriptor.key)
        return self._engine.resolve_descriptor(descriptor, scope=self)

    # endregion Resolution

    # region Disposal

    def record_instance(self, descriptor: ServiceDescriptor, instance: Any) -> None:
        """Remember a freshly created scoped instance for disposal."""
        disposer = instance_disposer(descriptor, instance)
        if disposer is not None:
            self._instances.push(disposer, descriptor.dispose_priority)

    def on_dispose(self, callback: Callable[[], Any], priority: int = 0) -> None:
        """Register a callback run when the scope is disposed.

        Hooks run before scoped instances are disposed, higher priority first,
        then in registration order.
        """
        self._hooks.push(callback, priority)

    async def dispose(self) -> None:
        """Run dispose hooks, then dispose scoped instances. Later calls are no-ops.

        Scoped builds still in flight are not awaited. When one settles, its
        instance is disposed at once and its callers get
        ``DILoomScopeResolutionError``.
        """
        if self._disposed:
            return
        self._disposed = True
        logger.debug(
            "Disposing scope with %d hooks and %d instances",
            len(self._hooks),
            len(self._instances),
        )
        try:
            await drain_in_order(self._hooks, self._instances)
        finally:
            self.cache.clear()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.dispose()

    # endregion Disposal
