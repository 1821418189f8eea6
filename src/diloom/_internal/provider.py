from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Hashable, Iterable
from types import TracebackType
from typing import TYPE_CHECKING, Any, TypeVar, overload

from diloom._internal.descriptors import ServiceDescriptor, TraceCallback
from diloom._internal.diagnostics import Diagnostic, validate_graph
from diloom._internal.disposal import DisposalQueue, drain_in_order, instance_disposer
from diloom._internal.engine import ResolutionEngine, try_resolve, try_resolve_async
from diloom._internal.globals import CacheTier
from diloom._internal.registry import GroupedRegistry
from diloom._internal.scope import ServiceScope
from diloom.tokens import ServiceKey, TokenLike

if TYPE_CHECKING:
    from typing_extensions import Self

T = TypeVar("T")
R = TypeVar("R")

logger = logging.getLogger(__name__)


class ServiceProvider:
    """Resolve services from a built registry and own singleton lifetimes.

    Providers are created by ``ServiceCollection.build()``; the registry they
    resolve from is immutable. Singletons are cached per provider, global
    singletons per process, and scoped services per ``ServiceScope``.

    Examples:
        .. code-block:: python

            provider = services.build()
            db = provider.resolve(Db)

            async with provider.create_scope() as scope:
                handler = await scope.resolve_async(Handler)

            await provider.dispose()

    """

    def __init__(
        self,
        descriptors: Iterable[ServiceDescriptor] | GroupedRegistry,
        *,
        trace: TraceCallback | None = None,
    ) -> None:
        """Group descriptors and prepare the resolution engine.

        Args:
            descriptors: Flat, ordered descriptors or an already grouped registry.
            trace: Optional callback invoked on every descriptor selection.

        """
        if isinstance(descriptors, GroupedRegistry):
            registry = descriptors
        else:
            registry = GroupedRegistry.from_descriptors(list(descriptors))

        self._singletons: CacheTier[ServiceDescriptor] = CacheTier()
        self._hooks = DisposalQueue(lifo=False)
        self._instances = DisposalQueue(lifo=True)
        self._engine = ResolutionEngine(
            registry,
            singletons=self._singletons,
            on_singleton_created=self._record_singleton,
            trace=trace,
        )
        logger.debug("Built provider with %d tokens", len(registry))

    @property
    def engine(self) -> ResolutionEngine:
        return self._engine

    # region Resolution

    @overload
    def resolve(self, token: type[T], key: ServiceKey | None = None) -> T: ...

    @overload
    def resolve(self, token: TokenLike, key: ServiceKey | None = None) -> Any: ...

    def resolve(self, token: TokenLike, key: ServiceKey | None = None) -> Any:
        """Resolve a token synchronously from the root provider.

        Args:
            token: Token to resolve, optionally wrapped with ``optional(...)``.
            key: Registration key to match exactly; ``None`` picks the last
                registration.

        Returns:
            The resolved value, or ``None`` for a missing optional token.

        Raises:
            DILoomMissingServiceError: If nothing is registered for the token/key.
            DILoomCircularDependencyError: If the dependency chain loops.
            DILoomAsyncFactoryError: If any factory in the chain is asynchronous.
            DILoomScopeResolutionError: If a scoped service is requested here.

        """
        return self._engine.resolve(token, key, scope=None)

    @overload
    async def resolve_async(self, token: type[T], key: ServiceKey | None = None) -> T: ...

    @overload
    async def resolve_async(self, token: TokenLike, key: ServiceKey | None = None) -> Any: ...

    async def resolve_async(self, token: TokenLike, key: ServiceKey | None = None) -> Any:
        """Resolve a token, awaiting asynchronous factories.

        Concurrent calls for the same cached service share one in-flight build.
        """
        return await self._engine.resolve_async(token, key, scope=None)

    def try_resolve(self, token: TokenLike, key: ServiceKey | None = None) -> Any | None:
        """Resolve a token, returning ``None`` when resolution fails for any reason."""
        return try_resolve(self, token, key)

    async def try_resolve_async(self, token: TokenLike, key: ServiceKey | None = None) -> Any | None:
        """Asynchronously resolve a token, returning ``None`` on any failure."""
        return await try_resolve_async(self, token, key)

    def resolve_all(self, token: TokenLike) -> list[Any]:
        """Resolve every registration under a token in registration order."""
        return self._engine.resolve_all(token, scope=None)

    async def resolve_all_async(self, token: TokenLike) -> list[Any]:
        return await self._engine.resolve_all_async(token, scope=None)

    def resolve_map(self, token: TokenLike) -> dict[Hashable, Any]:
        """Resolve every registration under a token into ``{key: value}``.

        Raises:
            DILoomKeyedMapError: If a registration has no key or keys repeat.

        """
        return self._engine.resolve_map(token, scope=None)

    async def resolve_map_async(self, token: TokenLike) -> dict[Hashable, Any]:
        return await self._engine.resolve_map_async(token, scope=None)

    # endregion Resolution

    # region Introspection

    def has(self, token: Any) -> bool:
        return token in self._engine.registry

    def get_descriptor(self, token: Any, key: ServiceKey | None = None) -> ServiceDescriptor | None:
        """Return the descriptor ``resolve(token, key)`` would select."""
        return self._engine.registry.pick(token, key)

    def get_descriptors(self, token: Any) -> tuple[ServiceDescriptor, ...] | None:
        return self._engine.registry.get(token)

    def validate_graph(
        self,
        *,
        throw_on_error: bool = False,
        require_keys_for_multiple: bool = False,
        required_tokens: Iterable[Any] = (),
        unused_tokens: Iterable[Any] = (),
    ) -> list[Diagnostic]:
        """Report ambiguous or missing registrations; see ``validate_graph``."""
        return validate_graph(
            self._engine.registry,
            throw_on_error=throw_on_error,
            require_keys_for_multiple=require_keys_for_multiple,
            required_tokens=required_tokens,
            unused_tokens=unused_tokens,
        )

    # endregion Introspection

    # region Scopes and Disposal

    def create_scope(self) -> ServiceScope:
        """Create a scope owning its own scoped instances and dispose hooks."""
        logger.debug("Creating scope")
        return ServiceScope(self)

    async def with_scope(self, work: Callable[[ServiceScope], Awaitable[R]]) -> R:
        """Run ``work`` in a fresh scope and dispose the scope afterwards, even on error."""
        async with self.create_scope() as scope:
            return await work(scope)

    def on_dispose(self, callback: Callable[[], Any], priority: int = 0) -> None:
        """Register a callback run by ``dispose()`` before singleton instances are disposed."""
        self._hooks.push(callback, priority)

    def _record_singleton(self, descriptor: ServiceDescriptor, instance: Any) -> None:
        disposer = instance_disposer(descriptor, instance)
        if disposer is not None:
            self._instances.push(disposer, descriptor.dispose_priority)

    async def dispose(self) -> None:
        """Run dispose hooks, then dispose singleton instances created by this provider.

        Global singletons are left untouched. The singleton cache is emptied, so
        later resolutions build fresh instances. Singleton builds still in
        flight keep running and are shared with later callers; their instances
        belong to the next disposal.
        """
        logger.debug(
            "Disposing provider with %d hooks and %d singletons",
            len(self._hooks),
            len(self._singletons.values),
        )
        try:
            await drain_in_order(self._hooks, self._instances)
        finally:
            self._singletons.clear()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.dispose()

    # endregion Scopes and Disposal
