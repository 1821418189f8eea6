from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Hashable
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, overload

from diloom._internal.descriptors import Lifetime, ServiceDescriptor, TraceCallback, TraceEvent
from diloom._internal.disposal import instance_disposer
from diloom._internal.globals import MISSING, CacheTier, get_global_cache
from diloom._internal.registry import GroupedRegistry
from diloom._internal.type_checks import discard_awaitable, is_async_callable
from diloom.exceptions import (
    DILoomAsyncFactoryError,
    DILoomCircularDependencyError,
    DILoomKeyedMapError,
    DILoomMissingServiceError,
    DILoomScopeResolutionError,
)
from diloom.tokens import (
    PathFrame,
    ServiceKey,
    TokenLike,
    frame_label,
    render_path,
    token_identity,
    token_label,
    unwrap_token,
)

if TYPE_CHECKING:
    from diloom._internal.scope import ServiceScope

T = TypeVar("T")

logger = logging.getLogger(__name__)

Path = tuple[PathFrame, ...]
OnCreated = Callable[[ServiceDescriptor, Any], None]


class ServiceResolver(Protocol):
    """Resolution surface shared by providers, scopes, and the resolver handed to factories."""

    @overload
    def resolve(self, token: type[T], key: ServiceKey | None = None) -> T: ...

    @overload
    def resolve(self, token: TokenLike, key: ServiceKey | None = None) -> Any: ...

    def resolve(self, token: TokenLike, key: ServiceKey | None = None) -> Any:
        """Resolve a token synchronously.

        Args:
            token: Token to resolve, optionally wrapped with ``optional(...)``.
            key: Registration key to match exactly.

        """

    @overload
    async def resolve_async(self, token: type[T], key: ServiceKey | None = None) -> T: ...

    @overload
    async def resolve_async(self, token: TokenLike, key: ServiceKey | None = None) -> Any: ...

    async def resolve_async(self, token: TokenLike, key: ServiceKey | None = None) -> Any:
        """Resolve a token, awaiting asynchronous factories.

        Args:
            token: Token to resolve, optionally wrapped with ``optional(...)``.
            key: Registration key to match exactly.

        """

    def try_resolve(self, token: TokenLike, key: ServiceKey | None = None) -> Any | None:
        """Resolve a token, returning ``None`` instead of raising."""

    async def try_resolve_async(self, token: TokenLike, key: ServiceKey | None = None) -> Any | None:
        """Resolve a token asynchronously, returning ``None`` instead of raising."""

    def resolve_all(self, token: TokenLike) -> list[Any]:
        """Resolve every descriptor registered under a token, keyed or not."""

    async def resolve_all_async(self, token: TokenLike) -> list[Any]:
        """Asynchronously resolve every descriptor registered under a token."""

    def resolve_map(self, token: TokenLike) -> dict[Hashable, Any]:
        """Resolve every keyed descriptor under a token into a ``{key: value}`` mapping."""

    async def resolve_map_async(self, token: TokenLike) -> dict[Hashable, Any]:
        """Asynchronously resolve a token into a ``{key: value}`` mapping."""


class ResolutionEngine:
    """Pick descriptors, guard resolution paths, and materialize values by lifetime.

    The engine owns no scoped state. Callers pass the active scope (or ``None``
    for the root provider) and the resolution path of the current top-level
    call. The path is an immutable tuple extended on every descriptor
    selection, so interleaved async resolutions never share cycle state.
    """

    def __init__(
        self,
        registry: GroupedRegistry,
        *,
        singletons: CacheTier[ServiceDescriptor],
        on_singleton_created: OnCreated,
        trace: TraceCallback | None = None,
    ) -> None:
        self._registry = registry
        self._singletons = singletons
        self._on_singleton_created = on_singleton_created
        self._trace = trace

    @property
    def registry(self) -> GroupedRegistry:
        return self._registry

    # region Public entrypoints

    def resolve(
        self,
        token: TokenLike,
        key: ServiceKey | None,
        *,
        scope: ServiceScope | None,
        path: Path = (),
    ) -> Any:
        descriptor = self._select(token, key, path)
        if descriptor is None:
            return None
        return self.resolve_descriptor(descriptor, scope=scope, path=path)

    async def resolve_async(
        self,
        token: TokenLike,
        key: ServiceKey | None,
        *,
        scope: ServiceScope | None,
        path: Path = (),
    ) -> Any:
        descriptor = self._select(token, key, path)
        if descriptor is None:
            return None
        return await self.resolve_descriptor_async(descriptor, scope=scope, path=path)

    def resolve_all(self, token: TokenLike, *, scope: ServiceScope | None, path: Path = ()) -> list[Any]:
        real_token, _ = unwrap_token(token)
        return [
            self.resolve_descriptor(descriptor, scope=scope, path=path)
            for descriptor in self._registry.get(real_token, ())
        ]

    async def resolve_all_async(
        self,
        token: TokenLike,
        *,
        scope: ServiceScope | None,
        path: Path = (),
    ) -> list[Any]:
        real_token, _ = unwrap_token(token)
        return [
            await self.resolve_descriptor_async(descriptor, scope=scope, path=path)
            for descriptor in self._registry.get(real_token, ())
        ]

    def resolve_map(
        self,
        token: TokenLike,
        *,
        scope: ServiceScope | None,
        path: Path = (),
    ) -> dict[Hashable, Any]:
        descriptors = self._keyed_descriptors(token)
        return {
            descriptor.key: self.resolve_descriptor(descriptor, scope=scope, path=path)
            for descriptor in descriptors
        }

    async def resolve_map_async(
        self,
        token: TokenLike,
        *,
        scope: ServiceScope | None,
        path: Path = (),
    ) -> dict[Hashable, Any]:
        descriptors = self._keyed_descriptors(token)
        return {
            descriptor.key: await self.resolve_descriptor_async(descriptor, scope=scope, path=path)
            for descriptor in descriptors
        }

    def resolve_descriptor(
        self,
        descriptor: ServiceDescriptor,
        *,
        scope: ServiceScope | None,
        path: Path = (),
    ) -> Any:
        """Materialize a specific descriptor synchronously, honoring its lifetime."""
        path = self._enter(descriptor, path, is_async=False)
        lifetime = descriptor.lifetime

        if lifetime is Lifetime.TRANSIENT:
            return self._materialize(descriptor, scope=scope, path=path)

        if lifetime is Lifetime.SCOPED:
            scope = self._require_scope(descriptor, scope, path)
            return self._get_or_create(
                scope.cache,
                descriptor,
                descriptor,
                scope=scope,
                path=path,
                on_created=scope.record_instance,
            )

        if lifetime is Lifetime.SINGLETON:
            return self._get_or_create(
                self._singletons,
                descriptor,
                descriptor,
                scope=None,
                path=path,
                on_created=self._on_singleton_created,
            )

        return self._get_or_create(
            get_global_cache(),
            global_cache_key(descriptor),
            descriptor,
            scope=None,
            path=path,
            on_created=None,
        )

    async def resolve_descriptor_async(
        self,
        descriptor: ServiceDescriptor,
        *,
        scope: ServiceScope | None,
        path: Path = (),
    ) -> Any:
        """Materialize a specific descriptor, awaiting async factories."""
        path = self._enter(descriptor, path, is_async=True)
        lifetime = descriptor.lifetime

        if lifetime is Lifetime.TRANSIENT:
            return await self._materialize_async(descriptor, scope=scope, path=path)

        if lifetime is Lifetime.SCOPED:
            scope = self._require_scope(descriptor, scope, path)
            return await self._get_or_create_async(
                scope.cache,
                descriptor,
                descriptor,
                scope=scope,
                path=path,
                on_created=scope.record_instance,
            )

        if lifetime is Lifetime.SINGLETON:
            return await self._get_or_create_async(
                self._singletons,
                descriptor,
                descriptor,
                scope=None,
                path=path,
                on_created=self._on_singleton_created,
            )

        return await self._get_or_create_async(
            get_global_cache(),
            global_cache_key(descriptor),
            descriptor,
            scope=None,
            path=path,
            on_created=None,
        )

    # endregion Public entrypoints

    # region Selection

    def _select(self, token: TokenLike, key: ServiceKey | None, path: Path) -> ServiceDescriptor | None:
        real_token, is_optional = unwrap_token(token)
        descriptor = self._registry.pick(real_token, key)
        if descriptor is not None or is_optional:
            return descriptor

        label = token_label(real_token)
        if key is None:
            msg = f"Service not registered: {label}"
        else:
            msg = f"Service not registered: {label} with key {key!r}"
        raise DILoomMissingServiceError(msg, token=real_token, key=key, path=path)

    def _enter(self, descriptor: ServiceDescriptor, path: Path, *, is_async: bool) -> Path:
        frame = PathFrame(descriptor.token, descriptor.key)
        extended = (*path, frame)
        if frame in path:
            raise DILoomCircularDependencyError(extended)

        logger.debug(
            "Resolving %s as %s (%s)",
            frame_label(frame),
            descriptor.lifetime.value,
            "async" if is_async else "sync",
        )
        if self._trace is not None:
            self._emit_trace(descriptor, extended, is_async=is_async)
        return extended

    def _emit_trace(self, descriptor: ServiceDescriptor, path: Path, *, is_async: bool) -> None:
        event = TraceEvent(
            token=descriptor.token,
            key=descriptor.key,
            lifetime=descriptor.lifetime,
            path=tuple(frame_label(frame) for frame in path),
            is_async=is_async,
        )
        try:
            self._trace(event)  # type: ignore[misc]
        except Exception:
            logger.warning("Trace callback failed for %s", event.path[-1], exc_info=True)

    def _keyed_descriptors(self, token: TokenLike) -> tuple[ServiceDescriptor, ...]:
        real_token, _ = unwrap_token(token)
        descriptors = self._registry.get(real_token, ())
        seen: set[Hashable] = set()
        for descriptor in descriptors:
            if descriptor.key is None:
                msg = (
                    f"Cannot build a keyed map for {token_label(real_token)}: "
                    "every registration needs a key."
                )
                raise DILoomKeyedMapError(msg, token=real_token)
            if descriptor.key in seen:
                msg = f"Duplicate key {descriptor.key!r} registered for {token_label(real_token)}."
                raise DILoomKeyedMapError(msg, token=real_token)
            seen.add(descriptor.key)
        return descriptors

    def _require_scope(
        self,
        descriptor: ServiceDescriptor,
        scope: ServiceScope | None,
        path: Path,
    ) -> ServiceScope:
        label = token_label(descriptor.token)
        if scope is None:
            msg = f'Cannot resolve scoped service "{label}" from root provider. Create a scope first.'
            raise DILoomScopeResolutionError(msg, token=descriptor.token, key=descriptor.key, path=path)
        if scope.disposed:
            msg = f'Cannot resolve scoped service "{label}" from a disposed scope.'
            raise DILoomScopeResolutionError(msg, token=descriptor.token, key=descriptor.key, path=path)
        return scope

    # endregion Selection

    # region Materialization

    def _get_or_create(
        self,
        tier: CacheTier[Any],
        cache_key: Hashable,
        descriptor: ServiceDescriptor,
        *,
        scope: ServiceScope | None,
        path: Path,
        on_created: OnCreated | None,
    ) -> Any:
        value = tier.lookup(cache_key)
        if value is not MISSING:
            return value
        if cache_key in tier.pending:
            msg = (
                f"Service {token_label(descriptor.token)} is still being created asynchronously. "
                "Use resolve_async() instead."
            )
            raise DILoomAsyncFactoryError(msg, token=descriptor.token, key=descriptor.key, path=path)

        value = self._materialize(descriptor, scope=scope, path=path)
        return self._store(tier, cache_key, descriptor, value, on_created)

    async def _get_or_create_async(
        self,
        tier: CacheTier[Any],
        cache_key: Hashable,
        descriptor: ServiceDescriptor,
        *,
        scope: ServiceScope | None,
        path: Path,
        on_created: OnCreated | None,
    ) -> Any:
        value = tier.lookup(cache_key)
        if value is not MISSING:
            return value

        task = tier.pending.get(cache_key)
        if task is None:
            task = asyncio.ensure_future(
                self._build_and_store(
                    tier,
                    cache_key,
                    descriptor,
                    scope=scope,
                    path=path,
                    on_created=on_created,
                ),
            )
            tier.pending[cache_key] = task
        # Shielded so a cancelled waiter does not cancel the build other waiters share.
        return await asyncio.shield(task)

    async def _build_and_store(
        self,
        tier: CacheTier[Any],
        cache_key: Hashable,
        descriptor: ServiceDescriptor,
        *,
        scope: ServiceScope | None,
        path: Path,
        on_created: OnCreated | None,
    ) -> Any:
        try:
            value = await self._materialize_async(descriptor, scope=scope, path=path)
            if descriptor.lifetime is Lifetime.SCOPED and scope is not None and scope.disposed:
                await self._discard(descriptor, value, path)
                label = token_label(descriptor.token)
                msg = f'Scope was disposed while scoped service "{label}" was being created.'
                raise DILoomScopeResolutionError(msg, token=descriptor.token, key=descriptor.key, path=path)

            winner = self._store(tier, cache_key, descriptor, value, on_created)
            if winner is not value:
                await self._discard(descriptor, value, path)
            return winner
        finally:
            tier.pending.pop(cache_key, None)

    async def _discard(self, descriptor: ServiceDescriptor, value: Any, path: Path) -> None:
        """Dispose a freshly built value that no owner will ever dispose."""
        disposer = instance_disposer(descriptor, value)
        if disposer is None:
            return
        logger.debug("Disposing orphaned instance of %s", render_path(path))
        result = disposer()
        if inspect.isawaitable(result):
            await result

    def _store(
        self,
        tier: CacheTier[Any],
        cache_key: Hashable,
        descriptor: ServiceDescriptor,
        value: Any,
        on_created: OnCreated | None,
    ) -> Any:
        winner = tier.store_if_absent(cache_key, value)
        if winner is value and on_created is not None:
            on_created(descriptor, value)
        return winner

    def _materialize(self, descriptor: ServiceDescriptor, *, scope: ServiceScope | None, path: Path) -> Any:
        factory = descriptor.factory
        if is_async_callable(factory):
            raise self._async_factory_error(descriptor, path)

        value = factory(BoundResolver(self, scope, path))
        if inspect.isawaitable(value):
            discard_awaitable(value)
            raise self._async_factory_error(descriptor, path)
        return value

    async def _materialize_async(
        self,
        descriptor: ServiceDescriptor,
        *,
        scope: ServiceScope | None,
        path: Path,
    ) -> Any:
        value = descriptor.factory(BoundResolver(self, scope, path))
        if inspect.isawaitable(value):
            value = await value
        return value

    def _async_factory_error(self, descriptor: ServiceDescriptor, path: Path) -> DILoomAsyncFactoryError:
        msg = (
            f"Factory for {token_label(descriptor.token)} is asynchronous. "
            "Use resolve_async() instead of resolve()."
        )
        return DILoomAsyncFactoryError(msg, token=descriptor.token, key=descriptor.key, path=path)

    # endregion Materialization


def global_cache_key(descriptor: ServiceDescriptor) -> str:
    """Return the process-global cache key of a ``GLOBAL_SINGLETON`` descriptor."""
    if descriptor.global_key is not None:
        return descriptor.global_key
    label = token_identity(descriptor.token)
    if descriptor.key is None:
        return label
    return f"{label}:{descriptor.key}"


class BoundResolver:
    """Resolver handed to factories, bound to the scope and path that invoked them."""

    __slots__ = ("_engine", "_path", "_scope")

    def __init__(self, engine: ResolutionEngine, scope: ServiceScope | None, path: Path) -> None:
        self._engine = engine
        self._scope = scope
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def resolve(self, token: TokenLike, key: ServiceKey | None = None) -> Any:
        return self._engine.resolve(token, key, scope=self._scope, path=self._path)

    async def resolve_async(self, token: TokenLike, key: ServiceKey | None = None) -> Any:
        return await self._engine.resolve_async(token, key, scope=self._scope, path=self._path)

    def try_resolve(self, token: TokenLike, key: ServiceKey | None = None) -> Any | None:
        return try_resolve(self, token, key)

    async def try_resolve_async(self, token: TokenLike, key: ServiceKey | None = None) -> Any | None:
        return await try_resolve_async(self, token, key)

    def resolve_all(self, token: TokenLike) -> list[Any]:
        return self._engine.resolve_all(token, scope=self._scope, path=self._path)

    async def resolve_all_async(self, token: TokenLike) -> list[Any]:
        return await self._engine.resolve_all_async(token, scope=self._scope, path=self._path)

    def resolve_map(self, token: TokenLike) -> dict[Hashable, Any]:
        return self._engine.resolve_map(token, scope=self._scope, path=self._path)

    async def resolve_map_async(self, token: TokenLike) -> dict[Hashable, Any]:
        return await self._engine.resolve_map_async(token, scope=self._scope, path=self._path)


def try_resolve(resolver: ServiceResolver, token: TokenLike, key: ServiceKey | None) -> Any | None:
    """Resolve through ``resolver``, mapping every failure to ``None``."""
    try:
        return resolver.resolve(token, key)
    except Exception:  # noqa: BLE001
        logger.debug("try_resolve(%s) returned None", token_label(unwrap_token(token)[0]), exc_info=True)
        return None


async def try_resolve_async(resolver: ServiceResolver, token: TokenLike, key: ServiceKey | None) -> Any | None:
    """Asynchronously resolve through ``resolver``, mapping every failure to ``None``."""
    try:
        return await resolver.resolve_async(token, key)
    except Exception:  # noqa: BLE001
        logger.debug(
            "try_resolve_async(%s) returned None",
            token_label(unwrap_token(token)[0]),
            exc_info=True,
        )
        return None
