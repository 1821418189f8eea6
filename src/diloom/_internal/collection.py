from __future__ import annotations

import logging
import traceback
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from diloom._internal.descriptors import (
    DisposeFn,
    Lifetime,
    ServiceDescriptor,
    ServiceFactory,
    TraceCallback,
)
from diloom._internal.provider import ServiceProvider
from diloom._internal.registry import DescriptorRegistry
from diloom.tokens import ServiceKey

if TYPE_CHECKING:
    from typing_extensions import Self

T = TypeVar("T")

logger = logging.getLogger(__name__)

# Frames belonging to ServiceCollection itself: _capture_source, add and the add_* wrapper.
_OWN_STACK_FRAMES = 3


@dataclass(frozen=True, slots=True)
class Value(Generic[T]):
    """A pre-built value registered together with its teardown callable.

    Examples:
        .. code-block:: python

            services.add_singleton(Pool, Value(pool, dispose=pool.close))

    """

    value: T
    dispose: DisposeFn | None = None


class ServiceCollection:
    """Accumulate service registrations and build an immutable provider.

    Every ``add_*`` method accepts either a factory, called with a resolver
    (``lambda resolver: Service(resolver.resolve(Dep))``), or a pre-built value.
    Factories may be ``async def`` functions; resolve those with
    ``resolve_async``.

    Registering a second descriptor for the same ``(token, key)`` fails unless
    ``multiple=True`` is passed or the collection allows overwriting.
    """

    def __init__(
        self,
        *,
        allow_overwrite: bool = False,
        default_multiple: bool = False,
        capture_stack: bool = False,
        trace: TraceCallback | None = None,
    ) -> None:
        """Initialize an empty collection with registration defaults.

        Args:
            allow_overwrite: Replace an occupied ``(token, key)`` slot instead of
                raising ``DILoomDuplicateRegistrationError``.
            default_multiple: Default for the per-registration ``multiple`` flag.
            capture_stack: Record the registration call stack on each
                descriptor's ``source`` for diagnostics.
            trace: Callback passed to built providers, invoked on every
                descriptor selection.

        """
        self._allow_overwrite = allow_overwrite
        self._default_multiple = default_multiple
        self._capture_stack = capture_stack
        self._trace = trace
        self._registry = DescriptorRegistry()

    def add_singleton(
        self,
        token: Any,
        factory_or_value: ServiceFactory | Any,
        *,
        key: ServiceKey | None = None,
        multiple: bool | None = None,
        global_key: str | None = None,
        dispose_priority: int = 0,
        source: str | None = None,
        dispose: DisposeFn | None = None,
    ) -> Self:
        """Register a service shared for the lifetime of the provider."""
        return self.add(
            token,
            factory_or_value,
            lifetime=Lifetime.SINGLETON,
            key=key,
            multiple=multiple,
            global_key=global_key,
            dispose_priority=dispose_priority,
            source=source,
            dispose=dispose,
        )

    def add_global_singleton(
        self,
        token: Any,
        factory_or_value: ServiceFactory | Any,
        *,
        key: ServiceKey | None = None,
        multiple: bool | None = None,
        global_key: str | None = None,
        dispose_priority: int = 0,
        source: str | None = None,
        dispose: DisposeFn | None = None,
    ) -> Self:
        """Register a service shared by every provider in the process.

        The cache key is ``global_key`` when given, otherwise derived from the
        token (and key). Values survive ``provider.dispose()``.
        """
        return self.add(
            token,
            factory_or_value,
            lifetime=Lifetime.GLOBAL_SINGLETON,
            key=key,
            multiple=multiple,
            global_key=global_key,
            dispose_priority=dispose_priority,
            source=source,
            dispose=dispose,
        )

    def add_scoped(
        self,
        token: Any,
        factory_or_value: ServiceFactory | Any,
        *,
        key: ServiceKey | None = None,
        multiple: bool | None = None,
        dispose_priority: int = 0,
        source: str | None = None,
        dispose: DisposeFn | None = None,
    ) -> Self:
        """Register a service shared within one scope."""
        return self.add(
            token,
            factory_or_value,
            lifetime=Lifetime.SCOPED,
            key=key,
            multiple=multiple,
            dispose_priority=dispose_priority,
            source=source,
            dispose=dispose,
        )

    def add_transient(
        self,
        token: Any,
        factory_or_value: ServiceFactory | Any,
        *,
        key: ServiceKey | None = None,
        multiple: bool | None = None,
        dispose_priority: int = 0,
        source: str | None = None,
    ) -> Self:
        """Register a service built anew on every resolution."""
        return self.add(
            token,
            factory_or_value,
            lifetime=Lifetime.TRANSIENT,
            key=key,
            multiple=multiple,
            dispose_priority=dispose_priority,
            source=source,
        )

    def add(
        self,
        token: Any,
        factory_or_value: ServiceFactory | Any,
        *,
        lifetime: Lifetime,
        key: ServiceKey | None = None,
        multiple: bool | None = None,
        global_key: str | None = None,
        dispose_priority: int = 0,
        source: str | None = None,
        dispose: DisposeFn | None = None,
    ) -> Self:
        """Register a factory or value under an explicit lifetime.

        Args:
            token: Token the service is resolved by.
            factory_or_value: Callable receiving a resolver, a ``Value`` wrapper,
                or any other object registered as is.
            lifetime: Sharing policy of produced instances.
            key: Optional key distinguishing registrations under one token.
            multiple: Append next to existing registrations instead of owning
                the slot. Defaults to the collection's ``default_multiple``.
            global_key: Explicit process-global cache key.
            dispose_priority: Higher values are disposed first.
            source: Free-form origin recorded on the descriptor.
            dispose: Teardown callable used instead of auto-detected methods.

        """
        factory, value_dispose = _wrap_factory(factory_or_value)
        descriptor = ServiceDescriptor(
            token=token,
            factory=factory,
            lifetime=lifetime,
            key=key,
            dispose_priority=dispose_priority,
            global_key=global_key,
            source=source if source is not None else self._capture_source(),
            custom_dispose=dispose if dispose is not None else value_dispose,
        )
        return self.add_descriptor(descriptor, multiple=multiple)

    def add_descriptor(self, descriptor: ServiceDescriptor, *, multiple: bool | None = None) -> Self:
        """Register a pre-built descriptor under the collection's insertion policy."""
        self._registry.register(
            descriptor,
            multiple=self._default_multiple if multiple is None else multiple,
            allow_overwrite=self._allow_overwrite,
        )
        return self

    def build(self) -> ServiceProvider:
        """Snapshot registrations into a provider; later registrations do not affect it."""
        registry = self._registry.build()
        logger.debug("Building provider from %d registrations", self.count)
        return ServiceProvider(registry, trace=self._trace)

    @property
    def count(self) -> int:
        return self._registry.count()

    @property
    def tokens(self) -> list[Any]:
        return self._registry.tokens()

    def _capture_source(self) -> str | None:
        if not self._capture_stack:
            return None
        return "".join(traceback.format_stack()[:-_OWN_STACK_FRAMES])


def _wrap_factory(factory_or_value: Any) -> tuple[ServiceFactory, DisposeFn | None]:
    if isinstance(factory_or_value, Value):
        value = factory_or_value.value
        return (lambda _resolver: value), factory_or_value.dispose
    if callable(factory_or_value):
        return factory_or_value, None
    return (lambda _resolver: factory_or_value), None
