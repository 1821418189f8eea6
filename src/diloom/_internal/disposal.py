from __future__ import annotations

import inspect
import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from diloom._internal.descriptors import DisposeFn, ServiceDescriptor
from diloom._internal.type_checks import is_runtime_class
from diloom.exceptions import DILoomDisposalError

logger = logging.getLogger(__name__)

_DISPOSER_METHOD_NAMES: tuple[str, ...] = ("dispose", "close", "destroy", "aclose")
_NOT_DISPOSABLE_TYPES: tuple[type[Any], ...] = (str, bytes, int, float, bool, complex)


@dataclass(order=True, frozen=True, slots=True)
class _QueueEntry:
    sort_key: tuple[int, int]
    callback: Callable[[], Any] = field(compare=False)


class DisposalQueue:
    """Ordered teardown callbacks keyed by priority and insertion order.

    Higher priorities run first. Within one priority, callbacks run in insertion
    order, or in reverse insertion order when ``lifo`` is set so that the most
    recently created instance is torn down first.
    """

    def __init__(self, *, lifo: bool) -> None:
        self._lifo = lifo
        self._counter = itertools.count()
        self._entries: list[_QueueEntry] = []

    def push(self, callback: Callable[[], Any], priority: int = 0) -> None:
        sequence = next(self._counter)
        tiebreak = -sequence if self._lifo else sequence
        self._entries.append(_QueueEntry((-priority, tiebreak), callback))

    def __len__(self) -> int:
        return len(self._entries)

    async def drain(self) -> None:
        """Run and forget every queued callback, awaiting async results one by one.

        All callbacks run even when some fail. A single failure is re-raised as
        is; several failures are raised together as ``DILoomDisposalError``.
        """
        entries = sorted(self._entries)
        self._entries.clear()
        errors: list[Exception] = []
        for entry in entries:
            try:
                result = entry.callback()
                if inspect.isawaitable(result):
                    await result
            except Exception as error:  # noqa: BLE001
                logger.debug("Disposer %r failed", entry.callback, exc_info=True)
                errors.append(error)
        if len(errors) == 1:
            raise errors[0]
        if errors:
            raise DILoomDisposalError(errors) from errors[0]


async def drain_in_order(*queues: DisposalQueue) -> None:
    """Drain queues one after another, running later queues even if earlier ones fail."""
    errors: list[BaseException] = []
    for queue in queues:
        try:
            await queue.drain()
        except DILoomDisposalError as error:
            errors.extend(error.errors)
        except Exception as error:  # noqa: BLE001
            errors.append(error)
    if len(errors) == 1:
        raise errors[0]
    if errors:
        raise DILoomDisposalError(errors) from errors[0]


def find_disposer(instance: Any) -> DisposeFn | None:
    """Return the auto-detected teardown method of an instance, if any."""
    if instance is None or isinstance(instance, _NOT_DISPOSABLE_TYPES):
        return None
    if is_runtime_class(instance):
        return None
    for method_name in _DISPOSER_METHOD_NAMES:
        method = getattr(instance, method_name, None)
        if callable(method):
            return method
    return None


def instance_disposer(descriptor: ServiceDescriptor, instance: Any) -> Callable[[], Any] | None:
    """Build the zero-argument teardown closure for a materialized instance.

    A descriptor's ``custom_dispose`` wins over auto-detected methods. It is
    called with the instance when it accepts a positional argument.
    """
    custom_dispose = descriptor.custom_dispose
    if custom_dispose is not None:
        if _accepts_positional_argument(custom_dispose):
            return lambda: custom_dispose(instance)
        return custom_dispose

    return find_disposer(instance)


def _accepts_positional_argument(callback: Callable[..., Any]) -> bool:
    try:
        signature = inspect.signature(callback)
    except (TypeError, ValueError):
        return False
    for parameter in signature.parameters.values():
        if parameter.kind in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
            inspect.Parameter.VAR_POSITIONAL,
        ):
            return True
    return False
