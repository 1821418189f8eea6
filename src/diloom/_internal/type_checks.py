from __future__ import annotations

import inspect
import types
from collections.abc import Awaitable, Callable
from typing import Any, TypeGuard


def is_runtime_class(candidate: object) -> TypeGuard[type[Any]]:
    """Return true when candidate is a runtime class usable as a class token.

    Args:
        candidate: Value being checked for class-token eligibility.

    """
    return isinstance(candidate, type) and not isinstance(candidate, types.GenericAlias)


def is_async_callable(candidate: Callable[..., Any]) -> bool:
    """Return true when calling candidate is known to produce an awaitable.

    Covers coroutine functions and callable objects with an async ``__call__``.

    Args:
        candidate: Factory or disposer being inspected before invocation.

    """
    if inspect.iscoroutinefunction(candidate):
        return True
    call = getattr(candidate, "__call__", None)  # noqa: B004
    return not inspect.isclass(candidate) and inspect.iscoroutinefunction(call)


def discard_awaitable(value: Awaitable[Any]) -> None:
    """Close an awaitable that will never be awaited to silence runtime warnings."""
    close = getattr(value, "close", None)
    if inspect.iscoroutine(value) and callable(close):
        close()


__all__ = ["discard_awaitable", "is_async_callable", "is_runtime_class"]
