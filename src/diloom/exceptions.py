from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from diloom.tokens import PathFrame, ServiceKey, render_path, token_label

if TYPE_CHECKING:
    from diloom._internal.diagnostics import Diagnostic


class DILoomError(Exception):
    """Represent a base class for all diloom-specific failures.

    Catch this type when you want to handle any diloom error path without
    matching each concrete exception class individually.
    """


class _ResolutionError(DILoomError):
    """Carry the token, key and resolution path of a failed lookup."""

    def __init__(
        self,
        message: str,
        *,
        token: Any,
        key: ServiceKey | None = None,
        path: Sequence[PathFrame] = (),
    ) -> None:
        self.token = token
        self.key = key
        self.path = tuple(path)
        if self.path:
            message = f"{message} (path: {render_path(self.path)})"
        super().__init__(message)


class DILoomMissingServiceError(_ResolutionError):
    """Signal that no descriptor is registered for a token and key.

    Raised by ``resolve``/``resolve_async`` when the token was not wrapped with
    ``optional(...)``.

    Typical fixes include registering the token, passing the key it was
    registered under, or resolving ``optional(token)`` when absence is valid.
    """


class DILoomScopeResolutionError(_ResolutionError):
    """Signal that a scoped service was requested without a usable scope.

    Raised when resolving a ``Lifetime.SCOPED`` descriptor from the root
    provider, or from a scope that has already been disposed.

    Typical fix is resolving through ``provider.create_scope()``.
    """


class DILoomAsyncFactoryError(_ResolutionError):
    """Signal synchronous resolution of an asynchronous factory.

    Raised by ``resolve`` when the selected factory is a coroutine function,
    returns an awaitable, or is still being built by a concurrent
    ``resolve_async`` call.

    Typical fix is switching to ``await provider.resolve_async(...)``.
    """


class DILoomCircularDependencyError(_ResolutionError):
    """Signal that a resolution path revisits a ``(token, key)`` frame.

    The full chain is available on ``path`` and rendered in the message.
    """

    def __init__(self, path: Sequence[PathFrame]) -> None:
        frames = tuple(path)
        self.token = frames[-1].token
        self.key = frames[-1].key
        self.path = frames
        DILoomError.__init__(self, f"Circular dependency detected: {render_path(frames)}")


class DILoomDuplicateRegistrationError(DILoomError):
    """Signal a registration that would silently replace an existing one.

    Typical fixes include passing ``multiple=True``, registering under a distinct
    ``key``, or building the collection with ``allow_overwrite=True``.
    """

    def __init__(self, token: Any, key: ServiceKey | None = None) -> None:
        self.token = token
        self.key = key
        slot = token_label(token) if key is None else f"{token_label(token)} (key {key!r})"
        super().__init__(
            f"Service already registered for token {slot}. "
            "Set allow_overwrite to True or use multiple registrations.",
        )


class DILoomKeyedMapError(DILoomError):
    """Signal that ``resolve_map`` cannot build a key to value mapping.

    Raised when a descriptor under the token has no key or when two descriptors
    share one key.
    """

    def __init__(self, message: str, *, token: Any) -> None:
        self.token = token
        super().__init__(message)


class DILoomGraphValidationError(DILoomError):
    """Signal that ``validate_graph(throw_on_error=True)`` found an error diagnostic."""

    def __init__(self, diagnostic: Diagnostic, diagnostics: Sequence[Diagnostic]) -> None:
        self.diagnostic = diagnostic
        self.diagnostics = list(diagnostics)
        super().__init__(diagnostic.message)


class DILoomDisposalError(DILoomError):
    """Signal that more than one disposer failed while tearing down an owner.

    Every disposer still runs; the individual failures are kept on ``errors``.
    A single failing disposer is re-raised as is instead.
    """

    def __init__(self, errors: Sequence[BaseException]) -> None:
        self.errors = list(errors)
        super().__init__(f"{len(self.errors)} disposers failed: {self.errors!r}")
