from __future__ import annotations

import itertools
from collections.abc import Hashable, Iterable
from dataclasses import dataclass
from typing import Any, Generic, NamedTuple, TypeAlias, TypeVar

from diloom._internal.type_checks import is_runtime_class

T = TypeVar("T")

ServiceKey: TypeAlias = Hashable
"""Secondary identity distinguishing several recipes registered under one token."""

_TOKEN_COUNTER = itertools.count(1)


class Token(Generic[T]):
    """Opaque service identity compared by object identity.

    Two tokens created with the same name are still different tokens, which
    mirrors how classes behave as tokens.

    Examples:
        .. code-block:: python

            Db = create_token("Db")
            services.add_singleton(Db, lambda resolver: connect())

    """

    __slots__ = ("name", "uid")

    def __init__(self, name: str | None = None) -> None:
        self.name = name or "token"
        self.uid = next(_TOKEN_COUNTER)

    def __repr__(self) -> str:
        return f"Token({self.name!r})"


@dataclass(frozen=True, slots=True)
class OptionalToken(Generic[T]):
    """Wrap a token so a missing registration resolves to ``None``."""

    token: Any


TokenLike: TypeAlias = Any
"""A token (string, ``Token`` or class) or an ``OptionalToken`` wrapper."""


class PathFrame(NamedTuple):
    """One ``(token, key)`` step of a resolution path."""

    token: Any
    key: ServiceKey | None


def create_token(name: str | None = None) -> Token[Any]:
    """Create a fresh token handle.

    Args:
        name: Human readable label used in error messages and traces.

    """
    return Token(name)


def optional(token: Any) -> OptionalToken[Any]:
    """Mark a token as optional for a single resolve call."""
    return OptionalToken(token)


def unwrap_token(token: TokenLike) -> tuple[Any, bool]:
    """Return the real token and whether it was wrapped as optional."""
    if isinstance(token, OptionalToken):
        return token.token, True
    return token, False


def token_label(token: Any) -> str:
    """Render a token for diagnostics."""
    if isinstance(token, Token):
        return token.name
    if isinstance(token, str):
        return token
    if is_runtime_class(token):
        return token.__qualname__
    return repr(token)


def token_identity(token: Any) -> str:
    """Render a token label that stays stable for the same token across providers.

    Used to derive process-global cache keys when no explicit ``global_key`` is
    given, so unlike ``token_label`` it must not collide for distinct tokens.
    """
    if isinstance(token, Token):
        return f"{token.name}#{token.uid}"
    if is_runtime_class(token):
        return f"{token.__module__}.{token.__qualname__}"
    return token_label(token)


def frame_label(frame: PathFrame) -> str:
    """Render one path frame, appending the key in parentheses when present."""
    label = token_label(frame.token)
    if frame.key is None:
        return label
    return f"{label}({frame.key})"


def render_path(path: Iterable[PathFrame]) -> str:
    """Render a resolution path as ``A -> B -> C``."""
    return " -> ".join(frame_label(frame) for frame in path)


__all__ = [
    "OptionalToken",
    "PathFrame",
    "ServiceKey",
    "Token",
    "TokenLike",
    "create_token",
    "frame_label",
    "optional",
    "render_path",
    "token_identity",
    "token_label",
    "unwrap_token",
]
