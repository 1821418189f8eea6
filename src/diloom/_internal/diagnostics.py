from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Literal

from diloom._internal.registry import GroupedRegistry
from diloom.exceptions import DILoomGraphValidationError
from diloom.tokens import ServiceKey, token_label

DiagnosticLevel = Literal["warning", "error"]


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """A single finding reported by ``validate_graph``."""

    level: DiagnosticLevel
    message: str
    token: Any = None
    key: ServiceKey | None = None


def validate_graph(
    registry: GroupedRegistry,
    *,
    throw_on_error: bool = False,
    require_keys_for_multiple: bool = False,
    required_tokens: Iterable[Any] = (),
    unused_tokens: Iterable[Any] = (),
) -> list[Diagnostic]:
    """Inspect a built registry for ambiguous or incomplete registrations.

    Args:
        registry: Registry snapshot to inspect.
        throw_on_error: Raise on the first error-level diagnostic instead of
            returning the list.
        require_keys_for_multiple: Report several unkeyed registrations under
            one token as an error instead of a warning.
        required_tokens: Tokens that must be registered.
        unused_tokens: Tokens declared by the caller that are expected to have
            registrations; absent ones are reported as warnings.

    Raises:
        DILoomGraphValidationError: If ``throw_on_error`` is set and an error
            diagnostic was found.

    """
    diagnostics: list[Diagnostic] = []

    for token, descriptors in registry.items():
        label = token_label(token)
        keys = [descriptor.key for descriptor in descriptors if descriptor.key is not None]
        unkeyed_count = len(descriptors) - len(keys)

        for key, count in Counter(keys).items():
            if count > 1:
                diagnostics.append(
                    Diagnostic(
                        level="error",
                        message=f"Duplicate key {key!r} registered {count} times for {label}.",
                        token=token,
                        key=key,
                    ),
                )

        if unkeyed_count > 1:
            diagnostics.append(
                Diagnostic(
                    level="error" if require_keys_for_multiple else "warning",
                    message=(
                        f"{label} has {unkeyed_count} registrations without a key; "
                        "unkeyed resolution picks the last one."
                    ),
                    token=token,
                ),
            )

        if keys and unkeyed_count:
            diagnostics.append(
                Diagnostic(
                    level="warning",
                    message=f"{label} mixes keyed and unkeyed registrations.",
                    token=token,
                ),
            )

    for token in required_tokens:
        if token not in registry:
            diagnostics.append(
                Diagnostic(
                    level="error",
                    message=f"Required token {token_label(token)} is not registered.",
                    token=token,
                ),
            )

    for token in unused_tokens:
        if token not in registry:
            diagnostics.append(
                Diagnostic(
                    level="warning",
                    message=f"Unused token {token_label(token)} has no registrations.",
                    token=token,
                ),
            )

    if throw_on_error:
        for diagnostic in diagnostics:
            if diagnostic.level == "error":
                raise DILoomGraphValidationError(diagnostic, diagnostics)

    return diagnostics
