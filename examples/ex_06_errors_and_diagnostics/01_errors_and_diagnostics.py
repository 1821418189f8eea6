"""Errors and graph diagnostics.

Resolution errors carry the resolution path that led to them, and
``validate_graph`` reports ambiguous or missing registrations before any
service is built.
"""

from __future__ import annotations

from diloom import (
    DILoomCircularDependencyError,
    DILoomDuplicateRegistrationError,
    DILoomMissingServiceError,
    ServiceCollection,
)


def main() -> None:
    services = ServiceCollection(default_multiple=True)
    services.add_transient("A", lambda resolver: resolver.resolve("B"))
    services.add_transient("B", lambda resolver: resolver.resolve("A"))
    services.add_transient("Repo", lambda resolver: resolver.resolve("Db"))
    services.add_transient("Handler", "first")
    services.add_transient("Handler", "second")

    provider = services.build()

    try:
        provider.resolve("A")
    except DILoomCircularDependencyError as error:
        print(error)  # => Circular dependency detected: A -> B -> A

    try:
        provider.resolve("Repo")
    except DILoomMissingServiceError as error:
        print(error)  # => Service not registered: Db (path: Repo)

    strict = ServiceCollection()
    strict.add_singleton("Config", {})
    try:
        strict.add_singleton("Config", {})
    except DILoomDuplicateRegistrationError as error:
        duplicate = type(error).__name__
    print(f"duplicate={duplicate}")  # => duplicate=DILoomDuplicateRegistrationError

    warning, error = provider.validate_graph(required_tokens=["Db"])
    print(f"{warning.level}: {warning.message}")  # => warning: Handler has 2 registrations without a key; unkeyed resolution picks the last one.
    print(f"{error.level}: {error.message}")  # => error: Required token Db is not registered.


if __name__ == "__main__":
    main()
