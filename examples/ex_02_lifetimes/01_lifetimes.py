"""Lifetimes: transient, scoped, singleton and global singleton.

1. ``add_transient`` builds a new instance on every resolution.
2. ``add_singleton`` shares one instance per provider.
3. ``add_global_singleton`` shares one instance across every provider in the process.
4. ``add_scoped`` shares one instance per scope and cannot be resolved from the root.
"""

from __future__ import annotations

from diloom import DILoomScopeResolutionError, ServiceCollection


class Clock:
    pass


class Settings:
    pass


class Metrics:
    pass


class RequestContext:
    pass


def main() -> None:
    services = ServiceCollection()
    services.add_transient(Clock, lambda resolver: Clock())
    services.add_singleton(Settings, lambda resolver: Settings())
    services.add_global_singleton(Metrics, lambda resolver: Metrics())
    services.add_scoped(RequestContext, lambda resolver: RequestContext())

    provider = services.build()
    other_provider = services.build()

    transient_is_new = provider.resolve(Clock) is not provider.resolve(Clock)
    print(f"transient_is_new={transient_is_new}")  # => transient_is_new=True

    singleton_shared = provider.resolve(Settings) is provider.resolve(Settings)
    print(f"singleton_shared={singleton_shared}")  # => singleton_shared=True

    singleton_per_provider = provider.resolve(Settings) is not other_provider.resolve(Settings)
    print(f"singleton_per_provider={singleton_per_provider}")  # => singleton_per_provider=True

    global_shared = provider.resolve(Metrics) is other_provider.resolve(Metrics)
    print(f"global_shared={global_shared}")  # => global_shared=True

    first_scope = provider.create_scope()
    second_scope = provider.create_scope()
    scoped_shared = first_scope.resolve(RequestContext) is first_scope.resolve(RequestContext)
    scoped_isolated = first_scope.resolve(RequestContext) is not second_scope.resolve(RequestContext)
    print(f"scoped_shared={scoped_shared}")  # => scoped_shared=True
    print(f"scoped_isolated={scoped_isolated}")  # => scoped_isolated=True

    try:
        provider.resolve(RequestContext)
    except DILoomScopeResolutionError as error:
        root_error = type(error).__name__
    print(f"root_error={root_error}")  # => root_error=DILoomScopeResolutionError


if __name__ == "__main__":
    main()
