"""Keyed and multiple registrations.

Several registrations may share a token when each has a key or when
``multiple=True`` is passed. Unkeyed resolution picks the last one,
``resolve_all`` returns every one, and ``resolve_map`` builds a
``{key: value}`` dict.
"""

from __future__ import annotations

from diloom import ServiceCollection, create_token, optional

Cache = create_token("Cache")
Handler = create_token("Handler")


def main() -> None:
    services = ServiceCollection()
    services.add_singleton(Cache, "memory-cache", key="memory")
    services.add_singleton(Cache, "redis-cache", key="redis")
    services.add_transient(Handler, "audit", multiple=True)
    services.add_transient(Handler, "billing", multiple=True)

    provider = services.build()

    print(f"redis={provider.resolve(Cache, 'redis')}")  # => redis=redis-cache
    print(f"default={provider.resolve(Cache)}")  # => default=redis-cache
    print(f"caches={provider.resolve_map(Cache)}")  # => caches={'memory': 'memory-cache', 'redis': 'redis-cache'}
    print(f"handlers={provider.resolve_all(Handler)}")  # => handlers=['audit', 'billing']
    print(f"missing={provider.resolve(optional(Cache), 'disk')}")  # => missing=None


if __name__ == "__main__":
    main()
