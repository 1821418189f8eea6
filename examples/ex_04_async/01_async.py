"""Async factories and resolution.

1. ``async def`` factories are awaited by ``resolve_async``.
2. Concurrent ``resolve_async`` calls for a cached service share one build.
3. Resolving an async factory with ``resolve`` raises ``DILoomAsyncFactoryError``.
"""

from __future__ import annotations

import asyncio

from diloom import DILoomAsyncFactoryError, ServiceCollection, ServiceResolver


class Client:
    def __init__(self, base_url: str) -> None:
        self.base_url = base_url


async def main() -> None:
    builds = 0

    async def build_client(resolver: ServiceResolver) -> Client:
        nonlocal builds
        builds += 1
        await asyncio.sleep(0.01)
        return Client(base_url=resolver.resolve("base_url"))

    services = ServiceCollection()
    services.add_singleton("base_url", "https://api.local")
    services.add_singleton(Client, build_client)
    provider = services.build()

    try:
        provider.resolve(Client)
    except DILoomAsyncFactoryError as error:
        async_in_sync = type(error).__name__
    print(f"async_in_sync={async_in_sync}")  # => async_in_sync=DILoomAsyncFactoryError

    clients = await asyncio.gather(*(provider.resolve_async(Client) for _ in range(5)))
    print(f"builds={builds}")  # => builds=1
    print(f"same_client={all(client is clients[0] for client in clients)}")  # => same_client=True
    print(f"base_url={clients[0].base_url}")  # => base_url=https://api.local

    cached_sync = provider.resolve(Client) is clients[0]
    print(f"cached_sync={cached_sync}")  # => cached_sync=True


if __name__ == "__main__":
    asyncio.run(main())
