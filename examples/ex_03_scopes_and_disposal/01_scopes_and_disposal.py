"""Scopes and disposal.

Scopes own the instances they create. Disposing a scope runs ``on_dispose``
hooks first, then disposes scoped instances by descending
``dispose_priority`` and, within one priority, in reverse creation order.
"""

from __future__ import annotations

import asyncio

from diloom import ServiceCollection, Value

events: list[str] = []


class Connection:
    def __init__(self, name: str) -> None:
        self.name = name

    def close(self) -> None:
        events.append(f"close:{self.name}")


class UnitOfWork:
    async def aclose(self) -> None:
        await asyncio.sleep(0)
        events.append("aclose:uow")


async def main() -> None:
    services = ServiceCollection()
    services.add_scoped("primary", lambda resolver: Connection("primary"), dispose_priority=10)
    services.add_scoped("replica", lambda resolver: Connection("replica"))
    services.add_scoped(UnitOfWork, lambda resolver: UnitOfWork())
    services.add_singleton(
        "pool",
        Value({"size": 5}, dispose=lambda: events.append("close:pool")),
    )

    provider = services.build()

    async with provider.create_scope() as scope:
        scope.resolve("replica")
        scope.resolve(UnitOfWork)
        scope.resolve("primary")
        scope.on_dispose(lambda: events.append("hook"))
        print(f"active={scope.active_count}")  # => active=3

    print(f"scope_order={','.join(events)}")  # => scope_order=hook,close:primary,aclose:uow,close:replica

    events.clear()
    provider.resolve("pool")
    await provider.dispose()
    print(f"provider_order={','.join(events)}")  # => provider_order=close:pool


if __name__ == "__main__":
    asyncio.run(main())
