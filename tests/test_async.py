"""Tests for asynchronous resolution and in-flight build deduplication."""

from __future__ import annotations

import asyncio
import inspect
from typing import Any

import pytest

from diloom import (
    DILoomAsyncFactoryError,
    DILoomCircularDependencyError,
    DILoomMissingServiceError,
    DILoomScopeResolutionError,
    ServiceCollection,
    ServiceResolver,
    create_token,
    optional,
)


class TestAsyncFactories:
    async def test_resolve_async_awaits_factory(self, services: ServiceCollection) -> None:
        async def _factory(resolver: ServiceResolver) -> str:
            await asyncio.sleep(0)
            return "ready"

        services.add_transient("Async", _factory)

        assert await services.build().resolve_async("Async") == "ready"

    async def test_resolve_async_accepts_sync_factories(self, services: ServiceCollection) -> None:
        services.add_singleton("Sync", lambda resolver: "sync")

        assert await services.build().resolve_async("Sync") == "sync"

    def test_sync_resolve_of_coroutine_function_fails_before_invocation(
        self,
        services: ServiceCollection,
    ) -> None:
        calls: list[int] = []

        async def _factory(resolver: ServiceResolver) -> str:
            calls.append(1)
            return "never"

        services.add_singleton("Async", _factory)

        with pytest.raises(DILoomAsyncFactoryError, match="resolve_async") as exc_info:
            services.build().resolve("Async")

        assert exc_info.value.token == "Async"
        assert calls == []

    def test_sync_resolve_of_awaitable_result_fails_and_closes_it(self, services: ServiceCollection) -> None:
        async def _build() -> str:
            return "never"

        created: list[Any] = []

        def _factory(resolver: ServiceResolver) -> Any:
            coroutine = _build()
            created.append(coroutine)
            return coroutine

        services.add_transient("Async", _factory)

        with pytest.raises(DILoomAsyncFactoryError):
            services.build().resolve("Async")

        assert inspect.getcoroutinestate(created[0]) == inspect.CORO_CLOSED

    def test_async_dependency_deep_in_sync_chain_fails(self, services: ServiceCollection) -> None:
        async def _db(resolver: ServiceResolver) -> str:
            return "db"

        services.add_singleton("Db", _db)
        services.add_transient("Repo", lambda resolver: resolver.resolve("Db"))

        with pytest.raises(DILoomAsyncFactoryError, match=r"path: Repo -> Db"):
            services.build().resolve("Repo")

    async def test_async_callable_object_is_detected(self, services: ServiceCollection) -> None:
        class AsyncFactory:
            async def __call__(self, resolver: ServiceResolver) -> str:
                return "called"

        services.add_transient("Callable", AsyncFactory())
        provider = services.build()

        with pytest.raises(DILoomAsyncFactoryError):
            provider.resolve("Callable")
        assert await provider.resolve_async("Callable") == "called"

    async def test_cached_async_singleton_resolves_synchronously(self, services: ServiceCollection) -> None:
        async def _factory(resolver: ServiceResolver) -> object:
            return object()

        services.add_singleton("Async", _factory)
        provider = services.build()

        value = await provider.resolve_async("Async")

        assert provider.resolve("Async") is value


class TestDeduplication:
    async def test_concurrent_singleton_calls_share_one_build(self, services: ServiceCollection) -> None:
        calls: list[int] = []

        async def _factory(resolver: ServiceResolver) -> object:
            calls.append(1)
            await asyncio.sleep(0.01)
            return object()

        services.add_singleton("Slow", _factory)
        provider = services.build()

        results = await asyncio.gather(*(provider.resolve_async("Slow") for _ in range(10)))

        assert calls == [1]
        assert all(result is results[0] for result in results)

    async def test_concurrent_scoped_calls_share_one_build_per_scope(self, services: ServiceCollection) -> None:
        calls: list[int] = []

        async def _factory(resolver: ServiceResolver) -> object:
            calls.append(1)
            await asyncio.sleep(0.01)
            return object()

        services.add_scoped("Slow", _factory)
        provider = services.build()
        scope1 = provider.create_scope()
        scope2 = provider.create_scope()

        first = await asyncio.gather(*(scope1.resolve_async("Slow") for _ in range(5)))
        second = await asyncio.gather(*(scope2.resolve_async("Slow") for _ in range(5)))

        assert calls == [1, 1]
        assert all(result is first[0] for result in first)
        assert all(result is second[0] for result in second)
        assert first[0] is not second[0]
        assert scope1.active_count == 1

    async def test_concurrent_global_calls_share_one_build_across_providers(self) -> None:
        calls: list[int] = []
        token = create_token("GlobalSlow")

        async def _factory(resolver: ServiceResolver) -> object:
            calls.append(1)
            await asyncio.sleep(0.01)
            return object()

        first_provider = ServiceCollection().add_global_singleton(token, _factory).build()
        second_provider = ServiceCollection().add_global_singleton(token, _factory).build()

        first, second = await asyncio.gather(
            first_provider.resolve_async(token),
            second_provider.resolve_async(token),
        )

        assert calls == [1]
        assert first is second

    async def test_transients_are_never_deduplicated(self, services: ServiceCollection) -> None:
        async def _factory(resolver: ServiceResolver) -> object:
            await asyncio.sleep(0)
            return object()

        services.add_transient("Transient", _factory)
        provider = services.build()

        first, second = await asyncio.gather(
            provider.resolve_async("Transient"),
            provider.resolve_async("Transient"),
        )

        assert first is not second

    async def test_sync_resolve_while_build_is_pending_fails(self, services: ServiceCollection) -> None:
        started = asyncio.Event()
        release = asyncio.Event()

        async def _factory(resolver: ServiceResolver) -> object:
            started.set()
            await release.wait()
            return object()

        services.add_singleton("Slow", _factory)
        provider = services.build()

        waiter = asyncio.create_task(provider.resolve_async("Slow"))
        await started.wait()

        with pytest.raises(DILoomAsyncFactoryError, match="still being created"):
            provider.resolve("Slow")

        release.set()
        value = await waiter

        assert provider.resolve("Slow") is value

    async def test_failed_build_is_shared_and_then_retried(self, services: ServiceCollection) -> None:
        calls: list[int] = []

        async def _factory(resolver: ServiceResolver) -> str:
            calls.append(1)
            await asyncio.sleep(0.01)
            if len(calls) == 1:
                raise RuntimeError("first build fails")
            return "ok"

        services.add_singleton("Flaky", _factory)
        provider = services.build()

        results = await asyncio.gather(
            provider.resolve_async("Flaky"),
            provider.resolve_async("Flaky"),
            return_exceptions=True,
        )

        assert calls == [1]
        assert all(isinstance(result, RuntimeError) for result in results)
        assert await provider.resolve_async("Flaky") == "ok"

    async def test_cancelled_waiter_does_not_cancel_shared_build(self, services: ServiceCollection) -> None:
        calls: list[int] = []
        started = asyncio.Event()
        release = asyncio.Event()

        async def _factory(resolver: ServiceResolver) -> object:
            calls.append(1)
            started.set()
            await release.wait()
            return object()

        services.add_singleton("Slow", _factory)
        provider = services.build()

        waiter = asyncio.create_task(provider.resolve_async("Slow"))
        await started.wait()
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        release.set()
        value = await provider.resolve_async("Slow")

        assert calls == [1]
        assert provider.resolve("Slow") is value


class TestAsyncResolverInsideFactories:
    async def test_factory_uses_every_async_resolver_method(self, multi_services: ServiceCollection) -> None:
        async def _cache(resolver: ServiceResolver) -> str:
            return "memory"

        async def _aggregate(resolver: ServiceResolver) -> dict[str, Any]:
            return {
                "one": await resolver.resolve_async("Cache", "memory"),
                "all": await resolver.resolve_all_async("Handler"),
                "map": await resolver.resolve_map_async("Cache"),
                "missing": await resolver.try_resolve_async("Missing"),
                "optional": await resolver.resolve_async(optional("Missing")),
            }

        multi_services.add_singleton("Cache", _cache, key="memory")
        multi_services.add_transient("Handler", "a")
        multi_services.add_transient("Handler", "b")
        multi_services.add_transient("Aggregate", _aggregate)

        result = await multi_services.build().resolve_async("Aggregate")

        assert result == {
            "one": "memory",
            "all": ["a", "b"],
            "map": {"memory": "memory"},
            "missing": None,
            "optional": None,
        }

    async def test_async_resolution_inside_scope_reaches_scoped_services(
        self,
        services: ServiceCollection,
    ) -> None:
        async def _session(resolver: ServiceResolver) -> object:
            await asyncio.sleep(0)
            return object()

        async def _handler(resolver: ServiceResolver) -> tuple[object, object]:
            return await resolver.resolve_async("Session"), await resolver.resolve_async("Session")

        services.add_scoped("Session", _session)
        services.add_transient("Handler", _handler)

        async with services.build().create_scope() as scope:
            first, second = await scope.resolve_async("Handler")

        assert first is second

    async def test_async_singleton_cannot_reach_scoped(self, services: ServiceCollection) -> None:
        async def _singleton(resolver: ServiceResolver) -> object:
            return await resolver.resolve_async("Session")

        services.add_scoped("Session", lambda resolver: object())
        services.add_singleton("Singleton", _singleton)
        scope = services.build().create_scope()

        with pytest.raises(DILoomScopeResolutionError):
            await scope.resolve_async("Singleton")

    async def test_async_cycle_is_detected(self, services: ServiceCollection) -> None:
        async def _a(resolver: ServiceResolver) -> object:
            return await resolver.resolve_async("B")

        async def _b(resolver: ServiceResolver) -> object:
            return await resolver.resolve_async("A")

        services.add_transient("A", _a)
        services.add_transient("B", _b)

        with pytest.raises(DILoomCircularDependencyError, match="A -> B -> A"):
            await services.build().resolve_async("A")

    async def test_interleaved_resolutions_do_not_report_false_cycles(
        self,
        services: ServiceCollection,
    ) -> None:
        async def _leaf(resolver: ServiceResolver) -> str:
            await asyncio.sleep(0.01)
            return "leaf"

        async def _branch(resolver: ServiceResolver) -> str:
            return await resolver.resolve_async("Leaf")

        services.add_transient("Leaf", _leaf)
        services.add_transient("Branch", _branch)
        provider = services.build()

        results = await asyncio.gather(*(provider.resolve_async("Branch") for _ in range(5)))

        assert results == ["leaf"] * 5

    async def test_try_resolve_async_returns_none_on_failure(self, services: ServiceCollection) -> None:
        async def _broken(resolver: ServiceResolver) -> object:
            raise RuntimeError("boom")

        services.add_transient("Broken", _broken)
        provider = services.build()

        assert await provider.try_resolve_async("Broken") is None
        assert await provider.try_resolve_async("Missing") is None

    async def test_missing_async_dependency_raises(self, services: ServiceCollection) -> None:
        with pytest.raises(DILoomMissingServiceError):
            await services.build().resolve_async("Missing", "key")
