"""Shared pytest fixtures for diloom tests."""

from collections.abc import Iterator

import pytest

from diloom import ServiceCollection, reset_global_cache


@pytest.fixture(autouse=True)
def _clean_global_cache() -> Iterator[None]:
    """Global singletons outlive providers, so every test starts from an empty process cache."""
    reset_global_cache()
    yield
    reset_global_cache()


@pytest.fixture()
def services() -> ServiceCollection:
    """Default collection rejecting duplicate registrations."""
    return ServiceCollection()


@pytest.fixture()
def multi_services() -> ServiceCollection:
    """Collection appending registrations by default."""
    return ServiceCollection(default_multiple=True)
