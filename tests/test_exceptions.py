"""Tests for the exception hierarchy and rendered messages."""

from __future__ import annotations

import pytest

from diloom import (
    Diagnostic,
    DILoomAsyncFactoryError,
    DILoomCircularDependencyError,
    DILoomDisposalError,
    DILoomDuplicateRegistrationError,
    DILoomError,
    DILoomGraphValidationError,
    DILoomKeyedMapError,
    DILoomMissingServiceError,
    DILoomScopeResolutionError,
    create_token,
)
from diloom.tokens import PathFrame


@pytest.mark.parametrize(
    "error_type",
    [
        DILoomAsyncFactoryError,
        DILoomCircularDependencyError,
        DILoomDisposalError,
        DILoomDuplicateRegistrationError,
        DILoomGraphValidationError,
        DILoomKeyedMapError,
        DILoomMissingServiceError,
        DILoomScopeResolutionError,
    ],
)
def test_every_error_derives_from_base(error_type: type[Exception]) -> None:
    assert issubclass(error_type, DILoomError)


def test_resolution_error_appends_path() -> None:
    error = DILoomMissingServiceError(
        "Service not registered: Db",
        token="Db",
        path=(PathFrame("Repo", None), PathFrame("Cache", "redis")),
    )

    assert str(error) == "Service not registered: Db (path: Repo -> Cache(redis))"
    assert error.path == (PathFrame("Repo", None), PathFrame("Cache", "redis"))


def test_resolution_error_without_path_keeps_message() -> None:
    error = DILoomScopeResolutionError("no scope", token="Session")

    assert str(error) == "no scope"
    assert error.path == ()


def test_circular_dependency_error_exposes_last_frame() -> None:
    token = create_token("Worker")
    error = DILoomCircularDependencyError(
        [PathFrame(token, "a"), PathFrame("Queue", None), PathFrame(token, "a")],
    )

    assert str(error) == "Circular dependency detected: Worker(a) -> Queue -> Worker(a)"
    assert error.token is token
    assert error.key == "a"


def test_duplicate_registration_message_includes_key() -> None:
    error = DILoomDuplicateRegistrationError("Cache", "redis")

    assert str(error).startswith("Service already registered for token Cache (key 'redis').")


def test_graph_validation_error_carries_diagnostics() -> None:
    diagnostic = Diagnostic(level="error", message="broken", token="Db")

    error = DILoomGraphValidationError(diagnostic, [diagnostic])

    assert str(error) == "broken"
    assert error.diagnostics == [diagnostic]


def test_disposal_error_keeps_every_failure() -> None:
    errors = [ValueError("a"), KeyError("b")]

    error = DILoomDisposalError(errors)

    assert error.errors == errors
    assert str(error).startswith("2 disposers failed")
