from diloom._internal.collection import ServiceCollection, Value
from diloom._internal.descriptors import Lifetime, ServiceDescriptor, TraceEvent
from diloom._internal.diagnostics import Diagnostic, validate_graph
from diloom._internal.engine import ServiceResolver
from diloom._internal.globals import reset_global_cache
from diloom._internal.provider import ServiceProvider
from diloom._internal.scope import ServiceScope
from diloom.exceptions import (
    DILoomAsyncFactoryError,
    DILoomCircularDependencyError,
    DILoomDisposalError,
    DILoomDuplicateRegistrationError,
    DILoomError,
    DILoomGraphValidationError,
    DILoomKeyedMapError,
    DILoomMissingServiceError,
    DILoomScopeResolutionError,
)
from diloom.helpers import factory, lazy, use_class, use_existing, with_scope
from diloom.tokens import OptionalToken, Token, create_token, optional

__all__ = [
    "DILoomAsyncFactoryError",
    "DILoomCircularDependencyError",
    "DILoomDisposalError",
    "DILoomDuplicateRegistrationError",
    "DILoomError",
    "DILoomGraphValidationError",
    "DILoomKeyedMapError",
    "DILoomMissingServiceError",
    "DILoomScopeResolutionError",
    "Diagnostic",
    "Lifetime",
    "OptionalToken",
    "ServiceCollection",
    "ServiceDescriptor",
    "ServiceProvider",
    "ServiceResolver",
    "ServiceScope",
    "Token",
    "TraceEvent",
    "Value",
    "create_token",
    "factory",
    "lazy",
    "optional",
    "reset_global_cache",
    "use_class",
    "use_existing",
    "validate_graph",
    "with_scope",
]
