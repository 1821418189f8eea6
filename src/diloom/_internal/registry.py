from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from typing import Any

from diloom._internal.descriptors import ServiceDescriptor
from diloom.exceptions import DILoomDuplicateRegistrationError

logger = logging.getLogger(__name__)


class GroupedRegistry(Mapping[Any, tuple[ServiceDescriptor, ...]]):
    """Immutable ``token -> descriptors`` snapshot consumed by the resolution engine."""

    def __init__(self, groups: Mapping[Any, tuple[ServiceDescriptor, ...]]) -> None:
        self._groups = dict(groups)

    @classmethod
    def from_descriptors(cls, descriptors: list[ServiceDescriptor]) -> GroupedRegistry:
        """Group a flat descriptor list by token, preserving insertion order."""
        grouped: dict[Any, list[ServiceDescriptor]] = {}
        for descriptor in descriptors:
            grouped.setdefault(descriptor.token, []).append(descriptor)
        return cls({token: tuple(group) for token, group in grouped.items()})

    def __getitem__(self, token: Any) -> tuple[ServiceDescriptor, ...]:
        return self._groups[token]

    def __iter__(self) -> Iterator[Any]:
        return iter(self._groups)

    def __len__(self) -> int:
        return len(self._groups)

    def pick(self, token: Any, key: Any = None) -> ServiceDescriptor | None:
        """Select the descriptor for a token.

        Unkeyed lookups return the last registered descriptor so re-registration
        shadows earlier bindings. Keyed lookups require an exact key match.
        """
        descriptors = self._groups.get(token)
        if not descriptors:
            return None
        if key is None:
            return descriptors[-1]
        for descriptor in descriptors:
            if descriptor.key == key:
                return descriptor
        return None

    def descriptors(self) -> list[ServiceDescriptor]:
        """Return every descriptor, grouped by token in registration order."""
        return [descriptor for group in self._groups.values() for descriptor in group]


class DescriptorRegistry:
    """Mutable accumulation of descriptors before ``build``."""

    def __init__(self) -> None:
        self._descriptors_by_token: dict[Any, list[ServiceDescriptor]] = {}

    def register(
        self,
        descriptor: ServiceDescriptor,
        *,
        multiple: bool = False,
        allow_overwrite: bool = False,
    ) -> None:
        """Add a descriptor to its token's list.

        Args:
            descriptor: Descriptor to add.
            multiple: Append next to existing descriptors instead of owning the
                ``(token, key)`` slot.
            allow_overwrite: Replace the slot occupant instead of failing.

        Raises:
            DILoomDuplicateRegistrationError: If the slot is occupied, ``multiple``
                is false and overwriting is not allowed.

        """
        existing = self._descriptors_by_token.setdefault(descriptor.token, [])
        if multiple:
            existing.append(descriptor)
            return

        occupied = [index for index, item in enumerate(existing) if item.key == descriptor.key]
        if not occupied:
            existing.append(descriptor)
            return
        if not allow_overwrite:
            raise DILoomDuplicateRegistrationError(descriptor.token, descriptor.key)

        logger.debug("Overwriting registration for %r (key=%r)", descriptor.token, descriptor.key)
        # The replacement becomes the most recent insertion so unkeyed lookups pick it.
        for index in reversed(occupied):
            del existing[index]
        existing.append(descriptor)

    def build(self) -> GroupedRegistry:
        """Snapshot registrations into an immutable grouped registry."""
        return GroupedRegistry(
            {token: tuple(group) for token, group in self._descriptors_by_token.items() if group},
        )

    def count(self) -> int:
        return sum(len(group) for group in self._descriptors_by_token.values())

    def tokens(self) -> list[Any]:
        return [token for token, group in self._descriptors_by_token.items() if group]
