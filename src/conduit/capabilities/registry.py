"""Capability registry keyed by provider id."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable

from conduit.capabilities.types import Capability
from conduit.errors import CapabilityError, CapabilityNotFound

logger = logging.getLogger(__name__)


class CapabilityRegistry:
    """Tracks the capabilities exposed by each connected provider.

    Providers are kept in registration order. ``find_owner`` scans in that
    order, so when two providers expose the same name the earlier-registered
    provider wins. That tie-break is an observed behavior, not a policy.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._by_provider: dict[str, tuple[Capability, ...]] = {}

    def register(self, provider_id: str, capabilities: Iterable[Capability]) -> None:
        """Replace the provider's capability set wholesale.

        Raises:
            CapabilityError: On blank ids/names or duplicate names in the payload.
        """
        provider_id = _required_provider_id(provider_id)
        normalized = tuple(capabilities)
        seen: set[str] = set()
        for capability in normalized:
            if not capability.name or not capability.name.strip():
                raise CapabilityError(
                    f"Provider '{provider_id}' exposed a capability with no name"
                )
            if capability.name in seen:
                raise CapabilityError(
                    f"Provider '{provider_id}' exposed '{capability.name}' twice"
                )
            seen.add(capability.name)

        with self._lock:
            collisions = sorted(
                name
                for other_id, others in self._by_provider.items()
                if other_id != provider_id
                for name in seen.intersection(c.name for c in others)
            )
            self._by_provider[provider_id] = normalized

        if collisions:
            logger.warning(
                "capability_name_collision",
                extra={"provider.id": provider_id, "capabilities": collisions},
            )

    def unregister(self, provider_id: str) -> None:
        """Drop every capability registered for the provider (no-op if absent)."""
        with self._lock:
            self._by_provider.pop(provider_id, None)

    def all(self) -> list[Capability]:
        """Flattened capabilities across providers, in registration order."""
        with self._lock:
            return [c for caps in self._by_provider.values() for c in caps]

    def get(self, provider_id: str) -> list[Capability]:
        """Capabilities for one provider (empty if not registered)."""
        with self._lock:
            return list(self._by_provider.get(provider_id, ()))

    def find_owner(self, capability_name: str) -> str:
        """Return the first registered provider exposing the capability.

        Raises:
            CapabilityNotFound: If no registered provider exposes it.
        """
        with self._lock:
            for provider_id, capabilities in self._by_provider.items():
                if any(c.name == capability_name for c in capabilities):
                    return provider_id
        raise CapabilityNotFound(capability_name)

    def provider_ids(self) -> list[str]:
        with self._lock:
            return list(self._by_provider)

    def names(self) -> list[str]:
        return [c.name for c in self.all()]

    def __contains__(self, capability_name: object) -> bool:
        return any(c.name == capability_name for c in self.all())

    def __len__(self) -> int:
        return len(self.all())


def _required_provider_id(value: str | None) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise CapabilityError("provider id is required")
    return text
