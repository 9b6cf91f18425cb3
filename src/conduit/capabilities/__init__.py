"""Capability catalog, provider connections and invocation routing."""

from conduit.capabilities.connections import ProviderConnectionManager
from conduit.capabilities.registry import CapabilityRegistry
from conduit.capabilities.router import InvocationRouter
from conduit.capabilities.types import (
    Capability,
    InvocationResult,
    ProviderConnection,
    ProviderLaunchSpec,
)

__all__ = [
    "Capability",
    "CapabilityRegistry",
    "InvocationResult",
    "InvocationRouter",
    "ProviderConnection",
    "ProviderConnectionManager",
    "ProviderLaunchSpec",
]
