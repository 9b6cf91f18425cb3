"""Typed errors shared across the orchestration core."""

from __future__ import annotations


class ConduitError(Exception):
    """Base class for conduit errors."""


class ConfigError(ConduitError):
    """Configuration error."""


class ProviderConnectionError(ConduitError, ConnectionError):
    """Provider launch or capability handshake failed."""

    def __init__(self, provider_id: str, message: str) -> None:
        super().__init__(message)
        self.provider_id = provider_id


class ProviderNotConnected(ConduitError, LookupError):
    """No live connection exists for the provider id."""

    def __init__(self, provider_id: str) -> None:
        super().__init__(f"Provider '{provider_id}' is not connected")
        self.provider_id = provider_id


class CapabilityError(ConduitError, ValueError):
    """Invalid capability registry input."""


class CapabilityNotFound(CapabilityError, LookupError):
    """No connected provider exposes the capability."""

    def __init__(self, capability_name: str) -> None:
        super().__init__(
            f"Capability '{capability_name}' not found in any connected provider"
        )
        self.capability_name = capability_name


class InvocationError(ConduitError):
    """Provider-reported failure during a capability call."""

    def __init__(
        self,
        message: str,
        *,
        capability_name: str | None = None,
        provider_id: str | None = None,
        code: int | str | None = None,
    ) -> None:
        super().__init__(message)
        self.capability_name = capability_name
        self.provider_id = provider_id
        self.code = code


class TimeoutLikeError(InvocationError):
    """Invocation failed with a transport/protocol timeout.

    The provider may still have completed the work; only the acknowledgment
    is known to be lost.
    """


class BackendError(ConduitError):
    """The model backend call itself failed."""


class SessionError(ConduitError, ValueError):
    """Invalid session store input."""
