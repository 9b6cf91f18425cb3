"""Provider session interface.

A provider session is one live connection to an external tool provider.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from conduit.capabilities.types import Capability, InvocationResult, ProviderLaunchSpec
from conduit.errors import InvocationError, TimeoutLikeError

# JSON-RPC "request timed out" (MCP SDKs) and HTTP 408 (Python MCP SDK)
TIMEOUT_ERROR_CODES = frozenset({-32001, 408})


class ProviderSession(Protocol):
    """Interface for live provider connections."""

    async def list_capabilities(self) -> list[Capability]:
        """Capability-listing handshake."""

    async def call(
        self, capability_name: str, arguments: dict[str, Any]
    ) -> InvocationResult:
        """Invoke a capability.

        Raises:
            InvocationError: Provider-reported failure.
            TimeoutLikeError: The acknowledgment timed out.
        """

    async def close(self) -> None:
        """Tear down the connection."""


SessionFactory = Callable[[ProviderLaunchSpec], Awaitable[ProviderSession]]


def is_timeout_like(error: BaseException) -> bool:
    """Whether a failure looks like a lost acknowledgment rather than a real error."""
    if isinstance(error, TimeoutLikeError | TimeoutError):
        return True
    code = getattr(error, "code", None)
    if code in TIMEOUT_ERROR_CODES:
        return True
    message = str(error).lower()
    return "timeout" in message or "timed out" in message


def invocation_error(
    message: str,
    *,
    capability_name: str,
    provider_id: str,
    code: int | str | None = None,
) -> InvocationError:
    """Build the right InvocationError subclass for a provider failure."""
    error = InvocationError(
        message,
        capability_name=capability_name,
        provider_id=provider_id,
        code=code,
    )
    if is_timeout_like(error):
        return TimeoutLikeError(
            message,
            capability_name=capability_name,
            provider_id=provider_id,
            code=code,
        )
    return error
