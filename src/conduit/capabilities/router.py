"""Route capability invocations to the provider that owns them."""

from __future__ import annotations

import logging
from typing import Any

from conduit.capabilities.connections import ProviderConnectionManager
from conduit.capabilities.registry import CapabilityRegistry
from conduit.capabilities.types import InvocationResult
from conduit.errors import CapabilityNotFound, InvocationError

logger = logging.getLogger(__name__)

ARGUMENT_PREVIEW_LENGTH = 200


class InvocationRouter:
    """Resolves the owning provider and delegates a single call to it."""

    def __init__(
        self,
        registry: CapabilityRegistry,
        connections: ProviderConnectionManager,
    ) -> None:
        self._registry = registry
        self._connections = connections

    async def invoke(
        self, capability_name: str, arguments: dict[str, Any]
    ) -> InvocationResult:
        """Invoke a capability once.

        Raises:
            CapabilityNotFound: No connected provider exposes the capability.
            InvocationError: The provider reported a failure. A
                TimeoutLikeError from the provider is raised unchanged.
        """
        log_extra: dict[str, Any] = {
            "gen_ai.tool.name": capability_name,
            "gen_ai.tool.call.arguments": _preview(arguments),
        }
        try:
            provider_id = self._registry.find_owner(capability_name)
            session = self._connections.get_session(provider_id)
            if session is None:
                raise CapabilityNotFound(capability_name)
        except CapabilityNotFound as e:
            logger.warning(
                "tool_failed",
                extra={
                    **log_extra,
                    "error.type": type(e).__name__,
                    "error.message": str(e),
                },
            )
            raise

        log_extra["provider.id"] = provider_id
        try:
            result = await session.call(capability_name, arguments)
        except Exception as e:
            logger.warning(
                "tool_failed",
                extra={
                    **log_extra,
                    "error.type": type(e).__name__,
                    "error.message": str(e),
                },
            )
            if isinstance(e, InvocationError):
                raise
            raise InvocationError(
                str(e) or type(e).__name__,
                capability_name=capability_name,
                provider_id=provider_id,
            ) from e

        logger.info(
            "tool_invoked",
            extra={**log_extra, "output.length": len(result.text())},
        )
        return result


def _preview(arguments: dict[str, Any]) -> str:
    text = repr(arguments)
    if len(text) > ARGUMENT_PREVIEW_LENGTH:
        return text[:ARGUMENT_PREVIEW_LENGTH] + "..."
    return text
