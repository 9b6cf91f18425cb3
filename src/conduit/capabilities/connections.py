"""Provider connection lifecycle.

A provider is registered only after its capability-listing handshake
succeeds; a disconnect always removes its capabilities, even when teardown
fails.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from conduit.capabilities.providers.base import ProviderSession, SessionFactory
from conduit.capabilities.providers.mcp import open_mcp_session
from conduit.capabilities.registry import CapabilityRegistry
from conduit.capabilities.types import Capability, ProviderConnection, ProviderLaunchSpec
from conduit.errors import ProviderConnectionError, ProviderNotConnected

logger = logging.getLogger(__name__)


class ProviderConnectionManager:
    """Owns live provider sessions and keeps the registry in sync with them."""

    def __init__(
        self,
        registry: CapabilityRegistry,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self._registry = registry
        self._session_factory = session_factory or open_mcp_session
        self._connections: dict[str, ProviderConnection] = {}
        self._sessions: dict[str, ProviderSession] = {}
        self._pending: set[str] = set()
        self._lock = asyncio.Lock()

    @property
    def registry(self) -> CapabilityRegistry:
        return self._registry

    async def connect(self, spec: ProviderLaunchSpec) -> list[Capability]:
        """Launch a provider, list its capabilities, then register them.

        Returns:
            The capabilities the provider exposed.

        Raises:
            ProviderConnectionError: Already connected, launch failed, or the
                handshake failed. Nothing is registered in any failure case.
        """
        async with self._lock:
            if spec.id in self._connections or spec.id in self._pending:
                raise ProviderConnectionError(
                    spec.id, f"Provider '{spec.id}' is already connected"
                )
            self._pending.add(spec.id)

        session: ProviderSession | None = None
        try:
            session = await self._session_factory(spec)
            capabilities = await session.list_capabilities()
            self._registry.register(spec.id, capabilities)
        except Exception as e:
            if session is not None:
                await self._close_quietly(spec.id, session)
            async with self._lock:
                self._pending.discard(spec.id)
            logger.error(
                "provider_connect_failed",
                extra={"provider.id": spec.id, "error.message": str(e)},
            )
            raise ProviderConnectionError(
                spec.id, f"Failed to connect to '{spec.display_name}': {e}"
            ) from e

        async with self._lock:
            self._pending.discard(spec.id)
            self._sessions[spec.id] = session
            self._connections[spec.id] = ProviderConnection(
                id=spec.id,
                display_name=spec.display_name,
                launch_spec=spec,
            )

        logger.info(
            "provider_connected",
            extra={
                "provider.id": spec.id,
                "provider.capability_count": len(capabilities),
            },
        )
        return capabilities

    async def disconnect(self, provider_id: str) -> None:
        """Tear down a provider and drop its capabilities.

        Teardown errors are logged, never raised.

        Raises:
            ProviderNotConnected: Unknown provider id.
        """
        async with self._lock:
            connection = self._connections.pop(provider_id, None)
            session = self._sessions.pop(provider_id, None)
        if connection is None:
            raise ProviderNotConnected(provider_id)

        connection.connected = False
        self._registry.unregister(provider_id)
        if session is not None:
            await self._close_quietly(provider_id, session)
        logger.info("provider_disconnected", extra={"provider.id": provider_id})

    async def disconnect_all(self) -> None:
        """Disconnect every provider concurrently."""
        ids = self.connected_ids()
        if not ids:
            return
        results = await asyncio.gather(
            *(self.disconnect(provider_id) for provider_id in ids),
            return_exceptions=True,
        )
        for provider_id, result in zip(ids, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning(
                    "provider_disconnect_failed",
                    extra={"provider.id": provider_id, "error.message": str(result)},
                )

    async def auto_connect(self, specs: Iterable[ProviderLaunchSpec]) -> list[str]:
        """Connect every spec flagged for auto-connect, skipping failures.

        Returns:
            Ids of providers that connected.
        """
        connected: list[str] = []
        for spec in specs:
            if not spec.auto_connect:
                continue
            try:
                await self.connect(spec)
            except ProviderConnectionError as e:
                logger.warning(
                    "provider_auto_connect_failed",
                    extra={"provider.id": spec.id, "error.message": str(e)},
                )
                continue
            connected.append(spec.id)
        return connected

    def connected_ids(self) -> list[str]:
        return list(self._connections)

    def is_connected(self, provider_id: str) -> bool:
        return provider_id in self._connections

    def get(self, provider_id: str) -> ProviderConnection | None:
        return self._connections.get(provider_id)

    def get_session(self, provider_id: str) -> ProviderSession | None:
        return self._sessions.get(provider_id)

    async def _close_quietly(self, provider_id: str, session: ProviderSession) -> None:
        try:
            await session.close()
        except Exception as e:
            logger.warning(
                "provider_teardown_failed",
                extra={"provider.id": provider_id, "error.message": str(e)},
            )
