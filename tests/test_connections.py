"""Tests for the provider connection manager."""

import asyncio

import pytest

from conduit.capabilities.connections import ProviderConnectionManager
from conduit.capabilities.registry import CapabilityRegistry
from conduit.errors import ProviderConnectionError, ProviderNotConnected

from tests.conftest import (
    FakeProviderSession,
    FakeSessionFactory,
    capability,
    launch_spec,
)


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_registers_capabilities(
        self,
        connections: ProviderConnectionManager,
        registry: CapabilityRegistry,
        session_factory: FakeSessionFactory,
    ):
        session_factory.add(FakeProviderSession("files", [capability("read")]))

        exposed = await connections.connect(launch_spec("files", name="Files"))

        assert [c.name for c in exposed] == ["read"]
        assert registry.find_owner("read") == "files"
        assert connections.is_connected("files")
        connection = connections.get("files")
        assert connection is not None
        assert connection.display_name == "Files"
        assert connection.connected is True

    @pytest.mark.asyncio
    async def test_launch_failure_registers_nothing(
        self,
        connections: ProviderConnectionManager,
        registry: CapabilityRegistry,
        session_factory: FakeSessionFactory,
    ):
        session_factory.launch_error = OSError("command not found")

        with pytest.raises(ProviderConnectionError, match="command not found"):
            await connections.connect(launch_spec("files"))

        assert registry.all() == []
        assert not connections.is_connected("files")

    @pytest.mark.asyncio
    async def test_handshake_failure_closes_session(
        self,
        connections: ProviderConnectionManager,
        registry: CapabilityRegistry,
        session_factory: FakeSessionFactory,
    ):
        session = session_factory.add(
            FakeProviderSession(
                "files", [capability("read")], list_error=RuntimeError("bad handshake")
            )
        )

        with pytest.raises(ProviderConnectionError) as exc_info:
            await connections.connect(launch_spec("files"))

        assert isinstance(exc_info.value, ConnectionError)
        assert exc_info.value.provider_id == "files"
        assert session.closed
        assert registry.provider_ids() == []
        assert connections.connected_ids() == []

    @pytest.mark.asyncio
    async def test_connect_twice_rejected(
        self, connections: ProviderConnectionManager, session_factory: FakeSessionFactory
    ):
        session_factory.add(FakeProviderSession("files", [capability("read")]))
        await connections.connect(launch_spec("files"))

        with pytest.raises(ProviderConnectionError, match="already connected"):
            await connections.connect(launch_spec("files"))
        assert session_factory.launched == ["files"]

    @pytest.mark.asyncio
    async def test_can_reconnect_after_failure(
        self, connections: ProviderConnectionManager, session_factory: FakeSessionFactory
    ):
        session_factory.launch_error = OSError("boom")
        with pytest.raises(ProviderConnectionError):
            await connections.connect(launch_spec("files"))

        session_factory.launch_error = None
        session_factory.add(FakeProviderSession("files", [capability("read")]))
        await connections.connect(launch_spec("files"))
        assert connections.is_connected("files")


class TestDisconnect:
    @pytest.mark.asyncio
    async def test_disconnect_unregisters(
        self,
        connections: ProviderConnectionManager,
        registry: CapabilityRegistry,
        session_factory: FakeSessionFactory,
    ):
        session = session_factory.add(FakeProviderSession("files", [capability("read")]))
        await connections.connect(launch_spec("files"))

        await connections.disconnect("files")

        assert session.closed
        assert registry.get("files") == []
        assert connections.get_session("files") is None

    @pytest.mark.asyncio
    async def test_teardown_error_still_unregisters(
        self,
        connections: ProviderConnectionManager,
        registry: CapabilityRegistry,
        session_factory: FakeSessionFactory,
    ):
        session_factory.add(
            FakeProviderSession(
                "files", [capability("read")], close_error=RuntimeError("broken pipe")
            )
        )
        await connections.connect(launch_spec("files"))

        await connections.disconnect("files")

        assert "read" not in registry
        assert not connections.is_connected("files")

    @pytest.mark.asyncio
    async def test_disconnect_unknown_raises(self, connections: ProviderConnectionManager):
        with pytest.raises(ProviderNotConnected):
            await connections.disconnect("missing")

    @pytest.mark.asyncio
    async def test_disconnect_all_survives_failures(
        self,
        connections: ProviderConnectionManager,
        registry: CapabilityRegistry,
        session_factory: FakeSessionFactory,
    ):
        sessions = [
            session_factory.add(
                FakeProviderSession(
                    "a", [capability("a1")], close_error=RuntimeError("stuck")
                )
            ),
            session_factory.add(FakeProviderSession("b", [capability("b1")])),
            session_factory.add(FakeProviderSession("c", [capability("c1")])),
        ]
        for session in sessions:
            await connections.connect(launch_spec(session.provider_id))

        await connections.disconnect_all()

        assert all(s.closed for s in sessions)
        assert connections.connected_ids() == []
        assert registry.all() == []


class TestAutoConnect:
    @pytest.mark.asyncio
    async def test_only_flagged_specs_and_failures_skipped(
        self, connections: ProviderConnectionManager, session_factory: FakeSessionFactory
    ):
        session_factory.add(FakeProviderSession("auto", [capability("x")]))
        session_factory.add(FakeProviderSession("manual", [capability("y")]))
        session_factory.add(
            FakeProviderSession("broken", [], list_error=RuntimeError("nope"))
        )

        connected = await connections.auto_connect(
            [
                launch_spec("broken", auto_connect=True),
                launch_spec("auto", auto_connect=True),
                launch_spec("manual"),
            ]
        )

        assert connected == ["auto"]
        assert connections.connected_ids() == ["auto"]


@pytest.mark.asyncio
async def test_concurrent_connects_of_same_provider(
    connections: ProviderConnectionManager, session_factory: FakeSessionFactory
):
    session_factory.add(FakeProviderSession("files", [capability("read")]))

    results = await asyncio.gather(
        connections.connect(launch_spec("files")),
        connections.connect(launch_spec("files")),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, ProviderConnectionError)]
    assert len(failures) == 1
    assert connections.connected_ids() == ["files"]
