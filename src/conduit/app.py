"""Application wiring.

Builds the owned stores and services once and hands them to each other;
nothing here is a module-level singleton.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from conduit.background.supervisor import BackgroundSupervisor
from conduit.capabilities.connections import ProviderConnectionManager
from conduit.capabilities.providers.base import SessionFactory
from conduit.capabilities.registry import CapabilityRegistry
from conduit.capabilities.router import InvocationRouter
from conduit.chat.delivery import TransportOutcomeSink
from conduit.chat.service import ChatService
from conduit.chat.types import Transport
from conduit.config.models import API_KEY_ENV_VARS, ConduitConfig
from conduit.core.orchestrator import Orchestrator, OrchestratorConfig
from conduit.errors import ConfigError
from conduit.llm.base import LLMProvider
from conduit.llm.registry import create_llm_provider
from conduit.sessions.store import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class Application:
    config: ConduitConfig
    transport: Transport
    registry: CapabilityRegistry
    connections: ProviderConnectionManager
    router: InvocationRouter
    sessions: SessionStore
    orchestrator: Orchestrator
    supervisor: BackgroundSupervisor
    chat: ChatService

    async def start(self) -> None:
        """Auto-connect configured providers and start the session sweeper."""
        self.config.background.artifact_dir.mkdir(parents=True, exist_ok=True)
        connected = await self.connections.auto_connect(
            s.to_launch_spec() for s in self.config.servers
        )
        await self.sessions.start()
        logger.info(
            "application_started",
            extra={"transport": self.transport.name, "provider.ids": connected},
        )

    async def run(self) -> None:
        """Run the transport until it stops."""
        await self.transport.start(self.chat.handle)

    async def stop(self) -> None:
        """Stop background work and disconnect every provider."""
        for resource, method in [
            (self.transport, "stop"),
            (self.sessions, "stop"),
            (self.supervisor, "shutdown"),
            (self.connections, "disconnect_all"),
        ]:
            try:
                await getattr(resource, method)()
            except Exception as e:
                logger.warning(
                    "application_stop_step_failed",
                    extra={"step": method, "error.message": str(e)},
                )
        logger.info("application_stopped")


def _create_llm(config: ConduitConfig) -> LLMProvider:
    api_key = config.resolve_api_key()
    if api_key is None:
        provider = config.default_model.provider
        env_var = API_KEY_ENV_VARS[provider]
        raise ConfigError(
            f"No API key for provider '{provider}'. Set {env_var} or api_key in config"
        )
    return create_llm_provider(config.default_model.provider, api_key=api_key)


def build_application(
    config: ConduitConfig,
    transport: Transport,
    *,
    llm: LLMProvider | None = None,
    session_factory: SessionFactory | None = None,
) -> Application:
    """Wire every component for one transport.

    Raises:
        ConfigError: No model backend was given and no API key is configured.
    """
    model = config.default_model
    registry = CapabilityRegistry()
    connections = ProviderConnectionManager(registry, session_factory)
    router = InvocationRouter(registry, connections)
    sessions = SessionStore(
        max_history=config.sessions.max_history,
        idle_timeout=timedelta(seconds=config.sessions.idle_timeout_seconds),
        sweep_interval_seconds=config.sessions.sweep_interval_seconds,
    )
    orchestrator = Orchestrator(
        llm or _create_llm(config),
        router,
        registry,
        sessions,
        OrchestratorConfig(
            model=model.model,
            system_prompt=model.system_prompt,
            max_tokens=model.max_tokens,
            temperature=model.temperature,
            max_steps=model.max_steps,
        ),
    )
    supervisor = BackgroundSupervisor(
        router, TransportOutcomeSink(transport), config.background
    )
    chat = ChatService(
        transport,
        config,
        registry,
        connections,
        sessions,
        orchestrator,
        supervisor,
    )
    return Application(
        config=config,
        transport=transport,
        registry=registry,
        connections=connections,
        router=router,
        sessions=sessions,
        orchestrator=orchestrator,
        supervisor=supervisor,
        chat=chat,
    )
