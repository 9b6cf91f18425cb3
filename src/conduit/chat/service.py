"""Chat command and message handling, independent of the transport."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from conduit.background.artifacts import ArtifactExpectation
from conduit.background.supervisor import BackgroundSupervisor, LongRunningJob
from conduit.capabilities.connections import ProviderConnectionManager
from conduit.capabilities.registry import CapabilityRegistry
from conduit.chat.types import ActivityKind, DocumentRef, IncomingMessage, Transport
from conduit.config.models import ConduitConfig, LongRunningCapabilityConfig
from conduit.core.orchestrator import InvocationRecord, Orchestrator
from conduit.errors import (
    BackendError,
    ConduitError,
    ProviderConnectionError,
    ProviderNotConnected,
)
from conduit.sessions.store import SessionStore

logger = logging.getLogger(__name__)

NO_PROVIDERS_MESSAGE = (
    "No providers connected. Please use /connect <server_id> to connect to a "
    "server first."
)
GENERIC_FAILURE_MESSAGE = (
    "Sorry, something went wrong while processing your request. Please try again."
)

HELP_TEXT = (
    "Available commands:\n"
    "/start - Welcome message\n"
    "/help - Show this help\n"
    "/connect <server_id> - Connect to a tool server\n"
    "/disconnect <server_id> - Disconnect from a server\n"
    "/servers - List connected servers and tools\n"
    "/reset - Clear conversation history\n\n"
    "Just send me a message to chat!"
)

WELCOME_TEXT = (
    "Welcome! 🤖\n\n"
    "I'm an assistant that uses tools from the servers you connect.\n\n"
    f"{HELP_TEXT}\n\n"
    "You can also send documents with a caption describing what to do with them."
)


class ChatService:
    """Turns incoming chat events into orchestrator runs and replies."""

    def __init__(
        self,
        transport: Transport,
        config: ConduitConfig,
        registry: CapabilityRegistry,
        connections: ProviderConnectionManager,
        sessions: SessionStore,
        orchestrator: Orchestrator,
        supervisor: BackgroundSupervisor,
    ) -> None:
        self._transport = transport
        self._config = config
        self._registry = registry
        self._connections = connections
        self._sessions = sessions
        self._orchestrator = orchestrator
        self._supervisor = supervisor
        self._commands = {
            "start": self._cmd_start,
            "help": self._cmd_help,
            "connect": self._cmd_connect,
            "disconnect": self._cmd_disconnect,
            "servers": self._cmd_servers,
            "reset": self._cmd_reset,
        }

    async def handle(self, message: IncomingMessage) -> None:
        """Handle one incoming event. Never raises."""
        try:
            if message.document is not None:
                await self._handle_document(message, message.document)
            elif message.is_command:
                await self._handle_command(message)
            elif message.text.strip():
                await self._handle_text(message)
        except BackendError:
            await self._reply(message, GENERIC_FAILURE_MESSAGE)
        except ConduitError as e:
            logger.warning(
                "chat_request_failed",
                extra={"user.id": message.user_id, "error.message": str(e)},
            )
            await self._reply(message, f"❌ Error: {e}")
        except Exception:
            logger.exception("chat_request_error", extra={"user.id": message.user_id})
            await self._reply(message, GENERIC_FAILURE_MESSAGE)

    async def _reply(self, message: IncomingMessage, text: str) -> None:
        try:
            await self._transport.send_text(message.chat_id, text)
        except Exception:
            logger.exception("chat_reply_failed", extra={"user.id": message.user_id})

    # -- commands --

    async def _handle_command(self, message: IncomingMessage) -> None:
        head, *args = message.text.split()
        # Telegram appends "@botname" in groups
        name = head[1:].split("@", 1)[0].lower()
        handler = self._commands.get(name)
        if handler is None:
            await self._reply(message, f"Unknown command /{name}. Try /help.")
            return
        await handler(message, args)

    async def _cmd_start(self, message: IncomingMessage, args: list[str]) -> None:
        await self._reply(message, WELCOME_TEXT)

    async def _cmd_help(self, message: IncomingMessage, args: list[str]) -> None:
        await self._reply(message, HELP_TEXT)

    async def _cmd_connect(self, message: IncomingMessage, args: list[str]) -> None:
        if not args:
            available = ", ".join(s.id for s in self._config.servers) or "none"
            await self._reply(
                message,
                f"Usage: /connect <server_id>\n\nAvailable servers: {available}",
            )
            return

        server_id = args[0]
        server = self._config.get_server(server_id)
        if server is None:
            await self._reply(message, f"Server {server_id} not found in configuration.")
            return

        if self._connections.is_connected(server_id):
            await self._sessions.activate_provider(message.user_id, server_id)
            await self._reply(message, f"Already connected to {server.display_name}.")
            return

        await self._reply(message, f"Connecting to {server_id}...")
        try:
            await self._connections.connect(server.to_launch_spec())
        except ProviderConnectionError as e:
            await self._reply(message, f"❌ Failed to connect to {server_id}: {e}")
            return
        await self._sessions.activate_provider(message.user_id, server_id)

        capabilities = self._registry.all()
        lines = "\n".join(f"• {c.name}: {c.description}" for c in capabilities)
        await self._reply(
            message,
            f"✅ Connected to {server.display_name}!\n\n"
            f"Available tools ({len(capabilities)}):\n{lines}",
        )

    async def _cmd_disconnect(self, message: IncomingMessage, args: list[str]) -> None:
        if not args:
            await self._reply(message, "Usage: /disconnect <server_id>")
            return
        server_id = args[0]
        try:
            await self._connections.disconnect(server_id)
        except ProviderNotConnected as e:
            await self._reply(message, f"❌ Failed to disconnect: {e}")
            return
        await self._sessions.deactivate_provider(message.user_id, server_id)
        await self._reply(message, f"✅ Disconnected from {server_id}")

    async def _cmd_servers(self, message: IncomingMessage, args: list[str]) -> None:
        connected = self._connections.connected_ids()
        if not connected:
            await self._reply(
                message,
                "No servers connected. Use /connect <server_id> to connect to a server.",
            )
            return
        capabilities = self._registry.all()
        servers = "\n".join(f"• {s}" for s in connected)
        tools = "\n".join(f"• {c.name}: {c.description}" for c in capabilities)
        await self._reply(
            message,
            f"📡 Connected Servers ({len(connected)}):\n{servers}\n\n"
            f"🔧 Available Tools ({len(capabilities)}):\n{tools}",
        )

    async def _cmd_reset(self, message: IncomingMessage, args: list[str]) -> None:
        await self._sessions.clear_history(message.user_id)
        await self._reply(message, "✅ Conversation history cleared!")

    # -- messages --

    async def _handle_text(self, message: IncomingMessage) -> None:
        logger.info(
            "user_message",
            extra={"user.id": message.user_id, "input.length": len(message.text)},
        )
        await self._run_query(message, message.text)

    async def _handle_document(
        self, message: IncomingMessage, document: DocumentRef
    ) -> None:
        caption = message.text.strip()
        logger.info(
            "user_document",
            extra={
                "user.id": message.user_id,
                "file.name": document.file_name,
                "file.size": document.size,
            },
        )
        if not self._registry.all():
            await self._reply(message, NO_PROVIDERS_MESSAGE)
            return

        job_config = self._long_running_job()
        if job_config is not None:
            await self._reply(
                message,
                "🔄 Your document is being processed...\n\n"
                f"📄 File: {document.file_name}\n"
                f"📊 Size: {document.size_mb:.2f} MB\n\n"
                "I'll send you the result when it's ready. "
                "This may take a few minutes.",
            )
            self._supervisor.submit(
                self._build_job(message, document, caption, job_config)
            )
            return

        if caption:
            query = f"{caption}\n\nFile path: {document.path}"
        else:
            query = f"Process this document: {document.path}"
        await self._run_query(message, query)

    def _long_running_job(self) -> LongRunningCapabilityConfig | None:
        for name in self._registry.names():
            job = self._config.background.job_for(name)
            if job is not None:
                return job
        return None

    def _build_job(
        self,
        message: IncomingMessage,
        document: DocumentRef,
        caption: str,
        job_config: LongRunningCapabilityConfig,
    ) -> LongRunningJob:
        arguments: dict[str, Any] = dict(job_config.arguments)
        lowered = caption.lower()
        for argument, phrases in job_config.caption_arguments.items():
            for phrase, value in phrases.items():
                if phrase in lowered:
                    arguments[argument] = value
                    break
        arguments[job_config.path_argument] = str(document.path)

        return LongRunningJob(
            user_id=message.user_id,
            chat_id=message.chat_id,
            capability_name=job_config.capability,
            arguments=arguments,
            artifact=ArtifactExpectation(
                directory=self._config.background.artifact_dir,
                prefix=job_config.artifact_prefix,
                source_name=document.path.name,
                result_key=job_config.result_key,
            ),
        )

    async def _run_query(self, message: IncomingMessage, query: str) -> None:
        if not self._registry.all():
            await self._reply(message, NO_PROVIDERS_MESSAGE)
            return

        chat_id = message.chat_id
        await self._transport.show_activity(chat_id, ActivityKind.TYPING)

        async def on_invocation(name: str, arguments: dict[str, Any]) -> None:
            await self._transport.show_activity(chat_id, ActivityKind.TYPING)

        result = await self._orchestrator.run(
            message.user_id, query, on_invocation=on_invocation
        )
        await self._reply(message, result.text)

        for path in self._reported_files(result.invocations):
            logger.info(
                "sending_artifact",
                extra={"user.id": message.user_id, "file.path": str(path)},
            )
            await self._transport.send_file(chat_id, path)

    def _reported_files(self, invocations: list[InvocationRecord]) -> list[Path]:
        keys = [j.result_key for j in self._config.background.jobs if j.result_key]
        files: list[Path] = []
        for record in invocations:
            if record.result is None:
                continue
            for payload in record.result.json_payloads():
                for key in keys:
                    value = payload.get(key)
                    if not value:
                        continue
                    path = Path(str(value))
                    if path.is_file() and path not in files:
                        files.append(path)
        return files
