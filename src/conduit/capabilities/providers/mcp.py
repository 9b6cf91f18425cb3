"""Stdio tool providers speaking the Model Context Protocol.

Each provider runs as a subprocess. The stdio transport and client session
are entered and exited by one owner task, since the SDK's cancel scopes must
close in the task that opened them; calls can come from any task.
"""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import AsyncExitStack
from typing import Any

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client
from mcp.shared.exceptions import McpError

from conduit.capabilities.providers.base import invocation_error
from conduit.capabilities.types import Capability, InvocationResult, ProviderLaunchSpec
from conduit.errors import InvocationError

logger = logging.getLogger(__name__)


class McpProviderSession:
    """One stdio provider process and its client session."""

    def __init__(self, spec: ProviderLaunchSpec) -> None:
        self._spec = spec
        self._session: ClientSession | None = None
        self._task: asyncio.Task[None] | None = None
        self._closing = asyncio.Event()

    @property
    def provider_id(self) -> str:
        return self._spec.id

    async def start(self) -> None:
        """Launch the process and run the protocol handshake."""
        if self._task is not None:
            raise InvocationError(
                f"Provider '{self._spec.id}' session already started",
                provider_id=self._spec.id,
            )
        ready: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._task = asyncio.create_task(
            self._run(ready), name=f"provider:{self._spec.id}"
        )
        await ready

    async def _run(self, ready: asyncio.Future[None]) -> None:
        params = StdioServerParameters(
            command=self._spec.command,
            args=list(self._spec.args),
            env={**os.environ, **self._spec.env} if self._spec.env else None,
        )
        try:
            async with AsyncExitStack() as stack:
                read, write = await stack.enter_async_context(stdio_client(params))
                session = await stack.enter_async_context(ClientSession(read, write))
                await session.initialize()
                self._session = session
                ready.set_result(None)
                await self._closing.wait()
        except Exception as e:
            if not ready.done():
                ready.set_exception(e)
            else:
                logger.warning(
                    "provider_session_ended",
                    extra={"provider.id": self._spec.id, "error.message": str(e)},
                )
        finally:
            self._session = None
            if not ready.done():
                ready.set_exception(
                    InvocationError(
                        f"Provider '{self._spec.id}' stopped before the handshake "
                        "completed",
                        provider_id=self._spec.id,
                    )
                )

    def _require_session(self) -> ClientSession:
        if self._session is None:
            raise InvocationError(
                f"Provider '{self._spec.id}' session is closed",
                provider_id=self._spec.id,
            )
        return self._session

    async def list_capabilities(self) -> list[Capability]:
        response = await self._require_session().list_tools()
        return [
            Capability(
                name=tool.name,
                description=tool.description or "",
                input_schema=dict(tool.inputSchema or {}),
            )
            for tool in response.tools
        ]

    async def call(
        self, capability_name: str, arguments: dict[str, Any]
    ) -> InvocationResult:
        session = self._require_session()
        try:
            result = await session.call_tool(capability_name, arguments)
        except McpError as e:
            raise invocation_error(
                e.error.message,
                capability_name=capability_name,
                provider_id=self._spec.id,
                code=e.error.code,
            ) from e
        except Exception as e:
            raise invocation_error(
                str(e) or type(e).__name__,
                capability_name=capability_name,
                provider_id=self._spec.id,
            ) from e

        texts = [
            block.text for block in result.content if getattr(block, "type", None) == "text"
        ]
        if result.isError:
            raise invocation_error(
                "\n".join(texts) or f"Capability '{capability_name}' failed",
                capability_name=capability_name,
                provider_id=self._spec.id,
            )
        structured = getattr(result, "structuredContent", None)
        return InvocationResult(
            capability_name=capability_name,
            provider_id=self._spec.id,
            content=texts,
            structured=dict(structured) if isinstance(structured, dict) else None,
        )

    async def close(self) -> None:
        self._closing.set()
        if self._task is not None:
            await self._task
            self._task = None


async def open_mcp_session(spec: ProviderLaunchSpec) -> McpProviderSession:
    """Session factory for stdio MCP providers."""
    session = McpProviderSession(spec)
    await session.start()
    return session
