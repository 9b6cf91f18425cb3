"""Model tool-call loop.

One run takes a user query, lets the model request capability invocations
turn by turn, and stops at the first turn without requests or when the turn
budget runs out. Tool-use and tool-result blocks live only in the run's
working context; session history keeps the query and the final answer.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from conduit.capabilities.registry import CapabilityRegistry
from conduit.capabilities.router import InvocationRouter
from conduit.capabilities.types import InvocationResult
from conduit.config.models import DEFAULT_SYSTEM_PROMPT
from conduit.errors import BackendError, CapabilityNotFound, InvocationError
from conduit.llm.base import LLMProvider
from conduit.llm.types import Message, ToolDefinition, ToolResult, ToolUse
from conduit.sessions.store import SessionStore
from conduit.sessions.types import ConversationMessage, MessageRole

logger = logging.getLogger(__name__)

MAX_STEPS = 10
BUDGET_FALLBACK_TEXT = (
    "I've reached the maximum number of tool calls. "
    "Please try again with a simpler request."
)
EMPTY_REPLY_TEXT = (
    "I couldn't come up with a response. Please try rephrasing your request."
)

OnInvocationCallback = Callable[[str, dict[str, Any]], Awaitable[None]]


@dataclass
class OrchestratorConfig:
    """Per-run model settings. ``model=None`` uses the backend default."""

    model: str | None = None
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    max_tokens: int = 4096
    temperature: float | None = None
    max_steps: int = MAX_STEPS


@dataclass(slots=True)
class InvocationRecord:
    """One invocation attempted during a run."""

    tool_use_id: str
    capability_name: str
    arguments: dict[str, Any]
    result: InvocationResult | None = None
    error: str | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None


@dataclass
class OrchestratorResult:
    text: str
    steps: int
    invocations: list[InvocationRecord] = field(default_factory=list)
    budget_exceeded: bool = False


class Orchestrator:
    """Drives the model/invocation loop for one user query at a time."""

    def __init__(
        self,
        llm: LLMProvider,
        router: InvocationRouter,
        registry: CapabilityRegistry,
        sessions: SessionStore,
        config: OrchestratorConfig | None = None,
    ) -> None:
        self._llm = llm
        self._router = router
        self._registry = registry
        self._sessions = sessions
        self._config = config or OrchestratorConfig()

    @property
    def config(self) -> OrchestratorConfig:
        return self._config

    def _tool_definitions(self) -> list[ToolDefinition]:
        # Same precedence as find_owner: first registration keeps the name
        definitions: dict[str, ToolDefinition] = {}
        for c in self._registry.all():
            definitions.setdefault(
                c.name,
                ToolDefinition(
                    name=c.name,
                    description=c.description,
                    input_schema=c.input_schema or {"type": "object", "properties": {}},
                ),
            )
        return list(definitions.values())

    def _build_context(
        self, history: tuple[ConversationMessage, ...]
    ) -> tuple[list[Message], str]:
        messages: list[Message] = []
        system_parts = [self._config.system_prompt]
        for entry in history:
            if entry.role == MessageRole.SYSTEM:
                system_parts.append(entry.content)
            elif entry.role == MessageRole.USER:
                messages.append(Message.user(entry.content))
            else:
                messages.append(Message.assistant(entry.content))
        return messages, "\n\n".join(p for p in system_parts if p)

    async def run(
        self,
        user_id: str,
        query: str,
        max_steps: int | None = None,
        on_invocation: OnInvocationCallback | None = None,
    ) -> OrchestratorResult:
        """Answer a query, invoking capabilities as the model requests.

        Raises:
            BackendError: The model backend failed; the turn is aborted.
            ValueError: ``max_steps`` is below 1.
        """
        if max_steps is None:
            max_steps = self._config.max_steps
        elif max_steps < 1:
            raise ValueError(f"max_steps must be at least 1, got {max_steps}")
        await self._sessions.append_message(user_id, MessageRole.USER, query)
        messages, system = self._build_context(self._sessions.history(user_id))
        tools = self._tool_definitions()

        invocations: list[InvocationRecord] = []
        last_text = ""
        steps = 0

        while steps < max_steps:
            steps += 1
            try:
                response = await self._llm.complete(
                    messages,
                    model=self._config.model,
                    tools=tools or None,
                    system=system,
                    max_tokens=self._config.max_tokens,
                    temperature=self._config.temperature,
                )
            except Exception as e:
                logger.error(
                    "model_turn_failed",
                    extra={
                        "user.id": user_id,
                        "step": steps,
                        "error.type": type(e).__name__,
                        "error.message": str(e),
                    },
                )
                raise BackendError(f"Model backend failed: {e}") from e

            messages.append(response.message)
            text = response.message.get_text()
            if text.strip():
                last_text = text
            pending = response.message.get_tool_uses()
            logger.debug(
                "model_turn",
                extra={
                    "user.id": user_id,
                    "step": steps,
                    "text.length": len(text),
                    "gen_ai.tool.names": [t.name for t in pending],
                },
            )

            if not pending:
                final_text = last_text or EMPTY_REPLY_TEXT
                await self._sessions.append_message(
                    user_id, MessageRole.ASSISTANT, final_text
                )
                return OrchestratorResult(
                    text=final_text, steps=steps, invocations=invocations
                )

            results = await self._execute_pending(pending, invocations, on_invocation)
            messages.append(Message.user(list(results)))

        logger.warning(
            "max_steps_reached",
            extra={"user.id": user_id, "max_steps": max_steps},
        )
        final_text = last_text or BUDGET_FALLBACK_TEXT
        await self._sessions.append_message(user_id, MessageRole.ASSISTANT, final_text)
        return OrchestratorResult(
            text=final_text,
            steps=steps,
            invocations=invocations,
            budget_exceeded=True,
        )

    async def _execute_pending(
        self,
        pending: list[ToolUse],
        invocations: list[InvocationRecord],
        on_invocation: OnInvocationCallback | None,
    ) -> list[ToolResult]:
        results: list[ToolResult] = []
        for tool_use in pending:
            if on_invocation:
                await on_invocation(tool_use.name, tool_use.input)

            record = InvocationRecord(
                tool_use_id=tool_use.id,
                capability_name=tool_use.name,
                arguments=tool_use.input,
            )
            try:
                record.result = await self._router.invoke(tool_use.name, tool_use.input)
            except (CapabilityNotFound, InvocationError) as e:
                record.error = str(e)
            invocations.append(record)

            if record.result is not None:
                content = record.result.text()
            else:
                content = f"Error: {record.error}"
            results.append(
                ToolResult(
                    tool_use_id=tool_use.id,
                    content=content,
                    is_error=record.is_error,
                )
            )
        return results
