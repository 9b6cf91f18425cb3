"""Shared test fixtures and fakes."""

from pathlib import Path
from typing import Any

import pytest

from conduit.background.supervisor import BackgroundOutcome
from conduit.capabilities.connections import ProviderConnectionManager
from conduit.capabilities.registry import CapabilityRegistry
from conduit.capabilities.router import InvocationRouter
from conduit.capabilities.types import Capability, InvocationResult, ProviderLaunchSpec
from conduit.chat.types import ActivityKind, MessageHandler, Transport
from conduit.config.models import ConduitConfig, ModelConfig, ServerSpecConfig
from conduit.errors import InvocationError
from conduit.llm.types import (
    CompletionResponse,
    Message,
    Role,
    TextContent,
    ToolDefinition,
    ToolUse,
    Usage,
)
from conduit.sessions.store import SessionStore

# =============================================================================
# Model backend
# =============================================================================


class MockLLMProvider:
    """Mock model backend that replays canned messages."""

    def __init__(
        self,
        responses: list[Message] | None = None,
        repeat_last: bool = False,
        error: Exception | None = None,
    ):
        self.responses = responses or []
        self.repeat_last = repeat_last
        self.error = error
        self.complete_calls: list[dict[str, Any]] = []
        self._response_index = 0

    @property
    def name(self) -> str:
        return "mock"

    @property
    def default_model(self) -> str:
        return "mock-model"

    async def complete(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        tools: list[ToolDefinition] | None = None,
        system: str | None = None,
        max_tokens: int = 4096,
        temperature: float | None = None,
    ) -> CompletionResponse:
        self.complete_calls.append(
            {
                # Snapshot; the orchestrator keeps appending to its list
                "messages": list(messages),
                "model": model,
                "tools": tools,
                "system": system,
            }
        )
        if self.error is not None:
            raise self.error

        if self._response_index < len(self.responses):
            message = self.responses[self._response_index]
            self._response_index += 1
        elif self.repeat_last and self.responses:
            message = self.responses[-1]
        else:
            message = Message(role=Role.ASSISTANT, content="Mock response")

        return CompletionResponse(
            message=message,
            usage=Usage(input_tokens=100, output_tokens=50),
            stop_reason="end_turn",
            model=model or "mock-model",
        )


def tool_use_message(
    name: str, arguments: dict[str, Any] | None = None, tool_id: str = "tool_1"
) -> Message:
    return Message(
        role=Role.ASSISTANT,
        content=[ToolUse(id=tool_id, name=name, input=arguments or {})],
    )


def text_message(text: str) -> Message:
    return Message(role=Role.ASSISTANT, content=[TextContent(text=text)])


@pytest.fixture
def mock_llm() -> MockLLMProvider:
    return MockLLMProvider()


# =============================================================================
# Provider sessions
# =============================================================================


class FakeProviderSession:
    """In-memory provider session.

    ``results`` maps capability names to a text payload, an exception to
    raise, or a callable producing either.
    """

    def __init__(
        self,
        provider_id: str,
        capabilities: list[Capability],
        results: dict[str, Any] | None = None,
        list_error: Exception | None = None,
        close_error: Exception | None = None,
    ):
        self.provider_id = provider_id
        self.capabilities = capabilities
        self.results = results or {}
        self.list_error = list_error
        self.close_error = close_error
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.closed = False

    async def list_capabilities(self) -> list[Capability]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.capabilities)

    async def call(
        self, capability_name: str, arguments: dict[str, Any]
    ) -> InvocationResult:
        self.calls.append((capability_name, arguments))
        outcome = self.results.get(capability_name, f"{capability_name} ok")
        if callable(outcome):
            outcome = await outcome(arguments)
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, InvocationResult):
            return outcome
        return InvocationResult(
            capability_name=capability_name,
            provider_id=self.provider_id,
            content=[str(outcome)],
        )

    async def close(self) -> None:
        self.closed = True
        if self.close_error is not None:
            raise self.close_error


class FakeSessionFactory:
    """Session factory returning pre-built fake sessions by provider id."""

    def __init__(self, sessions: dict[str, FakeProviderSession] | None = None):
        self.sessions = sessions or {}
        self.launch_error: Exception | None = None
        self.launched: list[str] = []

    def add(self, session: FakeProviderSession) -> FakeProviderSession:
        self.sessions[session.provider_id] = session
        return session

    async def __call__(self, spec: ProviderLaunchSpec) -> FakeProviderSession:
        self.launched.append(spec.id)
        if self.launch_error is not None:
            raise self.launch_error
        if spec.id not in self.sessions:
            raise InvocationError(f"no fake session for {spec.id}")
        return self.sessions[spec.id]


def capability(name: str, description: str = "") -> Capability:
    return Capability(
        name=name,
        description=description or f"{name} capability",
        input_schema={"type": "object", "properties": {}},
    )


def launch_spec(provider_id: str, **kwargs: Any) -> ProviderLaunchSpec:
    return ProviderLaunchSpec(id=provider_id, command="fake-provider", **kwargs)


@pytest.fixture
def registry() -> CapabilityRegistry:
    return CapabilityRegistry()


@pytest.fixture
def session_factory() -> FakeSessionFactory:
    return FakeSessionFactory()


@pytest.fixture
def connections(
    registry: CapabilityRegistry, session_factory: FakeSessionFactory
) -> ProviderConnectionManager:
    return ProviderConnectionManager(registry, session_factory)


@pytest.fixture
def router(
    registry: CapabilityRegistry, connections: ProviderConnectionManager
) -> InvocationRouter:
    return InvocationRouter(registry, connections)


@pytest.fixture
def sessions() -> SessionStore:
    return SessionStore()


# =============================================================================
# Transport and outcomes
# =============================================================================


class RecordingTransport(Transport):
    """Transport that records everything sent to it."""

    def __init__(self) -> None:
        self.texts: list[tuple[str | int, str]] = []
        self.files: list[tuple[str | int, Path, str | None]] = []
        self.activity: list[tuple[str | int, ActivityKind]] = []

    @property
    def name(self) -> str:
        return "recording"

    async def start(self, handler: MessageHandler) -> None:
        return None

    async def stop(self) -> None:
        return None

    async def send_text(self, chat_id: str | int, text: str) -> None:
        self.texts.append((chat_id, text))

    async def send_file(
        self, chat_id: str | int, path: Path, caption: str | None = None
    ) -> None:
        self.files.append((chat_id, path, caption))

    async def show_activity(self, chat_id: str | int, kind: ActivityKind) -> None:
        self.activity.append((chat_id, kind))

    def texts_for(self, chat_id: str | int) -> list[str]:
        return [text for cid, text in self.texts if cid == chat_id]


class OutcomeRecorder:
    """OutcomeSink that collects published outcomes."""

    def __init__(self) -> None:
        self.outcomes: list[BackgroundOutcome] = []

    async def __call__(self, outcome: BackgroundOutcome) -> None:
        self.outcomes.append(outcome)

    @property
    def terminal(self) -> list[BackgroundOutcome]:
        return [o for o in self.outcomes if o.is_terminal]


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def outcomes() -> OutcomeRecorder:
    return OutcomeRecorder()


# =============================================================================
# Configuration
# =============================================================================


@pytest.fixture
def minimal_config() -> ConduitConfig:
    return ConduitConfig(
        models={"default": ModelConfig(provider="anthropic", model="claude-test")}
    )


@pytest.fixture
def app_config(tmp_path: Path) -> ConduitConfig:
    """Configuration with two servers and fast background timings."""
    return ConduitConfig.model_validate(
        {
            "models": {"default": {"provider": "anthropic", "model": "claude-test"}},
            "servers": [
                ServerSpecConfig(id="files", name="File Server", command="fake"),
                ServerSpecConfig(id="translator", command="fake"),
            ],
            "background": {
                "retry_delay_seconds": 0,
                "backoff_base_seconds": 0,
                "grace_period_seconds": 0,
                "artifact_dir": tmp_path / "temp",
            },
        }
    )
