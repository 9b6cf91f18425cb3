"""Message types exchanged with model backends.

These are the backend-neutral shapes the orchestrator builds its working
context from. Each backend converts them to and from its own wire format.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass(frozen=True, slots=True)
class TextContent:
    text: str
    kind: Literal["text"] = "text"


@dataclass(frozen=True, slots=True)
class ToolUse:
    """A capability call requested by the model."""

    id: str
    name: str
    input: dict[str, Any]
    kind: Literal["tool_use"] = "tool_use"


@dataclass(frozen=True, slots=True)
class ToolResult:
    """Outcome of one requested call, fed back on the next turn."""

    tool_use_id: str
    content: str
    is_error: bool = False
    kind: Literal["tool_result"] = "tool_result"


ContentBlock = TextContent | ToolUse | ToolResult


@dataclass(slots=True)
class Message:
    role: Role
    content: str | list[ContentBlock]

    @classmethod
    def user(cls, content: str | list[ContentBlock]) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str | list[ContentBlock]) -> "Message":
        return cls(role=Role.ASSISTANT, content=content)

    def _blocks(self) -> list[ContentBlock]:
        if isinstance(self.content, str):
            return [TextContent(text=self.content)] if self.content else []
        return self.content

    def get_text(self) -> str:
        """Joined text blocks; tool blocks are skipped."""
        return "\n".join(
            b.text for b in self._blocks() if isinstance(b, TextContent)
        )

    def get_tool_uses(self) -> list[ToolUse]:
        return [b for b in self._blocks() if isinstance(b, ToolUse)]

    def get_tool_results(self) -> list[ToolResult]:
        return [b for b in self._blocks() if isinstance(b, ToolResult)]


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    """A capability as advertised to the model."""

    name: str
    description: str
    input_schema: dict[str, Any]


@dataclass(frozen=True, slots=True)
class Usage:
    input_tokens: int
    output_tokens: int

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(slots=True)
class CompletionResponse:
    message: Message
    usage: Usage | None = None
    stop_reason: str | None = None
    model: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def wants_tools(self) -> bool:
        return bool(self.message.get_tool_uses())
