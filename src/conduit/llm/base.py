"""Model backend interface."""

from abc import ABC, abstractmethod

from conduit.llm.types import CompletionResponse, Message, ToolDefinition


class LLMProvider(ABC):
    """A chat model that can request capability calls.

    Backends are stateless between calls: the orchestrator passes the whole
    working context every turn and reads tool-use blocks off the returned
    assistant message. Transient API failures are retried inside
    ``complete``; anything that escapes it ends the user's turn.
    """

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def default_model(self) -> str: ...

    @abstractmethod
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
        """Run one model turn. ``temperature=None`` keeps the API default."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}:{self.default_model}>"
