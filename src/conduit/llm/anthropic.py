"""Anthropic Claude model backend."""

import asyncio
import logging
from typing import Any

import anthropic

from conduit.llm.base import LLMProvider
from conduit.llm.retry import RetryConfig, with_retry
from conduit.llm.types import (
    CompletionResponse,
    ContentBlock,
    Message,
    Role,
    TextContent,
    ToolDefinition,
    ToolResult,
    ToolUse,
    Usage,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-5"


def block_to_param(block: ContentBlock) -> dict[str, Any]:
    match block:
        case TextContent(text=text):
            return {"type": "text", "text": text}
        case ToolUse(id=tool_id, name=name, input=arguments):
            return {"type": "tool_use", "id": tool_id, "name": name, "input": arguments}
        case ToolResult(tool_use_id=tool_use_id, content=content, is_error=is_error):
            return {
                "type": "tool_result",
                "tool_use_id": tool_use_id,
                "content": content,
                "is_error": is_error,
            }
    raise TypeError(f"Unsupported content block: {block!r}")


def messages_to_params(messages: list[Message]) -> list[dict[str, Any]]:
    """Convert messages, merging consecutive turns from the same role.

    System messages are skipped; the system prompt travels separately.
    A failed turn can leave two user entries back to back in history.
    """
    params: list[dict[str, Any]] = []
    for msg in messages:
        if msg.role == Role.SYSTEM:
            continue
        if isinstance(msg.content, str):
            blocks = [{"type": "text", "text": msg.content}] if msg.content else []
        else:
            blocks = [block_to_param(b) for b in msg.content]
        if not blocks:
            continue
        if params and params[-1]["role"] == msg.role.value:
            params[-1]["content"].extend(blocks)
        else:
            params.append({"role": msg.role.value, "content": blocks})
    return params


def tools_to_params(tools: list[ToolDefinition] | None) -> list[dict[str, Any]]:
    return [
        {"name": t.name, "description": t.description, "input_schema": t.input_schema}
        for t in tools or []
    ]


def parse_message(response: anthropic.types.Message) -> CompletionResponse:
    content: list[ContentBlock] = []
    for block in response.content:
        if block.type == "text":
            content.append(TextContent(text=block.text))
        elif block.type == "tool_use":
            content.append(ToolUse(id=block.id, name=block.name, input=dict(block.input)))

    return CompletionResponse(
        message=Message.assistant(content),
        usage=Usage(
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        ),
        stop_reason=response.stop_reason,
        model=response.model,
        raw=response.model_dump(),
    )


class AnthropicProvider(LLMProvider):
    """Claude via the Messages API.

    Concurrent calls from different users share one client; a semaphore
    bounds how many requests are in flight at once.
    """

    def __init__(self, api_key: str | None = None, max_concurrent: int = 2):
        self._client = anthropic.AsyncAnthropic(api_key=api_key)
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._retry = RetryConfig(max_retries=3)

    @property
    def name(self) -> str:
        return "anthropic"

    @property
    def default_model(self) -> str:
        return DEFAULT_MODEL

    def build_request(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        tools: list[ToolDefinition] | None = None,
        system: str | None = None,
        max_tokens: int = 4096,
        temperature: float | None = None,
    ) -> dict[str, Any]:
        request: dict[str, Any] = {
            "model": model or self.default_model,
            "messages": messages_to_params(messages),
            "max_tokens": max_tokens,
        }
        if system:
            request["system"] = system
        if temperature is not None:
            request["temperature"] = temperature
        if tool_params := tools_to_params(tools):
            request["tools"] = tool_params
        return request

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
        request = self.build_request(
            messages,
            model=model,
            tools=tools,
            system=system,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        model_name = request["model"]

        async def _create() -> anthropic.types.Message:
            async with self._semaphore:
                return await self._client.messages.create(**request)

        response = await with_retry(
            _create, config=self._retry, operation_name=f"Anthropic {model_name}"
        )
        logger.debug(
            "llm_complete",
            extra={
                "provider": self.name,
                "model": model_name,
                "tokens_in": response.usage.input_tokens,
                "tokens_out": response.usage.output_tokens,
                "stop_reason": response.stop_reason,
            },
        )
        return parse_message(response)
