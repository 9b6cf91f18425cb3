"""OpenAI model backend (Responses API)."""

import json
import logging
import time
from typing import Any

import openai

from conduit.llm.base import LLMProvider
from conduit.llm.retry import RetryConfig, with_retry
from conduit.llm.types import (
    CompletionResponse,
    ContentBlock,
    Message,
    Role,
    TextContent,
    ToolDefinition,
    ToolUse,
    Usage,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-5.2"


def message_to_items(msg: Message) -> list[dict[str, Any]]:
    """Flatten one message into Responses API input items.

    Tool calls and tool results are top-level items in this API rather
    than parts of a chat message, so one message can yield several items.
    """
    if isinstance(msg.content, str):
        return [{"role": msg.role.value, "content": msg.content}]

    items: list[dict[str, Any]] = []
    text = msg.get_text()
    if text:
        items.append({"role": msg.role.value, "content": text})
    for tool_use in msg.get_tool_uses():
        items.append(
            {
                "type": "function_call",
                "call_id": tool_use.id,
                "name": tool_use.name,
                "arguments": json.dumps(tool_use.input),
            }
        )
    for result in msg.get_tool_results():
        items.append(
            {
                "type": "function_call_output",
                "call_id": result.tool_use_id,
                "output": result.content,
            }
        )
    return items


def split_instructions(messages: list[Message]) -> tuple[str | None, list[dict[str, Any]]]:
    """Separate system text (instructions) from conversation input items."""
    instructions: str | None = None
    items: list[dict[str, Any]] = []
    for msg in messages:
        if msg.role == Role.SYSTEM:
            instructions = msg.get_text()
        else:
            items.extend(message_to_items(msg))
    return instructions, items


def tools_to_functions(tools: list[ToolDefinition] | None) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "name": t.name,
            "description": t.description,
            "parameters": t.input_schema,
        }
        for t in tools or []
    ]


def parse_response(response: Any) -> CompletionResponse:
    content: list[ContentBlock] = []
    called = False
    for item in response.output:
        if item.type == "message":
            content.extend(
                TextContent(text=part.text)
                for part in item.content
                if part.type == "output_text"
            )
        elif item.type == "function_call":
            called = True
            content.append(
                ToolUse(
                    id=item.call_id,
                    name=item.name,
                    input=json.loads(item.arguments or "{}"),
                )
            )

    usage = None
    if response.usage:
        usage = Usage(
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )

    return CompletionResponse(
        message=Message.assistant(content),
        usage=usage,
        stop_reason="tool_use" if called else "end_turn",
        model=response.model,
        raw=response.model_dump(),
    )


class OpenAIProvider(LLMProvider):
    def __init__(self, api_key: str | None = None):
        self._client = openai.AsyncOpenAI(api_key=api_key)
        self._retry = RetryConfig(max_retries=3)

    @property
    def name(self) -> str:
        return "openai"

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
        message_instructions, items = split_instructions(messages)
        request: dict[str, Any] = {
            "model": model or self.default_model,
            "input": items,
            "max_output_tokens": max_tokens,
        }
        # Explicit system prompt wins over a system message in the list
        if instructions := system or message_instructions:
            request["instructions"] = instructions
        if temperature is not None:
            request["temperature"] = temperature
        if functions := tools_to_functions(tools):
            request["tools"] = functions
            request["tool_choice"] = "auto"
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

        start_time = time.monotonic()
        response = await with_retry(
            lambda: self._client.responses.create(**request),
            config=self._retry,
            operation_name=f"OpenAI {model_name}",
        )

        extra: dict[str, object] = {
            "provider": self.name,
            "model": model_name,
            "duration_ms": int((time.monotonic() - start_time) * 1000),
        }
        if response.usage:
            extra["tokens_in"] = response.usage.input_tokens
            extra["tokens_out"] = response.usage.output_tokens
        logger.debug("llm_complete", extra=extra)

        return parse_response(response)
