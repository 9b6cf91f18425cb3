"""Model backend abstraction layer."""

from conduit.llm.anthropic import AnthropicProvider
from conduit.llm.base import LLMProvider
from conduit.llm.openai import OpenAIProvider
from conduit.llm.registry import ProviderName, create_llm_provider
from conduit.llm.retry import RetryConfig, is_retryable_error, with_retry
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

__all__ = [
    # Base
    "LLMProvider",
    # Providers
    "AnthropicProvider",
    "OpenAIProvider",
    "ProviderName",
    "create_llm_provider",
    # Retry
    "RetryConfig",
    "is_retryable_error",
    "with_retry",
    # Types
    "CompletionResponse",
    "ContentBlock",
    "Message",
    "Role",
    "TextContent",
    "ToolDefinition",
    "ToolResult",
    "ToolUse",
    "Usage",
]
