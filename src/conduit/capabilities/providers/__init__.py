"""Provider session interfaces."""

from conduit.capabilities.providers.base import (
    ProviderSession,
    SessionFactory,
    invocation_error,
    is_timeout_like,
)
from conduit.capabilities.providers.mcp import McpProviderSession, open_mcp_session

__all__ = [
    "McpProviderSession",
    "ProviderSession",
    "SessionFactory",
    "invocation_error",
    "is_timeout_like",
    "open_mcp_session",
]
