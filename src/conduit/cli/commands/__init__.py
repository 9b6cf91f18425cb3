"""CLI command modules."""

from conduit.cli.commands import chat, serve, servers

__all__ = ["chat", "serve", "servers"]
