"""Chat transports."""

from conduit.transports.console import ConsoleTransport

__all__ = ["ConsoleTransport"]
