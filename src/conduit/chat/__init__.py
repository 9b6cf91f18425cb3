"""Transport-neutral chat handling."""

from conduit.chat.delivery import TransportOutcomeSink
from conduit.chat.service import (
    GENERIC_FAILURE_MESSAGE,
    NO_PROVIDERS_MESSAGE,
    ChatService,
)
from conduit.chat.types import (
    ActivityKind,
    DocumentRef,
    IncomingMessage,
    MessageHandler,
    Transport,
)

__all__ = [
    "GENERIC_FAILURE_MESSAGE",
    "NO_PROVIDERS_MESSAGE",
    "ActivityKind",
    "ChatService",
    "DocumentRef",
    "IncomingMessage",
    "MessageHandler",
    "Transport",
    "TransportOutcomeSink",
]
