"""Per-user conversational state."""

from conduit.sessions.store import SessionStore
from conduit.sessions.types import ConversationMessage, MessageRole, Session

__all__ = [
    "ConversationMessage",
    "MessageRole",
    "Session",
    "SessionStore",
]
