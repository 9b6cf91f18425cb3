"""Session and conversation message types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum


def now_utc() -> datetime:
    return datetime.now(UTC)


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass(frozen=True, slots=True)
class ConversationMessage:
    """One retained history entry. Immutable once appended."""

    role: MessageRole
    content: str
    timestamp: datetime = field(default_factory=now_utc)


@dataclass(slots=True)
class Session:
    """Per-user conversational state.

    ``history`` is owned by the store; read it through
    ``SessionStore.history`` which returns a snapshot.
    """

    user_id: str
    created_at: datetime
    last_activity: datetime
    history: list[ConversationMessage] = field(default_factory=list)
    active_provider_ids: set[str] = field(default_factory=set)
