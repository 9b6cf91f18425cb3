"""Transport-neutral chat types."""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class ActivityKind(str, Enum):
    """Activity hints a transport may render (e.g. "typing...")."""

    TYPING = "typing"
    UPLOAD_DOCUMENT = "upload_document"


@dataclass(frozen=True, slots=True)
class DocumentRef:
    """A document the transport has already saved locally."""

    path: Path
    file_name: str
    size: int | None = None

    @property
    def size_mb(self) -> float:
        return (self.size or 0) / (1024 * 1024)


@dataclass(frozen=True, slots=True)
class IncomingMessage:
    """Message received from a transport."""

    user_id: str
    chat_id: str | int
    text: str = ""
    document: DocumentRef | None = None

    @property
    def is_command(self) -> bool:
        return self.text.startswith("/")


MessageHandler = Callable[[IncomingMessage], Awaitable[None]]


class Transport(ABC):
    """Abstract interface for chat transports.

    Transports receive user messages and deliver plain-text replies, files
    and activity hints. Everything else lives in the chat service.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Transport identifier (e.g., 'telegram', 'console')."""
        ...

    @abstractmethod
    async def start(self, handler: MessageHandler) -> None:
        """Start receiving messages; returns when the transport stops."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    @abstractmethod
    async def send_text(self, chat_id: str | int, text: str) -> None:
        ...

    @abstractmethod
    async def send_file(
        self, chat_id: str | int, path: Path, caption: str | None = None
    ) -> None:
        ...

    @abstractmethod
    async def show_activity(self, chat_id: str | int, kind: ActivityKind) -> None:
        ...
