"""Local console transport for ``conduit chat``."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from conduit.chat.types import (
    ActivityKind,
    DocumentRef,
    IncomingMessage,
    MessageHandler,
    Transport,
)

logger = logging.getLogger(__name__)

LOCAL_USER_ID = "local-user"
LOCAL_CHAT_ID = "local"
EXIT_COMMANDS = frozenset({"exit", "quit", "/exit", "/quit"})


def parse_input(line: str) -> IncomingMessage | None:
    """Turn a console line into an incoming message.

    ``/file <path> [caption]`` sends a local file as a document.
    """
    line = line.strip()
    if not line:
        return None
    if line.startswith("/file"):
        parts = line.split(maxsplit=2)
        if len(parts) < 2:
            return IncomingMessage(
                user_id=LOCAL_USER_ID, chat_id=LOCAL_CHAT_ID, text="/help"
            )
        path = Path(parts[1]).expanduser()
        return IncomingMessage(
            user_id=LOCAL_USER_ID,
            chat_id=LOCAL_CHAT_ID,
            text=parts[2] if len(parts) > 2 else "",
            document=DocumentRef(
                path=path,
                file_name=path.name,
                size=path.stat().st_size if path.is_file() else None,
            ),
        )
    return IncomingMessage(user_id=LOCAL_USER_ID, chat_id=LOCAL_CHAT_ID, text=line)


class ConsoleTransport(Transport):
    """Single-user transport on the local terminal."""

    def __init__(self, console: Console | None = None):
        self._console = console or Console()
        self._running = False

    @property
    def name(self) -> str:
        return "console"

    async def start(self, handler: MessageHandler) -> None:
        self._running = True
        self._console.print(
            "[dim]Type a message, /help for commands, /file <path> [caption] "
            "to send a document, or 'exit' to quit.[/dim]"
        )
        while self._running:
            try:
                line = await asyncio.to_thread(
                    self._console.input, "[bold cyan]You:[/bold cyan] "
                )
            except EOFError:
                break
            if line.strip().lower() in EXIT_COMMANDS:
                break
            message = parse_input(line)
            if message is None:
                continue
            if message.document is not None and message.document.size is None:
                missing = escape(str(message.document.path))
                self._console.print(f"[red]File not found: {missing}[/red]")
                continue
            await handler(message)
        self._running = False

    async def stop(self) -> None:
        self._running = False

    async def send_text(self, chat_id: str | int, text: str) -> None:
        self._console.print(
            "[bold green]Conduit:[/bold green]", escape(text), highlight=False
        )

    async def send_file(
        self, chat_id: str | int, path: Path, caption: str | None = None
    ) -> None:
        suffix = f" - {caption}" if caption else ""
        self._console.print(
            f"[bold green]File:[/bold green] {escape(str(path) + suffix)}"
        )

    async def show_activity(self, chat_id: str | int, kind: ActivityKind) -> None:
        self._console.print(f"[dim]{kind.value}...[/dim]")
