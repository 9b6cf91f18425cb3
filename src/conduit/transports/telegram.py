"""Telegram transport using aiogram."""

from __future__ import annotations

import logging
from pathlib import Path

from aiogram import Bot, Dispatcher, F
from aiogram.client.session.aiohttp import AiohttpSession
from aiogram.client.telegram import SimpleFilesPathWrapper, TelegramAPIServer
from aiogram.types import FSInputFile
from aiogram.types import Message as TelegramMessage

from conduit.chat.types import (
    ActivityKind,
    DocumentRef,
    IncomingMessage,
    MessageHandler,
    Transport,
)
from conduit.config.models import TelegramConfig

logger = logging.getLogger("telegram")

MAX_SEND_LENGTH = 4000  # Below Telegram's 4096 limit


_SEPARATORS = ("\n\n", "\n", " ")


def split_message(text: str, max_length: int = MAX_SEND_LENGTH) -> list[str]:
    """Break text into chunks Telegram will accept.

    Each cut lands on the last paragraph break inside the window, else the
    last newline, else the last space; a window with none of those is cut
    hard at ``max_length``.
    """
    chunks: list[str] = []
    while len(text) > max_length:
        window = text[:max_length]
        cut = max_length
        for separator in _SEPARATORS:
            index = window.rfind(separator)
            if index > 0:
                cut = index + len(separator)
                break
        chunks.append(text[:cut].rstrip())
        text = text[cut:].lstrip()
    if text or not chunks:
        chunks.append(text)
    return chunks


def _build_session(config: TelegramConfig) -> AiohttpSession | None:
    if not config.api_url:
        return None
    base = config.api_url.rstrip("/")
    if config.local_data_dir is not None:
        api = TelegramAPIServer.from_base(
            base,
            is_local=True,
            wrap_local_file=SimpleFilesPathWrapper(
                server_path=Path(config.server_data_dir),
                local_path=config.local_data_dir,
            ),
        )
    else:
        api = TelegramAPIServer.from_base(base)
    logger.info("telegram_custom_api", extra={"telegram.api_url": base})
    return AiohttpSession(api=api)


class TelegramTransport(Transport):
    """Telegram transport using aiogram 3.x long polling."""

    def __init__(self, config: TelegramConfig, download_dir: Path):
        if config.bot_token is None:
            raise ValueError("Telegram bot token is required")
        self._download_dir = download_dir
        self._bot = Bot(
            token=config.bot_token.get_secret_value(),
            session=_build_session(config),
        )
        self._dp = Dispatcher()
        self._handler: MessageHandler | None = None
        self._running = False

    @property
    def name(self) -> str:
        return "telegram"

    @property
    def bot(self) -> Bot:
        return self._bot

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dp

    async def start(self, handler: MessageHandler) -> None:
        """Start the Telegram bot."""
        self._handler = handler
        self._setup_handlers()
        self._running = True

        logger.info("telegram_bot_starting")
        await self._bot.delete_webhook(drop_pending_updates=False)
        # Disable aiogram's signal handling - let the app handle SIGINT/SIGTERM
        await self._dp.start_polling(
            self._bot,
            handle_signals=False,
            close_bot_session=False,  # We close it ourselves in stop()
        )

    async def stop(self) -> None:
        """Stop the Telegram bot."""
        if not self._running:
            return
        self._running = False

        try:
            await self._dp.stop_polling()
        except Exception as e:
            logger.debug("telegram_stop_polling_failed", extra={"error.message": str(e)})

        try:
            await self._bot.session.close()
        except Exception as e:
            logger.debug("telegram_session_close_failed", extra={"error.message": str(e)})

        logger.info("telegram_bot_stopped")

    def _setup_handlers(self) -> None:
        @self._dp.message(F.document)
        async def handle_document(message: TelegramMessage) -> None:
            incoming = await self._document_message(message)
            if incoming is not None:
                await self._dispatch(incoming)

        @self._dp.message(F.text)
        async def handle_text(message: TelegramMessage) -> None:
            if not message.text or message.from_user is None:
                return
            await self._dispatch(
                IncomingMessage(
                    user_id=str(message.from_user.id),
                    chat_id=message.chat.id,
                    text=message.text,
                )
            )

    async def _dispatch(self, incoming: IncomingMessage) -> None:
        if self._handler is None:
            return
        try:
            await self._handler(incoming)
        except Exception:
            logger.exception("Error handling message")

    async def _document_message(self, message: TelegramMessage) -> IncomingMessage | None:
        document = message.document
        if document is None or message.from_user is None:
            return None
        user_id = str(message.from_user.id)
        file_name = Path(document.file_name or f"{document.file_unique_id}").name
        size_mb = (document.file_size or 0) / (1024 * 1024)
        logger.info(
            "telegram_document_received",
            extra={"file.name": file_name, "file.size": document.file_size},
        )
        await message.answer(f"📥 Downloading file ({size_mb:.2f} MB)...")

        self._download_dir.mkdir(parents=True, exist_ok=True)
        destination = self._download_dir / f"{user_id}_{file_name}"
        try:
            await self._bot.download(document, destination=destination)
        except Exception as e:
            logger.warning("telegram_download_failed", extra={"error.message": str(e)})
            await message.answer(f"❌ Error: could not download {file_name}: {e}")
            return None

        return IncomingMessage(
            user_id=user_id,
            chat_id=message.chat.id,
            text=message.caption or "",
            document=DocumentRef(
                path=destination, file_name=file_name, size=document.file_size
            ),
        )

    async def send_text(self, chat_id: str | int, text: str) -> None:
        """Send plain text, splitting long messages into chunks."""
        for chunk in split_message(text):
            if chunk:
                await self._bot.send_message(chat_id=int(chat_id), text=chunk)

    async def send_file(
        self, chat_id: str | int, path: Path, caption: str | None = None
    ) -> None:
        logger.info("telegram_send_file", extra={"file.path": str(path)})
        await self._bot.send_document(
            chat_id=int(chat_id), document=FSInputFile(path), caption=caption
        )

    async def show_activity(self, chat_id: str | int, kind: ActivityKind) -> None:
        try:
            await self._bot.send_chat_action(chat_id=int(chat_id), action=kind.value)
        except Exception as e:
            logger.debug("telegram_chat_action_failed", extra={"error.message": str(e)})
