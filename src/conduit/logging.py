"""Logging setup for conduit.

Log calls use a short event name as the message and put the details in
``extra``::

    logger.info("tool_invoked", extra={"gen_ai.tool.name": name})

``configure_logging()`` installs one console handler that renders those
fields after the event name and masks anything that looks like a
credential. Entry points (``conduit serve``, ``conduit chat``) call it once
before building the application.

Levels:
- DEBUG: model turns and request sizes
- INFO: provider connects, capability invocations, session sweeps
- WARNING: retries, timeout recovery, teardown errors
- ERROR: failures that reach the user
"""

import logging
import os
import re
from collections.abc import Iterable

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

DEFAULT_SECRET_PATTERNS: tuple[str, ...] = (
    # Anthropic/OpenAI keys
    r"\b(sk-[A-Za-z0-9_-]{20,})\b",
    # Telegram bot tokens (numeric id, colon, token)
    r"\b(\d{8,}:[A-Za-z0-9_-]{30,})\b",
    # KEY=value / TOKEN: value style assignments
    r"\b[A-Z0-9_]+(?:KEY|TOKEN|SECRET|PASSWORD|PASSWD)\s*[=:]\s*([^\s\"']{8,})",
    r"\bBearer\s+([A-Za-z0-9._\-+=]{20,})\b",
)

# Chatty third-party loggers, capped at WARNING
NOISY_LOGGERS = (
    "httpx",
    "httpcore",
    "aiogram",
    "aiogram.event",
    "anthropic",
    "openai",
    "mcp",
)

_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "component"}


def mask_token(token: str) -> str:
    """Keep the first and last four characters of long tokens."""
    if len(token) < 12:
        return "***"
    return f"{token[:4]}...{token[-4:]}"


class SecretRedactor:
    """Masks credentials inside free text."""

    def __init__(
        self, patterns: Iterable[str] | None = None, *, enabled: bool = True
    ) -> None:
        self.enabled = enabled
        self.patterns = [
            re.compile(p, re.IGNORECASE)
            for p in (patterns if patterns is not None else DEFAULT_SECRET_PATTERNS)
        ]

    def redact(self, text: str) -> str:
        if not self.enabled or not text:
            return text
        for pattern in self.patterns:
            text = pattern.sub(self._replace, text)
        return text

    @staticmethod
    def _replace(match: re.Match[str]) -> str:
        whole = match.group(0)
        token = match.group(1) if match.lastindex else whole
        if "..." in token:
            return whole
        start, end = match.span(1) if match.lastindex else match.span()
        offset = match.start()
        return whole[: start - offset] + mask_token(token) + whole[end - offset :]


def extra_fields(record: logging.LogRecord) -> dict[str, object]:
    """Fields that were passed through ``extra=``."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _STANDARD_ATTRS and not key.startswith("_")
    }


def component_name(logger_name: str) -> str:
    """``conduit.capabilities.router`` -> ``capabilities``; others keep their root."""
    parts = logger_name.split(".")
    if parts[0] == "conduit" and len(parts) > 1:
        return parts[1]
    return parts[0]


class RedactingFilter(logging.Filter):
    """Masks secrets in the rendered message and in string ``extra`` fields."""

    def __init__(self, redactor: SecretRedactor | None = None) -> None:
        super().__init__()
        self.redactor = redactor or SecretRedactor()

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = self.redactor.redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        for key, value in extra_fields(record).items():
            if isinstance(value, str):
                setattr(record, key, self.redactor.redact(value))
        return True


class EventFormatter(logging.Formatter):
    """Adds ``%(component)s`` and appends ``extra`` fields as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        record.component = component_name(record.name)
        return super().format(record)

    def formatMessage(self, record: logging.LogRecord) -> str:
        text = super().formatMessage(record)
        fields = extra_fields(record)
        if not fields:
            return text
        rendered = " ".join(f"{key}={value!r}" for key, value in fields.items())
        return f"{text} {rendered}"


def configure_logging(level: str | None = None, use_rich: bool = False) -> None:
    """Install the console handler on the root logger.

    Args:
        level: DEBUG, INFO, WARNING or ERROR. Defaults to CONDUIT_LOG_LEVEL,
            then INFO. Unknown names fall back to INFO.
        use_rich: Render through rich (server mode) instead of plain stderr.
    """
    level = (level or os.environ.get("CONDUIT_LOG_LEVEL") or "INFO").upper()
    if level not in LEVELS:
        level = "INFO"

    handler: logging.Handler
    if use_rich:
        from rich.logging import RichHandler

        handler = RichHandler(
            rich_tracebacks=False, show_path=False, show_time=True, markup=False
        )
        handler.setFormatter(EventFormatter("%(component)s | %(message)s"))
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(
            EventFormatter(
                "%(asctime)s | %(levelname)-8s | %(component)s | %(message)s",
                datefmt="%H:%M:%S",
            )
        )
    handler.addFilter(RedactingFilter())

    logging.basicConfig(level=getattr(logging, level), handlers=[handler], force=True)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
