"""Backoff for transient model API failures."""

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_PATTERN = re.compile(
    r"overloaded|rate.?limit|too many requests|"
    r"429|500|502|503|504|529|"
    r"service.?unavailable|server error|internal error|"
    r"connection.?error|timeout|timed out",
    re.IGNORECASE,
)

TRANSIENT_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504, 529})


@dataclass(slots=True)
class RetryConfig:
    enabled: bool = True
    max_retries: int = 3
    base_delay_ms: int = 2000
    max_delay_ms: int = 30000
    # Cap on a server-provided Retry-After hint
    max_retry_after_ms: int = 60000

    def backoff_ms(self, attempt: int) -> int:
        return min(self.base_delay_ms * (2**attempt), self.max_delay_ms)


def is_retryable_error(error: Exception) -> bool:
    """Decide whether a model API failure is worth another attempt.

    Matches on HTTP status (rate limits, 5xx, Anthropic's 529 overload),
    on exception type names from the SDKs, then on the message text.
    """
    status_code = getattr(error, "status_code", None)
    if status_code is not None:
        return status_code in TRANSIENT_STATUS_CODES

    error_type = type(error).__name__.lower()
    if any(
        t in error_type
        for t in ("timeout", "connection", "overloaded", "ratelimit", "rate_limit")
    ):
        return True

    return bool(TRANSIENT_PATTERN.search(str(error)))


def retry_after_ms(error: Exception) -> int | None:
    """Read a Retry-After header (seconds) off an SDK status error."""
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    value = headers.get("retry-after")
    if value is None:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    if seconds < 0:
        return None
    return int(seconds * 1000)


async def with_retry(
    func: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    operation_name: str = "API call",
    *,
    should_retry: Callable[[Exception], bool] = is_retryable_error,
) -> T:
    """Run ``func`` and retry transient failures with exponential backoff.

    A Retry-After hint from the server replaces the computed delay when it
    is present, bounded by ``max_retry_after_ms``.

    Raises:
        The last exception once retries are exhausted, or the first
        non-retryable one immediately.
    """
    config = config or RetryConfig()

    if not config.enabled:
        return await func()

    attempt = 0
    while True:
        try:
            return await func()
        except Exception as e:
            if not should_retry(e):
                raise

            if attempt >= config.max_retries:
                logger.warning(
                    "retry_exhausted",
                    extra={
                        "operation": operation_name,
                        "attempts": attempt + 1,
                        "error.message": str(e),
                        "error.type": type(e).__name__,
                    },
                )
                raise

            delay_ms = config.backoff_ms(attempt)
            hinted = retry_after_ms(e)
            if hinted is not None:
                delay_ms = min(hinted, config.max_retry_after_ms)
            delay_s = delay_ms / 1000

            attempt += 1
            logger.info(
                "retry_attempt",
                extra={
                    "operation": operation_name,
                    "attempt": attempt,
                    "max_attempts": config.max_retries + 1,
                    "retry_delay_s": round(delay_s, 1),
                    "error.message": str(e),
                    "error.type": type(e).__name__,
                },
            )
            await asyncio.sleep(delay_s)
