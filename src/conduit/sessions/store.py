"""In-memory session store with bounded history and idle eviction.

Sessions are not persisted; a restart starts everyone fresh.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from conduit.errors import SessionError
from conduit.sessions.types import ConversationMessage, MessageRole, Session, now_utc

logger = logging.getLogger(__name__)

DEFAULT_MAX_HISTORY = 20
DEFAULT_IDLE_TIMEOUT = timedelta(minutes=30)
DEFAULT_SWEEP_INTERVAL_SECONDS = 5 * 60


class SessionStore:
    """Owns every live session.

    Mutations for one user are serialized by that session's lock; the
    session map itself is guarded by the store lock. Different users never
    contend on each other's locks.
    """

    def __init__(
        self,
        *,
        max_history: int = DEFAULT_MAX_HISTORY,
        idle_timeout: timedelta = DEFAULT_IDLE_TIMEOUT,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        if max_history < 1:
            raise SessionError("max_history must be at least 1")
        self._max_history = max_history
        self._idle_timeout = idle_timeout
        self._sweep_interval = sweep_interval_seconds
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._store_lock = asyncio.Lock()
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def max_history(self) -> int:
        return self._max_history

    async def get_or_create(self, user_id: str) -> Session:
        """Return the user's session, creating it lazily."""
        user_id = _required_user_id(user_id)
        async with self._store_lock:
            now = self._clock()
            session = self._sessions.get(user_id)
            if session is None:
                session = Session(user_id=user_id, created_at=now, last_activity=now)
                self._sessions[user_id] = session
                self._locks[user_id] = asyncio.Lock()
                logger.debug("session_created", extra={"user.id": user_id})
            else:
                session.last_activity = now
            return session

    def get(self, user_id: str) -> Session | None:
        """Return the session if it exists, without creating one."""
        session = self._sessions.get(_required_user_id(user_id))
        if session is not None:
            session.last_activity = self._clock()
        return session

    def history(self, user_id: str) -> tuple[ConversationMessage, ...]:
        """Snapshot of the user's retained history (empty if no session)."""
        session = self.get(user_id)
        if session is None:
            return ()
        return tuple(session.history)

    async def append_message(
        self, user_id: str, role: MessageRole | str, content: str
    ) -> ConversationMessage:
        """Append a message, dropping the oldest entries past the history cap."""
        session = await self.get_or_create(user_id)
        message = ConversationMessage(
            role=MessageRole(role), content=content, timestamp=self._clock()
        )
        async with self._lock_for(session.user_id):
            session.history.append(message)
            overflow = len(session.history) - self._max_history
            if overflow > 0:
                del session.history[:overflow]
            session.last_activity = message.timestamp
        return message

    async def clear_history(self, user_id: str) -> None:
        """Forget the conversation; active providers are kept."""
        session = await self.get_or_create(user_id)
        async with self._lock_for(session.user_id):
            session.history.clear()
        logger.info("session_reset", extra={"user.id": session.user_id})

    async def activate_provider(self, user_id: str, provider_id: str) -> None:
        session = await self.get_or_create(user_id)
        async with self._lock_for(session.user_id):
            session.active_provider_ids.add(provider_id)

    async def deactivate_provider(self, user_id: str, provider_id: str) -> None:
        session = await self.get_or_create(user_id)
        async with self._lock_for(session.user_id):
            session.active_provider_ids.discard(provider_id)

    def active_providers(self, user_id: str) -> frozenset[str]:
        session = self.get(user_id)
        if session is None:
            return frozenset()
        return frozenset(session.active_provider_ids)

    async def delete(self, user_id: str) -> bool:
        """Drop the session outright. Returns whether one existed."""
        user_id = _required_user_id(user_id)
        async with self._store_lock:
            self._locks.pop(user_id, None)
            return self._sessions.pop(user_id, None) is not None

    async def sweep(self) -> int:
        """Evict sessions idle longer than the timeout.

        Sessions whose lock is currently held are in use and are skipped.

        Returns:
            Number of sessions evicted.
        """
        async with self._store_lock:
            cutoff = self._clock() - self._idle_timeout
            expired = [
                user_id
                for user_id, session in self._sessions.items()
                if session.last_activity < cutoff
                and not self._locks[user_id].locked()
            ]
            for user_id in expired:
                del self._sessions[user_id]
                del self._locks[user_id]

        if expired:
            logger.info(
                "sessions_evicted",
                extra={"session.count": len(expired), "session.remaining": len(self)},
            )
        return len(expired)

    async def start(self) -> None:
        """Start the periodic idle sweep."""
        if self._running:
            return
        self._running = True
        logger.info(
            "session_sweeper_started",
            extra={"sweep.interval_seconds": self._sweep_interval},
        )
        self._task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _sweep_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._sweep_interval)
            try:
                await self.sweep()
            except Exception as e:
                logger.error("session_sweep_error", extra={"error.message": str(e)})

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            # Session was evicted between lookup and mutation
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    def __contains__(self, user_id: object) -> bool:
        if user_id is None:
            return False
        return str(user_id).strip() in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


def _required_user_id(value: str | int | None) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise SessionError("user id is required")
    return text
