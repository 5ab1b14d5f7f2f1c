"""
Session Store.

Wraps a SessionRepository with:
  - per-(user_id, platform) mutual exclusion (FIFO asyncio.Lock per key,
    reclaimed as soon as nobody holds or waits on it)
  - load-or-create semantics (terminal sessions are replaced)
  - deep model copies in both directions, so a turn that is abandoned midway
    never leaks its half-applied changes into the stored session

Repository calls are blocking and run in a worker thread.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime

import config
from triage.interfaces import SessionRepository
from triage.models import InboundMessage, Platform, Session

logger = logging.getLogger(__name__)

SessionKey = tuple[str, Platform]


class _LockEntry:
    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.holders = 0


class SessionStore:
    def __init__(self, repository: SessionRepository):
        self.repository = repository
        self._locks: dict[SessionKey, _LockEntry] = {}

    @asynccontextmanager
    async def locked(self, user_id: str, platform: Platform):
        """Hold the key's lock for the duration of the block. Waiters are served in arrival order."""
        key = (user_id, platform)
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = _LockEntry()
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                self._locks.pop(key, None)

    @property
    def active_keys(self) -> int:
        """Number of keys currently locked or awaited."""
        return len(self._locks)

    async def load(self, user_id: str, platform: Platform) -> Session | None:
        session = await asyncio.to_thread(self.repository.load, user_id, platform)
        return session.model_copy(deep=True) if session is not None else None

    async def load_or_create(self, inbound: InboundMessage) -> tuple[Session, bool]:
        """Return the open session for the message's key, or a fresh one. Flag is True when created."""
        session = await self.load(inbound.user_id, inbound.platform)
        if session is not None and not session.status.is_terminal:
            return session, False

        session = Session(
            user_id=inbound.user_id,
            platform=inbound.platform,
            language=inbound.language or config.DEFAULT_LANGUAGE,
            location=inbound.location,
            started_at=inbound.timestamp,
            last_activity_at=inbound.timestamp,
        )
        logger.info("Created session %s for %s/%s", session.id, inbound.platform.value, inbound.user_id)
        return session, True

    async def save(self, session: Session) -> None:
        await asyncio.to_thread(self.repository.save, session.model_copy(deep=True))

    async def list_expired(self, threshold_seconds: float, now: datetime) -> list[Session]:
        return await asyncio.to_thread(self.repository.list_expired, threshold_seconds, now)
