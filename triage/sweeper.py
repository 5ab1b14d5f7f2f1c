"""
Session timeout sweep.

Every SWEEP_INTERVAL_SECONDS, waiting sessions idle for longer than
SESSION_TIMEOUT_SECONDS are moved to timed_out. Each candidate is
re-checked under its key's lock, so a message that arrives during the
sweep always wins.
"""

import asyncio
import contextlib
import logging
from datetime import datetime

import config
from triage.delivery import AnalyticsEmitter
from triage.errors import PersistenceError
from triage.models import AnalyticsEvent, SessionStatus, utc_now
from triage.session_store import SessionStore
from triage.states import transition

logger = logging.getLogger(__name__)


class SessionSweeper:
    def __init__(
        self,
        store: SessionStore,
        analytics: AnalyticsEmitter,
        timeout_seconds: float = config.SESSION_TIMEOUT_SECONDS,
        interval_seconds: float = config.SWEEP_INTERVAL_SECONDS,
    ):
        self.store = store
        self.analytics = analytics
        self.timeout_seconds = timeout_seconds
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    async def sweep_once(self, now: datetime | None = None) -> int:
        """Time out every expired waiting session. Returns how many were closed."""
        now = now or utc_now()
        candidates = await self.store.list_expired(self.timeout_seconds, now)
        closed = 0
        for candidate in candidates:
            async with self.store.locked(candidate.user_id, candidate.platform):
                try:
                    session = await self.store.load(candidate.user_id, candidate.platform)
                    if session is None or session.id != candidate.id:
                        continue
                    idle = (now - session.last_activity_at).total_seconds()
                    if session.status != SessionStatus.WAITING or idle <= self.timeout_seconds:
                        continue

                    transition(session, SessionStatus.TIMED_OUT, now)
                    await self.store.save(session)
                except PersistenceError as e:
                    logger.warning("Sweep skipped session %s: %s", candidate.id, e)
                    continue

            closed += 1
            logger.info("Session %s timed out after %.0fs idle", session.id, idle)
            self.analytics.emit(AnalyticsEvent(
                name="session_timed_out",
                session_id=session.id,
                user_id=session.user_id,
                platform=session.platform,
                language=session.language,
                timestamp=now,
                properties={"idle_seconds": idle},
            ))
        return closed

    async def run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.sweep_once()
            except PersistenceError as e:
                logger.warning("Session sweep failed: %s", e)

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
