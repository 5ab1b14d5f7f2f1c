"""
Background emission of analytics events and outbound channel messages.

Both are fire-and-forget from the conversation's point of view: a
failure is logged and never rolls back session state. Outbound delivery
is retried with linear backoff; analytics is not retried.
"""

import asyncio
import logging

import config
from triage.errors import ChannelDeliveryError
from triage.interfaces import AnalyticsSink, ChannelAdapter
from triage.models import AnalyticsEvent, OutboundMessage, Platform

logger = logging.getLogger(__name__)


class _BackgroundTasks:
    """Keeps references to scheduled tasks until they finish."""

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    def _schedule(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for everything scheduled so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class AnalyticsEmitter(_BackgroundTasks):
    def __init__(self, sink: AnalyticsSink):
        super().__init__()
        self.sink = sink

    def emit(self, event: AnalyticsEvent) -> asyncio.Task:
        return self._schedule(self._emit(event))

    async def _emit(self, event: AnalyticsEvent) -> None:
        try:
            await asyncio.to_thread(self.sink.emit, event)
        except Exception:
            logger.exception("[Analytics] Failed to emit %s for session %s", event.name, event.session_id)


class OutboundDispatcher(_BackgroundTasks):
    """Routes replies to the adapter for their platform."""

    def __init__(
        self,
        adapters: dict[Platform, ChannelAdapter],
        max_attempts: int = config.DELIVERY_MAX_ATTEMPTS,
        backoff_seconds: float = config.DELIVERY_BACKOFF_SECONDS,
    ):
        super().__init__()
        self.adapters = adapters
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds

    def dispatch(self, message: OutboundMessage) -> asyncio.Task:
        return self._schedule(self.deliver(message))

    async def deliver(self, message: OutboundMessage) -> bool:
        """Send with retries. Returns False once every attempt has failed."""
        adapter = self.adapters.get(message.platform)
        if adapter is None:
            logger.error("No channel adapter for platform %s", message.platform.value)
            return False

        for attempt in range(1, self.max_attempts + 1):
            try:
                await adapter.send(message)
                return True
            except ChannelDeliveryError as e:
                logger.warning(
                    "[Delivery] %s attempt %d/%d for session %s failed: %s",
                    message.platform.value, attempt, self.max_attempts, message.session_id, e,
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.backoff_seconds * attempt)

        logger.error("[Delivery] Giving up on reply for session %s", message.session_id)
        return False
