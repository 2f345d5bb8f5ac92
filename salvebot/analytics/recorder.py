"""Session/analytics recorder - fire-and-forget chat logging.

Chat requests only enqueue events. A worker task owned by the application
lifespan writes them, logging and swallowing every failure.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime

from salvebot.db.repositories import ChatbotRepository, ChatExchangeRepository
from salvebot.errors import AnalyticsFailure
from salvebot.models.chat import ChatExchange
from salvebot.utils.metrics import PrometheusPipelineMetrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExchangeEvent:
    """Append one chat message to the session log."""

    exchange: ChatExchange


@dataclass(frozen=True)
class ConversationEvent:
    """Bump a chatbot's conversation counter and last-active time."""

    chatbot_id: str
    at: datetime


AnalyticsEvent = ExchangeEvent | ConversationEvent


class AnalyticsRecorder:
    """Queue-backed recorder for chat exchanges and usage counters."""

    def __init__(
        self,
        exchanges: ChatExchangeRepository,
        chatbots: ChatbotRepository,
        *,
        max_queue_size: int = 1000,
        metrics: PrometheusPipelineMetrics | None = None,
    ) -> None:
        self._exchanges = exchanges
        self._chatbots = chatbots
        self._queue: asyncio.Queue[AnalyticsEvent] = asyncio.Queue(maxsize=max_queue_size)
        self._metrics = metrics or PrometheusPipelineMetrics()
        self._worker: asyncio.Task[None] | None = None

    def record(self, exchange: ChatExchange) -> bool:
        """Enqueue an exchange for the session log. Never blocks."""
        return self._enqueue(ExchangeEvent(exchange))

    def record_conversation(self, chatbot_id: str, at: datetime) -> bool:
        """Enqueue a conversation-counter bump. Never blocks."""
        return self._enqueue(ConversationEvent(chatbot_id, at))

    def start(self) -> None:
        """Start the background worker (idempotent)."""
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name="analytics-recorder")

    async def drain(self) -> None:
        """Wait until every queued event has been handled.

        Without a running worker the queue is processed inline.
        """
        if self._worker is None or self._worker.done():
            while not self._queue.empty():
                event = self._queue.get_nowait()
                await self._handle(event)
                self._queue.task_done()
            return

        await self._queue.join()

    async def stop(self) -> None:
        """Flush pending events, then stop the worker."""
        await self.drain()

        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

    @property
    def pending(self) -> int:
        """Number of queued events not yet picked up."""
        return self._queue.qsize()

    def _enqueue(self, event: AnalyticsEvent) -> bool:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(f"Analytics queue full, dropping {type(event).__name__}")
            self._metrics.inc_analytics_failure("queue_full")
            return False
        return True

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._handle(event)
            finally:
                self._queue.task_done()

    async def _handle(self, event: AnalyticsEvent) -> None:
        try:
            await self._apply(event)
        except Exception as e:
            failure = AnalyticsFailure(f"{type(event).__name__} failed: {e}")
            logger.error(f"Analytics write failed: {failure}")
            self._metrics.inc_analytics_failure("write_error")

    async def _apply(self, event: AnalyticsEvent) -> None:
        if isinstance(event, ExchangeEvent):
            await self._exchanges.append_exchange(event.exchange)
        else:
            await self._chatbots.record_conversation(event.chatbot_id, event.at)
