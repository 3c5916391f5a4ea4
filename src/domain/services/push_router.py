"""Routes push notifications to silent re-fetches of the visible dates."""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import date
from typing import Protocol

import structlog

from core.config import settings
from domain.entities.push import PushMessage, PushMessageType
from domain.services.todo_sync_service import TodoSyncService

logger = structlog.get_logger()

PushHandler = Callable[[PushMessage], None]


class PushSource(Protocol):
    """Anything that delivers decoded push messages to subscribers."""

    def subscribe(self, handler: PushHandler) -> Callable[[], None]: ...


class PushInvalidationRouter:
    """Turns change notifications into delayed, silent re-fetches.

    The delay lets the server's own write commit before we read it back.
    Re-fetches pass the notification timestamp as ``as_of`` so that a
    notification produced before a newer local write cannot overwrite it.
    """

    def __init__(
        self,
        service: TodoSyncService,
        delay_seconds: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._service = service
        self._delay = settings.push_refetch_delay_seconds if delay_seconds is None else delay_seconds
        self._sleep = sleep
        self._tasks: set[asyncio.Task[None]] = set()
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def attach(self, source: PushSource) -> None:
        """Subscribe to a push source, replacing any previous subscription."""
        self.detach()
        self._unsubscribe = source.subscribe(self.handle)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def handle(self, message: PushMessage) -> None:
        """Schedule the re-fetch a notification asks for."""
        if message.type == PushMessageType.TODOS_CHANGED:
            day = message.changed_date
            if day is None:
                logger.warning("push_message_missing_date", type=message.type, data=message.data)
                return
            self._schedule(self._refetch_date(day, message), message)
        elif message.type == PushMessageType.RECURRING_CHANGED:
            self._schedule(self._refetch_view(message), message)
        else:
            logger.debug("push_message_ignored", type=message.type)

    async def drain(self) -> None:
        """Wait for every scheduled re-fetch to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Detach and cancel pending re-fetches."""
        self.detach()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    def _schedule(self, refetch: Awaitable[None], message: PushMessage) -> None:
        task = asyncio.ensure_future(refetch)
        self._tasks.add(task)

        def done(finished: asyncio.Task[None]) -> None:
            self._tasks.discard(finished)
            if finished.cancelled():
                return
            exc = finished.exception()
            if exc is not None:
                logger.error(
                    "push_refetch_failed",
                    type=message.type,
                    error=str(exc),
                    exc_info=exc,
                )

        task.add_done_callback(done)

    async def _refetch_date(self, day: date, message: PushMessage) -> None:
        await self._sleep(self._delay)
        if not self._service.is_visible(day):
            logger.debug("push_refetch_skipped", date=day.isoformat())
            return
        logger.info("push_refetch_date", date=day.isoformat())
        await self._service.load_for_date(day, silent=True, as_of=message.timestamp)

    async def _refetch_view(self, message: PushMessage) -> None:
        await self._sleep(self._delay)
        logger.info("push_refetch_view", dates=[d.isoformat() for d in self._service.visible_dates()])
        await self._service.load_current_view(silent=True, as_of=message.timestamp)
