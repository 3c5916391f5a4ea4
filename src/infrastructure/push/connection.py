"""Push channel connection with bounded reconnection."""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from enum import StrEnum

import pydantic
import structlog

from core.config import settings
from core.exceptions import AppException
from domain.entities.push import PushMessage
from infrastructure.push.schemas import parse_push_message
from infrastructure.push.transport import IPushTransport

logger = structlog.get_logger()

PushHandler = Callable[[PushMessage], None]


class ConnectionState(StrEnum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"


class PushConnection:
    """Keeps a push stream open and fans decoded messages out to handlers.

    Handlers subscribed while not connected are queued and start receiving
    messages once the connection is established. After the stream closes or
    fails the connection is retried after a fixed delay, up to
    ``max_attempts`` times in a row; a successful connection resets the count.
    """

    def __init__(
        self,
        transport: IPushTransport,
        reconnect_delay: float | None = None,
        max_attempts: int | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._reconnect_delay = (
            settings.push_reconnect_delay_seconds if reconnect_delay is None else reconnect_delay
        )
        self._max_attempts = (
            settings.push_max_reconnect_attempts if max_attempts is None else max_attempts
        )
        self._sleep = sleep
        self._state = ConnectionState.DISCONNECTED
        self._handlers: list[PushHandler] = []
        self._pending: list[PushHandler] = []
        self._on_established: list[Callable[[], None]] = []
        self._task: asyncio.Task[None] | None = None
        self._closing = False

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    def subscribe(self, handler: PushHandler) -> Callable[[], None]:
        """Register a message handler; returns a function that removes it."""
        if self.is_connected:
            self._handlers.append(handler)
        else:
            self._pending.append(handler)

        def unsubscribe() -> None:
            for handlers in (self._handlers, self._pending):
                if handler in handlers:
                    handlers.remove(handler)

        return unsubscribe

    def on_connection_established(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` now if connected, otherwise once on the next connect."""
        if self.is_connected:
            self._run_callback(callback)
        else:
            self._on_established.append(callback)

    async def connect(self) -> None:
        """Start the connection loop in the background."""
        if self._task is not None and not self._task.done():
            return
        self._closing = False
        self._task = asyncio.create_task(self._run())

    async def disconnect(self) -> None:
        """Stop reconnecting and close the stream."""
        self._closing = True
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._set_state(ConnectionState.DISCONNECTED)

    async def wait_closed(self) -> None:
        """Wait until the loop stops, by disconnect or by giving up."""
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

    async def _run(self) -> None:
        attempts = 0
        while not self._closing:
            self._set_state(ConnectionState.CONNECTING)
            try:
                stream = await self._transport.open()
            except AppException as exc:
                logger.warning("push_connect_failed", attempt=attempts, error=exc.message)
            else:
                attempts = 0
                self._set_state(ConnectionState.CONNECTED)
                try:
                    async for raw in stream.messages():
                        self._dispatch(raw)
                    logger.info("push_connection_closed")
                except AppException as exc:
                    logger.warning("push_connection_lost", error=exc.message)
                finally:
                    await stream.aclose()

            self._set_state(ConnectionState.DISCONNECTED)
            if self._closing:
                break
            attempts += 1
            if attempts > self._max_attempts:
                logger.error("push_reconnect_gave_up", attempts=self._max_attempts)
                break
            logger.info(
                "push_reconnect_scheduled",
                attempt=attempts,
                max_attempts=self._max_attempts,
                delay_seconds=self._reconnect_delay,
            )
            await self._sleep(self._reconnect_delay)

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        self._state = state
        logger.debug("push_connection_state", state=state.value)
        if state != ConnectionState.CONNECTED:
            return

        self._handlers.extend(self._pending)
        self._pending.clear()
        callbacks, self._on_established = self._on_established, []
        for callback in callbacks:
            self._run_callback(callback)

    def _dispatch(self, raw: str) -> None:
        try:
            message = parse_push_message(raw)
        except pydantic.ValidationError as exc:
            logger.warning("push_message_malformed", error_count=exc.error_count(), raw=raw[:200])
            return

        logger.debug("push_message_received", type=message.type)
        for handler in list(self._handlers):
            try:
                handler(message)
            except Exception:
                logger.exception("push_handler_failed", type=message.type)

    @staticmethod
    def _run_callback(callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception:
            logger.exception("push_connection_callback_failed")
