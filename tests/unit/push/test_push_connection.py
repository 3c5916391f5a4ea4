"""Unit tests for the push connection state machine."""

import asyncio
import json
from collections.abc import AsyncIterator
from unittest.mock import AsyncMock

import pytest

from core.exceptions import NetworkError
from domain.entities.push import PushMessage
from infrastructure.push.connection import ConnectionState, PushConnection


def envelope(kind: str = "TODOS_CHANGED", day: str = "2024-06-01") -> str:
    return json.dumps(
        {"type": kind, "data": {"date": day}, "timestamp": "2024-06-01T12:00:00Z"}
    )


class FakeStream:
    def __init__(self, lines: list[str], hold_open: bool = False) -> None:
        self._lines = lines
        self._hold_open = hold_open
        self.release = asyncio.Event()
        self.closed = False

    async def messages(self) -> AsyncIterator[str]:
        for line in self._lines:
            yield line
        if self._hold_open:
            await self.release.wait()

    async def aclose(self) -> None:
        self.closed = True


class FakeTransport:
    """Opens scripted streams; an exception in the script fails that attempt."""

    def __init__(self, *script: FakeStream | Exception) -> None:
        self._script = list(script)
        self.opened = 0

    async def open(self) -> FakeStream:
        self.opened += 1
        if not self._script:
            raise NetworkError("no more streams")
        item = self._script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class Recorder:
    def __init__(self, expected: int = 1) -> None:
        self.messages: list[PushMessage] = []
        self._expected = expected
        self.done = asyncio.Event()

    def __call__(self, message: PushMessage) -> None:
        self.messages.append(message)
        if len(self.messages) >= self._expected:
            self.done.set()

    async def wait(self) -> None:
        await asyncio.wait_for(self.done.wait(), timeout=1)


@pytest.fixture
def sleep() -> AsyncMock:
    return AsyncMock()


class TestSubscribe:
    @pytest.mark.asyncio
    async def test_queued_subscriber_receives_after_connect(self, sleep: AsyncMock):
        stream = FakeStream([envelope()], hold_open=True)
        connection = PushConnection(FakeTransport(stream), reconnect_delay=3, max_attempts=5, sleep=sleep)
        recorder = Recorder()

        connection.subscribe(recorder)
        assert connection.state == ConnectionState.DISCONNECTED
        await connection.connect()
        await recorder.wait()

        assert connection.state == ConnectionState.CONNECTED
        assert recorder.messages[0].type == "TODOS_CHANGED"
        assert recorder.messages[0].changed_date.isoformat() == "2024-06-01"
        assert recorder.messages[0].timestamp.tzinfo is not None
        await connection.disconnect()

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_delivery(self, sleep: AsyncMock):
        stream = FakeStream([envelope("A"), envelope("B")], hold_open=True)
        connection = PushConnection(FakeTransport(stream), max_attempts=0, sleep=sleep)
        removed = Recorder()
        kept = Recorder(expected=2)

        unsubscribe = connection.subscribe(removed)
        connection.subscribe(kept)
        unsubscribe()
        await connection.connect()
        await kept.wait()

        assert removed.messages == []
        await connection.disconnect()

    @pytest.mark.asyncio
    async def test_malformed_envelope_is_dropped(self, sleep: AsyncMock):
        stream = FakeStream(["not json", '{"data": {}}', envelope("RECURRING_CHANGED")], hold_open=True)
        connection = PushConnection(FakeTransport(stream), max_attempts=0, sleep=sleep)
        recorder = Recorder()
        connection.subscribe(recorder)

        await connection.connect()
        await recorder.wait()

        assert [m.type for m in recorder.messages] == ["RECURRING_CHANGED"]
        await connection.disconnect()

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_block_others(self, sleep: AsyncMock):
        stream = FakeStream([envelope("A"), envelope("B")], hold_open=True)
        connection = PushConnection(FakeTransport(stream), max_attempts=0, sleep=sleep)
        recorder = Recorder(expected=2)

        def broken(message: PushMessage) -> None:
            raise RuntimeError("boom")

        connection.subscribe(broken)
        connection.subscribe(recorder)
        await connection.connect()
        await recorder.wait()

        assert [m.type for m in recorder.messages] == ["A", "B"]
        await connection.disconnect()


class TestConnectionEstablished:
    @pytest.mark.asyncio
    async def test_fires_once_on_connect(self, sleep: AsyncMock):
        first = FakeStream([envelope("A")])
        second = FakeStream([envelope("B")], hold_open=True)
        connection = PushConnection(FakeTransport(first, second), max_attempts=5, sleep=sleep)
        recorder = Recorder(expected=2)
        calls: list[str] = []

        connection.on_connection_established(lambda: calls.append("ready"))
        connection.subscribe(recorder)
        await connection.connect()
        await recorder.wait()

        assert calls == ["ready"]
        await connection.disconnect()

    @pytest.mark.asyncio
    async def test_fires_immediately_when_connected(self, sleep: AsyncMock):
        stream = FakeStream([envelope()], hold_open=True)
        connection = PushConnection(FakeTransport(stream), max_attempts=0, sleep=sleep)
        recorder = Recorder()
        connection.subscribe(recorder)
        await connection.connect()
        await recorder.wait()
        calls: list[str] = []

        connection.on_connection_established(lambda: calls.append("ready"))

        assert calls == ["ready"]
        await connection.disconnect()


class TestReconnect:
    @pytest.mark.asyncio
    async def test_gives_up_after_bounded_attempts(self, sleep: AsyncMock):
        transport = FakeTransport()
        connection = PushConnection(transport, reconnect_delay=3, max_attempts=5, sleep=sleep)

        await connection.connect()
        await asyncio.wait_for(connection.wait_closed(), timeout=1)

        assert transport.opened == 6
        assert sleep.await_count == 5
        sleep.assert_awaited_with(3)
        assert connection.state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_successful_connection_resets_attempts(self, sleep: AsyncMock):
        transport = FakeTransport(
            NetworkError("down"),
            NetworkError("down"),
            FakeStream([envelope()]),
        )
        connection = PushConnection(transport, reconnect_delay=1, max_attempts=2, sleep=sleep)
        recorder = Recorder()
        connection.subscribe(recorder)

        await connection.connect()
        await asyncio.wait_for(connection.wait_closed(), timeout=1)

        # two failures, one stream, then two more failures before giving up
        assert transport.opened == 5
        assert len(recorder.messages) == 1

    @pytest.mark.asyncio
    async def test_lost_stream_is_reopened(self, sleep: AsyncMock):
        lost = FakeStream([envelope("A")])
        reopened = FakeStream([envelope("B")], hold_open=True)
        connection = PushConnection(FakeTransport(lost, reopened), max_attempts=5, sleep=sleep)
        recorder = Recorder(expected=2)
        connection.subscribe(recorder)

        await connection.connect()
        await recorder.wait()

        assert lost.closed
        assert [m.type for m in recorder.messages] == ["A", "B"]
        await connection.disconnect()


class TestDisconnect:
    @pytest.mark.asyncio
    async def test_closes_stream_and_stops(self, sleep: AsyncMock):
        stream = FakeStream([envelope()], hold_open=True)
        transport = FakeTransport(stream)
        connection = PushConnection(transport, max_attempts=5, sleep=sleep)
        recorder = Recorder()
        connection.subscribe(recorder)
        await connection.connect()
        await recorder.wait()

        await connection.disconnect()

        assert stream.closed
        assert connection.state == ConnectionState.DISCONNECTED
        assert transport.opened == 1
        sleep.assert_not_awaited()
