"""Test fixtures: an in-memory vote log and helpers to drive the relay.

Learn: MemoryVoteLog implements the same calls as VoteLog (read_after,
append, publish, subscribe, ping, close) without Redis:
- read_after blocks on an asyncio.Condition until an entry lands after
  the cursor, and "$" means "after the newest entry at call time",
  like XREAD
- publish copies the payload into one unbounded queue per live
  subscription, like Redis pub/sub
- failure counters make the next N reads/publishes raise TransportError

The HTTP client overrides get_vote_log / get_consumer so no lifespan (and
no Redis) is needed; test_lifespan.py drives the lifespan on its own.
"""

import asyncio
from collections import defaultdict
from typing import Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from election_relay.api.deps import get_consumer, get_vote_log
from election_relay.main import app
from election_relay.relay import (
    LATEST_CURSOR,
    FanoutBroadcaster,
    LogEntry,
    StreamConsumer,
    TransportError,
)

STREAM = "votes-stream"
CHANNEL = "votes-channel"


def _seq(entry_id: str) -> int:
    return int(entry_id.split("-")[0])


class MemorySubscription:
    def __init__(self, log: "MemoryVoteLog", channel: str):
        self.channel = channel
        self.closed = False
        self._log = log
        self._queue: asyncio.Queue = asyncio.Queue()

    async def receive(self) -> Optional[str]:
        if self._log.receive_error is not None:
            raise self._log.receive_error
        return await self._queue.get()

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._log.subscriptions[self.channel].remove(self)


class MemoryVoteLog:
    def __init__(self):
        self.streams: dict[str, list[LogEntry]] = defaultdict(list)
        self.subscriptions: dict[str, list[MemorySubscription]] = defaultdict(list)
        self.published: list[tuple[str, str]] = []
        self.read_failures = 0
        self.publish_failures = 0
        self.reads = 0
        self.receive_error: Optional[Exception] = None
        self.ping_error: Optional[Exception] = None
        self.closed = False
        self.reader_waiting = asyncio.Event()
        self._seq = 0
        self._changed = asyncio.Condition()

    async def read_after(self, stream, cursor, *, count=1, block_ms=0):
        self.reads += 1
        if self.read_failures:
            self.read_failures -= 1
            raise TransportError("Error 111 connecting to localhost:6379. Connection refused.")

        async with self._changed:
            entries = self.streams[stream]
            if cursor == LATEST_CURSOR:
                after = _seq(entries[-1].id) if entries else 0
            else:
                after = _seq(cursor)
            while True:
                pending = [e for e in self.streams[stream] if _seq(e.id) > after]
                if pending:
                    return pending[:count]
                self.reader_waiting.set()
                await self._changed.wait()

    async def append(self, stream, fields):
        async with self._changed:
            self._seq += 1
            entry_id = f"{self._seq}-0"
            self.streams[stream].append(LogEntry(id=entry_id, fields=dict(fields)))
            self.reader_waiting.clear()
            self._changed.notify_all()
        return entry_id

    async def publish(self, channel, payload):
        if self.publish_failures:
            self.publish_failures -= 1
            raise TransportError("Connection closed by server.")
        self.published.append((channel, payload))
        for sub in list(self.subscriptions[channel]):
            sub._queue.put_nowait(payload)
        return len(self.subscriptions[channel])

    async def subscribe(self, channel):
        sub = MemorySubscription(self, channel)
        self.subscriptions[channel].append(sub)
        return sub

    async def ping(self):
        if self.ping_error is not None:
            raise self.ping_error

    async def close(self):
        self.closed = True

    def close_channel(self, channel):
        for sub in list(self.subscriptions[channel]):
            sub._queue.put_nowait(None)

    def payloads(self, channel=CHANNEL) -> list[str]:
        return [p for c, p in self.published if c == channel]


class Viewer:
    """A fake browser connection driving FanoutBroadcaster.attach()."""

    def __init__(self, log: MemoryVoteLog, channel: str = CHANNEL):
        self.broadcaster = FanoutBroadcaster(log, channel=channel)
        self.frames: list[str] = []
        self.gone = asyncio.Event()
        self.task: Optional[asyncio.Task] = None

    async def write(self, frame: str) -> None:
        self.frames.append(frame)

    async def closed(self) -> None:
        await self.gone.wait()

    def disconnect(self) -> None:
        self.gone.set()


async def _wait_until(predicate, timeout: float = 2.0) -> None:
    async def poll():
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout)


@pytest.fixture()
def wait_until():
    """Await until predicate() is true, failing the test after `timeout` seconds."""
    return _wait_until


@pytest_asyncio.fixture()
async def vote_log():
    return MemoryVoteLog()


@pytest_asyncio.fixture()
async def start_consumer(vote_log):
    """Factory: start a StreamConsumer task and wait until it blocks on its first read."""
    started: list[tuple[StreamConsumer, asyncio.Task]] = []

    async def _start(**kwargs) -> StreamConsumer:
        options = {"stream": STREAM, "channel": CHANNEL, "retry_delay": 0.01}
        options.update(kwargs)
        consumer = StreamConsumer(vote_log, **options)
        task = asyncio.create_task(consumer.run_loop())
        started.append((consumer, task))
        await _wait_until(lambda: vote_log.reader_waiting.is_set() or task.done())
        return consumer

    yield _start

    for consumer, task in started:
        consumer.stop()
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


@pytest_asyncio.fixture()
async def consumer(start_consumer):
    return await start_consumer()


@pytest_asyncio.fixture()
async def attach_viewer(vote_log):
    """Factory: attach a Viewer and wait until its subscription exists."""
    viewers: list[Viewer] = []

    async def _attach(channel: str = CHANNEL) -> Viewer:
        viewer = Viewer(vote_log, channel)
        before = len(vote_log.subscriptions[channel])
        viewer.task = asyncio.create_task(viewer.broadcaster.attach(viewer.write, viewer.closed))
        viewers.append(viewer)
        await _wait_until(lambda: len(vote_log.subscriptions[channel]) > before)
        return viewer

    yield _attach

    for viewer in viewers:
        viewer.disconnect()
        if viewer.task is not None and not viewer.task.done():
            await asyncio.wait_for(viewer.task, 2.0)


async def append_vote(log: MemoryVoteLog, payload: str, stream: str = STREAM) -> str:
    return await log.append(stream, {"data": payload})


@pytest.fixture()
def append():
    """Append one raw payload under the `data` field of the vote stream."""
    return append_vote


@pytest_asyncio.fixture()
async def client(vote_log, consumer):
    """HTTP client with the app's Redis handle and consumer overridden for testing."""
    app.dependency_overrides[get_vote_log] = lambda: vote_log
    app.dependency_overrides[get_consumer] = lambda: consumer

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
