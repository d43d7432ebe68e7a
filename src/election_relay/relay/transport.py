"""Redis transport: the stream is the append log, pub/sub is the fan-out topic.

Learn: One redis.asyncio client is shared by the consumer and every
broadcaster. Each command borrows a connection from the client's pool, so
the consumer's blocking XREAD holds one connection while PUBLISH and
SUBSCRIBE use others. Every subscription owns a dedicated connection for
its lifetime.

Redis pub/sub is fire-and-forget. Only subscribers connected at PUBLISH time
get the message, and Redis buffers undelivered messages per subscriber in
its output buffer (client-output-buffer-limit pubsub, 32mb hard / 8mb for
60s soft by default). A viewer that falls further behind is disconnected by
Redis; its subscription then raises TransportError and the viewer's stream
ends. Nothing is dropped silently from the middle of a stream.

Replies are decoded as UTF-8 with errors replaced, so a stream entry holding
invalid bytes reaches the consumer as an undecodable payload instead of
failing the XREAD.
"""

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

logger = structlog.get_logger()


class TransportError(Exception):
    """A Redis read, publish, or subscribe call failed."""


@dataclass(frozen=True)
class LogEntry:
    """One stream entry: its id and raw field map."""
    id: str
    fields: dict[str, Any] = field(default_factory=dict)


class Subscription:
    """A single viewer's handle on a pub/sub channel.

    receive() waits for the next published payload and returns None once the
    channel is gone (unsubscribed or the client was closed).
    """

    def __init__(self, pubsub: Any, channel: str):
        self.channel = channel
        self._pubsub = pubsub
        self._messages: Optional[AsyncIterator[dict]] = None
        self.closed = False

    async def receive(self) -> Optional[str]:
        if self._messages is None:
            self._messages = self._pubsub.listen()
        try:
            while True:
                message = await self._messages.__anext__()
                if message["type"] == "message":
                    return message["data"]
        except StopAsyncIteration:
            return None
        except RedisError as e:
            raise TransportError(f"receive on {self.channel} failed: {e}") from e

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            await self._pubsub.unsubscribe(self.channel)
        except RedisError as e:
            logger.debug("subscription.unsubscribe_failed", channel=self.channel, error=str(e))
        finally:
            await self._pubsub.aclose()


class VoteLog:
    """Thin handle on Redis used as log (XADD/XREAD) and topic (PUBLISH/SUBSCRIBE)."""

    def __init__(self, client: aioredis.Redis):
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "VoteLog":
        return cls(
            aioredis.from_url(
                url,
                encoding="utf-8",
                encoding_errors="replace",
                decode_responses=True,
            )
        )

    async def ping(self) -> None:
        try:
            await self._client.ping()
        except RedisError as e:
            raise TransportError(f"ping failed: {e}") from e

    async def close(self) -> None:
        await self._client.aclose()

    async def read_after(
        self,
        stream: str,
        cursor: str,
        *,
        count: int = 1,
        block_ms: int = 0,
    ) -> list[LogEntry]:
        """Return up to `count` entries after `cursor`, blocking until one exists.

        block_ms=0 blocks indefinitely (a long-poll, not a timer).
        """
        try:
            response = await self._client.xread({stream: cursor}, count=count, block=block_ms)
        except RedisError as e:
            raise TransportError(f"XREAD {stream} after {cursor} failed: {e}") from e

        entries: list[LogEntry] = []
        for _stream_name, messages in response or []:
            for entry_id, fields in messages:
                entries.append(LogEntry(id=entry_id, fields=dict(fields or {})))
        return entries

    async def append(self, stream: str, fields: dict[str, str]) -> str:
        try:
            return await self._client.xadd(stream, fields)
        except RedisError as e:
            raise TransportError(f"XADD {stream} failed: {e}") from e

    async def publish(self, channel: str, payload: str) -> int:
        """Publish a payload; returns how many subscribers received it."""
        try:
            return await self._client.publish(channel, payload)
        except RedisError as e:
            raise TransportError(f"PUBLISH {channel} failed: {e}") from e

    async def subscribe(self, channel: str) -> Subscription:
        pubsub = self._client.pubsub()
        try:
            await pubsub.subscribe(channel)
        except RedisError as e:
            await pubsub.aclose()
            raise TransportError(f"SUBSCRIBE {channel} failed: {e}") from e
        except BaseException:
            await pubsub.aclose()
            raise
        return Subscription(pubsub, channel)
