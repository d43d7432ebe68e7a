"""Stream consumer: tails the vote stream and republishes onto the fan-out channel.

Learn: A single long-lived task, started in the FastAPI lifespan. Each
iteration blocks on XREAD after the current cursor. For every entry:

  advance cursor -> decode payload -> re-encode -> PUBLISH

The cursor advances before decoding, so a malformed entry is skipped for
good instead of being retried forever. A failed XREAD is logged and retried
after a fixed delay with the cursor unchanged; there is no backoff growth
and no failure budget.

The cursor lives in memory and starts at "$" (newest entry) on every start.
Entries written while the relay is down are never delivered. That is the
current product decision (at-most-recent, no replay), not an oversight;
persisting the cursor would change it.
"""

import asyncio
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Optional

import structlog

from election_relay.relay.events import LATEST_CURSOR, DecodeError, decode_vote, encode_vote
from election_relay.relay.transport import LogEntry, TransportError, VoteLog

logger = structlog.get_logger()


@dataclass
class ConsumerHealth:
    """Runtime statistics for the health endpoint."""
    started_at: Optional[datetime] = None
    last_read_at: Optional[datetime] = None
    last_entry_id: Optional[str] = None
    last_error: Optional[str] = None
    entries_read: int = 0
    published: int = 0
    dropped: int = 0
    read_errors: int = 0
    publish_errors: int = 0

    def snapshot(self) -> dict:
        data = asdict(self)
        for key in ("started_at", "last_read_at"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data


class StreamConsumer:
    """Relays vote entries from a Redis stream onto a pub/sub channel.

    Usage:
        consumer = StreamConsumer(vote_log, stream="votes-stream", channel="votes-channel")
        task = asyncio.create_task(consumer.run_loop())
        ...
        consumer.stop()
        task.cancel()
    """

    def __init__(
        self,
        log: VoteLog,
        *,
        stream: str,
        channel: str,
        field: str = "data",
        batch_size: int = 1,
        retry_delay: float = 2.0,
    ):
        self.log = log
        self.stream = stream
        self.channel = channel
        self.field = field
        self.batch_size = batch_size
        self.retry_delay = retry_delay
        self.health = ConsumerHealth()
        self._cursor = LATEST_CURSOR
        self._running = False

    @property
    def cursor(self) -> str:
        return self._cursor

    @property
    def running(self) -> bool:
        return self._running

    async def run_loop(self) -> None:
        """Main loop: block for entries, relay them, retry reads on transport errors."""
        self._running = True
        self.health.started_at = datetime.now(timezone.utc)
        logger.info(
            "consumer.started",
            stream=self.stream,
            channel=self.channel,
            cursor=self._cursor,
        )

        try:
            while self._running:
                try:
                    entries = await self.log.read_after(
                        self.stream,
                        self._cursor,
                        count=self.batch_size,
                        block_ms=0,
                    )
                except TransportError as e:
                    self.health.read_errors += 1
                    self.health.last_error = str(e)
                    logger.warning(
                        "consumer.read_failed",
                        error=str(e),
                        cursor=self._cursor,
                        retry_in=self.retry_delay,
                    )
                    await asyncio.sleep(self.retry_delay)
                    continue

                self.health.last_read_at = datetime.now(timezone.utc)
                await self._relay_batch(entries)
        finally:
            self._running = False
            logger.info("consumer.stopped", cursor=self._cursor, **self._counters())

    async def _relay_batch(self, entries: list[LogEntry]) -> None:
        for entry in entries:
            self._cursor = entry.id
            self.health.last_entry_id = entry.id
            self.health.entries_read += 1

            payload = self._decode(entry)
            if payload is None:
                continue

            try:
                await self.log.publish(self.channel, payload)
            except TransportError as e:
                # Cursor is already past this entry; the rest of the batch is re-read.
                self.health.publish_errors += 1
                self.health.last_error = str(e)
                logger.warning(
                    "consumer.publish_failed",
                    entry_id=entry.id,
                    error=str(e),
                    retry_in=self.retry_delay,
                )
                await asyncio.sleep(self.retry_delay)
                return

            self.health.published += 1

    def _decode(self, entry: LogEntry) -> Optional[str]:
        """Decode and re-encode one entry; None means the entry is dropped."""
        raw = entry.fields.get(self.field)
        if raw is None:
            return self._drop(entry, "missing_field")
        if isinstance(raw, bytes):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError as e:
                return self._drop(entry, f"invalid utf-8: {e}")
        try:
            return encode_vote(decode_vote(raw))
        except DecodeError as e:
            return self._drop(entry, str(e))

    def _drop(self, entry: LogEntry, reason: str) -> None:
        self.health.dropped += 1
        logger.debug("consumer.entry_dropped", entry_id=entry.id, reason=reason)

    def _counters(self) -> dict:
        return {
            "entries_read": self.health.entries_read,
            "published": self.health.published,
            "dropped": self.health.dropped,
        }

    def stop(self) -> None:
        """Signal the consumer to stop after the current read returns.

        The XREAD blocks indefinitely, so callers also cancel the task.
        """
        self._running = False
        logger.info("consumer.stopping", cursor=self._cursor)
