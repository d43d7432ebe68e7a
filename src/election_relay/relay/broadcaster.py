"""Fan-out broadcaster: one per connected viewer, channel -> SSE frames.

Learn: Each viewer gets its own Redis subscription. The loop races two
waits and the first one to finish wins:
1. the next message on the subscription
2. the viewer going away (closed() returns)

That race is what keeps a broadcaster from outliving its viewer. A write
that fails because the peer is gone also ends the loop. Every exit path
releases the subscription.

Ordering: Redis delivers a channel's messages to each subscriber in PUBLISH
order, and the consumer publishes in stream order, so every viewer sees log
order. Viewers are independent; nothing synchronizes them with each other.
See election_relay.relay.transport for what happens to slow viewers.
"""

import asyncio
import uuid
from typing import Awaitable, Callable

import structlog

from election_relay.relay.events import format_frame
from election_relay.relay.transport import TransportError, VoteLog

logger = structlog.get_logger()

FrameWriter = Callable[[str], Awaitable[None]]
CloseSignal = Callable[[], Awaitable[None]]


async def _cancel(task: asyncio.Task) -> None:
    """Cancel and reap a helper task, marking a finished task's error as retrieved."""
    if task.done():
        if not task.cancelled():
            task.exception()  # mark retrieved
        return
    task.cancel()
    try:
        await task
    except (asyncio.CancelledError, TransportError):
        pass


class FanoutBroadcaster:
    """Pushes every vote on the fan-out channel to a single viewer."""

    def __init__(self, log: VoteLog, *, channel: str):
        self.log = log
        self.channel = channel
        self.viewer_id = uuid.uuid4().hex[:12]

    async def attach(self, write: FrameWriter, closed: CloseSignal) -> int:
        """Stream frames to one viewer until it disconnects or the channel closes.

        Args:
            write: sends one frame to the viewer and flushes it.
            closed: returns once the viewer's connection is gone.

        Returns:
            Number of frames delivered.
        """
        log = logger.bind(viewer_id=self.viewer_id, channel=self.channel)
        subscription = await self.log.subscribe(self.channel)
        gone = asyncio.create_task(closed())
        receive: asyncio.Task | None = None
        delivered = 0
        reason = "cancelled"
        log.info("viewer.attached")

        try:
            while True:
                receive = asyncio.create_task(subscription.receive())
                done, _ = await asyncio.wait(
                    {receive, gone},
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if gone in done:
                    reason = "disconnected"
                    if not gone.cancelled() and gone.exception() is not None:
                        log.info("viewer.close_signal_failed", error=str(gone.exception()))
                    break

                try:
                    payload = receive.result()
                except TransportError as e:
                    reason = "transport_error"
                    log.warning("viewer.receive_failed", error=str(e))
                    break
                if payload is None:
                    reason = "channel_closed"
                    break

                try:
                    await write(format_frame(payload))
                except OSError as e:
                    reason = "write_failed"
                    log.info("viewer.write_failed", error=str(e))
                    break
                delivered += 1
        finally:
            if receive is not None:
                await _cancel(receive)
            await _cancel(gone)
            await subscription.close()
            log.info("viewer.detached", reason=reason, delivered=delivered)

        return delivered
