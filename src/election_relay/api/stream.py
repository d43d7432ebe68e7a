"""Vote event stream: GET /vote-events as server-sent events.

Learn: EventStreamResponse drives a FanoutBroadcaster directly from the
ASGI callable:
- each frame is its own http.response.body message (more_body=True),
  so the server flushes it immediately
- the viewer going away is the ASGI http.disconnect message, awaited
  on receive(), so no polling is needed

The response never sets Content-Length; the body ends when the viewer or
the channel does.
"""

from typing import Any, Awaitable, Callable

import structlog
from fastapi import APIRouter, Depends
from starlette.responses import Response

from election_relay.api.deps import get_vote_log
from election_relay.config import settings
from election_relay.relay import FanoutBroadcaster, TransportError, VoteLog

logger = structlog.get_logger()
router = APIRouter()

Message = dict[str, Any]

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # nginx: do not buffer the stream
}


class EventStreamResponse(Response):
    """text/event-stream response fed by one FanoutBroadcaster."""

    media_type = "text/event-stream"

    def __init__(self, broadcaster: FanoutBroadcaster, headers: dict[str, str] | None = None):
        self.broadcaster = broadcaster
        self.status_code = 200
        self.background = None
        self.init_headers({**STREAM_HEADERS, **(headers or {})})

    async def __call__(
        self,
        scope: dict,
        receive: Callable[[], Awaitable[Message]],
        send: Callable[[Message], Awaitable[None]],
    ) -> None:
        await send({
            "type": "http.response.start",
            "status": self.status_code,
            "headers": self.raw_headers,
        })

        async def write(frame: str) -> None:
            await send({
                "type": "http.response.body",
                "body": frame.encode("utf-8"),
                "more_body": True,
            })

        async def closed() -> None:
            while True:
                message = await receive()
                if message["type"] == "http.disconnect":
                    return

        try:
            await self.broadcaster.attach(write, closed)
        except TransportError as e:
            logger.warning("viewer.subscribe_failed", error=str(e))

        try:
            await send({"type": "http.response.body", "body": b"", "more_body": False})
        except OSError:
            pass  # viewer already gone

        if self.background is not None:
            await self.background()


@router.get("/vote-events")
async def vote_events(vote_log: VoteLog = Depends(get_vote_log)):
    """Live vote deltas, one `data: {...}` frame per event, until the viewer leaves."""
    broadcaster = FanoutBroadcaster(vote_log, channel=settings.vote_channel)
    return EventStreamResponse(broadcaster)
