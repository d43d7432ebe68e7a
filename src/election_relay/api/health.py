"""Health check endpoint.

Learn: Reports whether the server is up, whether Redis answers a PING, and
how the stream consumer is doing (last successful read, error counts).
A consumer stuck in its retry loop shows up here as growing read_errors
and a stale last_read_at.
"""

from typing import Optional

from fastapi import APIRouter, Depends

from election_relay import __version__
from election_relay.api.deps import get_consumer, get_vote_log
from election_relay.relay import StreamConsumer, TransportError, VoteLog

router = APIRouter()


@router.get("/health")
async def health_check(
    vote_log: VoteLog = Depends(get_vote_log),
    consumer: Optional[StreamConsumer] = Depends(get_consumer),
):
    """Check server health, Redis connectivity, and consumer progress."""
    checks = {"server": "ok", "version": __version__}

    try:
        await vote_log.ping()
        checks["redis"] = "ok"
    except TransportError as e:
        checks["redis"] = f"error: {e}"

    if consumer is None:
        checks["consumer"] = "not started"
    elif consumer.running:
        checks["consumer"] = "ok"
    else:
        checks["consumer"] = "stopped"

    status = "healthy" if all(
        v == "ok" for k, v in checks.items() if k != "version"
    ) else "degraded"

    return {
        "status": status,
        **checks,
        "consumer_stats": consumer.health.snapshot() if consumer else None,
        "cursor": consumer.cursor if consumer else None,
    }
