"""Election Relay CLI: run the server, push a test vote, check health.

Usage:
    election-relay serve                      # Run the relay + dashboard on :8090
    election-relay emit 7 42                  # Append {"polling_unit_id":7,"votes":42} to the stream
    election-relay status                     # Print /health from a running server
"""

from __future__ import annotations

import asyncio
import json
import os
import sys

import click
import httpx

from election_relay.config import settings
from election_relay.logs import configure_logging
from election_relay.relay import TransportError, VoteEvent, VoteLog, encode_vote

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = f"http://localhost:{settings.port}"


def _api_url() -> str:
    return os.environ.get("ELECTION_RELAY_API_URL", DEFAULT_API_URL).rstrip("/")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _append_vote(redis_url: str, stream: str, field: str, event: VoteEvent) -> str:
    vote_log = VoteLog.from_url(redis_url)
    try:
        return await vote_log.append(stream, {field: encode_vote(event)})
    finally:
        await vote_log.close()


async def _fetch_health() -> dict:
    async with httpx.AsyncClient(base_url=_api_url(), timeout=10.0) as client:
        resp = await client.get("/health")
        resp.raise_for_status()
        return resp.json()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@click.group()
def cli() -> None:
    """Election Relay: live polling-unit vote counts over server-sent events."""


@cli.command()
@click.option("--host", default=settings.host, show_default=True)
@click.option("--port", default=settings.port, show_default=True, type=int)
@click.option("--reload", is_flag=True, help="Reload on code changes (development).")
def serve(host: str, port: int, reload: bool) -> None:
    """Run the relay and dashboard under uvicorn."""
    import uvicorn

    configure_logging(settings.log_level, settings.log_json)
    uvicorn.run(
        "election_relay.main:app",
        host=host,
        port=port,
        reload=reload,
        timeout_graceful_shutdown=5,
    )


@cli.command()
@click.argument("polling_unit_id", type=int)
@click.argument("votes", type=int)
@click.option("--redis-url", default=settings.redis_url, show_default=True)
@click.option("--stream", default=settings.vote_stream, show_default=True)
def emit(polling_unit_id: int, votes: int, redis_url: str, stream: str) -> None:
    """Append one vote entry to the stream."""
    event = VoteEvent(polling_unit_id=polling_unit_id, votes=votes)
    try:
        entry_id = asyncio.run(_append_vote(redis_url, stream, settings.vote_field, event))
    except TransportError as e:
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(1)
    click.echo(f"{entry_id} {encode_vote(event)}")


@cli.command()
def status() -> None:
    """Show health of a running relay."""
    try:
        data = asyncio.run(_fetch_health())
    except httpx.HTTPError as e:
        click.secho(f"Error: cannot reach {_api_url()}: {e}", fg="red", err=True)
        sys.exit(1)

    color = "green" if data.get("status") == "healthy" else "yellow"
    click.secho(data.get("status", "unknown"), fg=color, bold=True)
    click.echo(json.dumps(data, indent=2, default=str))


if __name__ == "__main__":
    cli()
