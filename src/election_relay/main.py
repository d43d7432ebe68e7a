"""FastAPI application factory.

Learn: App factory pattern: create_app() returns a configured FastAPI
instance. Lifespan owns the Redis handle and the stream consumer task:
- startup: connect, PING (a dead Redis aborts startup), start the consumer
- shutdown: stop and cancel the consumer, close the Redis client

SIGINT/SIGTERM handling is uvicorn's; it runs the shutdown half of the
lifespan before exiting.
"""

import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from election_relay import __version__
from election_relay.api import api_router
from election_relay.config import settings
from election_relay.logs import configure_logging
from election_relay.relay import StreamConsumer, TransportError, VoteLog

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    configure_logging(settings.log_level, settings.log_json)
    logger.info(
        "election_relay.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    vote_log = VoteLog.from_url(settings.redis_url)
    try:
        await vote_log.ping()
    except TransportError:
        logger.error("election_relay.redis_unavailable", url=settings.redis_url)
        await vote_log.close()
        raise
    logger.info("election_relay.redis_connected", url=settings.redis_url)

    consumer = StreamConsumer(
        vote_log,
        stream=settings.vote_stream,
        channel=settings.vote_channel,
        field=settings.vote_field,
        batch_size=settings.read_batch_size,
        retry_delay=settings.read_retry_seconds,
    )
    consumer_task = asyncio.create_task(consumer.run_loop())

    app.state.vote_log = vote_log
    app.state.consumer = consumer
    app.state.consumer_task = consumer_task

    yield

    # Shutdown
    logger.info("election_relay.shutdown")

    consumer.stop()
    consumer_task.cancel()
    try:
        await consumer_task
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.error("election_relay.consumer_crashed", error=str(e), exc_info=True)
    finally:
        await vote_log.close()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="Election Relay",
        description="Live polling-unit vote counts pushed to the dashboard over server-sent events",
        version=__version__,
        lifespan=lifespan,
    )

    app.include_router(api_router)
    app.mount("/static", StaticFiles(directory=str(settings.static_dir)), name="static")

    return app


# Default app instance (used by uvicorn: election_relay.main:app)
app = create_app()
