"""HTTP route aggregation.

All routers registered here get mounted in main.py. There is no auth:
the dashboard and its event stream are public, read-only views.
"""

from fastapi import APIRouter

from election_relay.api.dashboard import router as dashboard_router
from election_relay.api.health import router as health_router
from election_relay.api.stream import router as stream_router

api_router = APIRouter()

api_router.include_router(health_router, tags=["health"])
api_router.include_router(stream_router, tags=["stream"])
api_router.include_router(dashboard_router, tags=["dashboard"])
