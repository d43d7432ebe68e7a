"""Dashboard pages: the polling-unit map plus two placeholder pages.

Learn: The map page is server-rendered from the seed file with Jinja2.
Live updates arrive in the browser through /vote-events; this module
never talks to Redis.
"""

import structlog
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from election_relay.config import settings
from election_relay.seed import SeedError, load_polling_units

logger = structlog.get_logger()
router = APIRouter()

templates = Jinja2Templates(directory=str(settings.templates_dir))


@router.get("/", response_class=HTMLResponse)
@router.get("/map", response_class=HTMLResponse)
async def home(request: Request):
    """Render the polling-unit map with the current seed data."""
    try:
        units = load_polling_units(settings.seed_path)
    except SeedError as e:
        logger.error("dashboard.seed_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal Server Error")

    return templates.TemplateResponse(
        request,
        "map.html",
        {
            "title": "Polling Units Dashboard",
            "polling_units": [unit.model_dump() for unit in units],
        },
    )


@router.get("/stats/", response_class=HTMLResponse)
async def stats():
    return HTMLResponse("<h1>Stats Page - Under Construction</h1>")


@router.get("/recent", response_class=HTMLResponse)
async def recent():
    return HTMLResponse("<h1>Recent Activity Page - Under Construction</h1>")
