"""
OrgTrack Backend — Health Check Route
======================================

What:  Liveness/readiness probe for Docker and load balancers.
How:   Runs SELECT 1 against the database and reports aggregate status.
When:  Polled every 10-30 seconds. Lives outside the API prefix, so it is
       never rate limited and the access log skips it.

Status levels:
    healthy:    database reachable
    unhealthy:  database unreachable (still HTTP 200; the body says why)
"""

import logging
import time

from fastapi import APIRouter
from sqlalchemy import text

from app import __version__
from app.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


async def check_database() -> bool:
    from app.database import engine

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("Health check: database unreachable: %s", str(e))
        return False
    return True


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check() -> HealthResponse:
    db_ok = await check_database()
    return HealthResponse(
        status="healthy" if db_ok else "unhealthy",
        version=__version__,
        database="connected" if db_ok else "disconnected",
        uptime_seconds=round(time.time() - _start_time, 2),
    )
