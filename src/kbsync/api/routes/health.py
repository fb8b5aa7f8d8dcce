"""Endpoint de health check."""

from __future__ import annotations

import asyncpg
import structlog
from fastapi import APIRouter, Request

from kbsync import __version__
from kbsync.api.schemas import HealthResponse

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    """Retorna el estado del servicio y la conexión a Postgres."""
    pool = request.app.state.pool
    db_ok = False

    try:
        async with pool.acquire() as conn:
            await conn.fetchval("SELECT 1")
        db_ok = True
    except (OSError, asyncpg.PostgresError) as exc:
        logger.warning("health_db_unreachable", error=str(exc))

    return HealthResponse(
        status="ok" if db_ok else "degraded",
        db_connected=db_ok,
        version=__version__,
    )
