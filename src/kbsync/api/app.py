"""FastAPI app factory con lifespan para el pool de content assets y migraciones."""

from __future__ import annotations

import os
import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from kbsync import __version__
from kbsync.config import get_settings
from kbsync.content import PostgresContentSource
from kbsync.database import close_pool, create_pool, run_migrations

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Inicializa pool + migraciones al arrancar; cierra al parar."""
    settings = get_settings()
    pool = await create_pool(settings)
    await run_migrations(pool)
    app.state.pool = pool
    app.state.settings = settings
    app.state.content_source = PostgresContentSource(pool)
    logger.info("app_started", version=__version__, site_id=settings.site_id)
    yield
    await close_pool()
    logger.info("app_stopped")


def create_app() -> FastAPI:
    """Factory que crea la app FastAPI con todos los routers."""
    app = FastAPI(
        title="kbsync",
        description="Exportación de content assets a artículos de Salesforce Knowledge",
        version=__version__,
        lifespan=lifespan,
    )

    # --- CORS ---
    allowed_origins = os.getenv("KBSYNC_CORS_ORIGINS", "*").split(",")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Middleware: request_id + timing ---
    @app.middleware("http")
    async def request_logging(request: Request, call_next):
        request_id = str(uuid.uuid4())[:8]
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        t0 = time.time()
        response: Response = await call_next(request)
        duration_ms = round((time.time() - t0) * 1000, 1)

        logger.info(
            "request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=duration_ms,
        )
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Duration-Ms"] = str(duration_ms)
        return response

    # --- Routers ---
    from kbsync.api.routes.health import router as health_router
    from kbsync.api.routes.sync import router as sync_router

    app.include_router(health_router, tags=["health"])
    app.include_router(sync_router, tags=["export"])

    @app.get("/", include_in_schema=False)
    async def root():
        return {"service": "kbsync", "version": __version__, "docs": "/docs"}

    return app
