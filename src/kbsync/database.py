"""Pool de conexiones asyncpg hacia el Postgres de content assets."""

from __future__ import annotations

import json
import pathlib
import ssl as _ssl
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

import asyncpg
import structlog

from kbsync.config import Settings

logger = structlog.get_logger(__name__)

_pool: asyncpg.Pool | None = None

MIGRATIONS_DIR = pathlib.Path(__file__).resolve().parent.parent.parent / "db" / "migrations"

_ASYNCPG_UNSUPPORTED_PARAMS = {"sslmode", "channel_binding"}


def _needs_ssl(dsn: str) -> bool:
    return "sslmode=require" in dsn or "sslmode=verify-full" in dsn


def _clean_dsn(dsn: str) -> str:
    """Quita del query string los parámetros que asyncpg no reconoce.

    asyncpg configura TLS con su argumento ``ssl``, no por la URL.
    """
    if dsn.startswith("postgresql+asyncpg://"):
        dsn = dsn.replace("postgresql+asyncpg://", "postgresql://", 1)

    parsed = urlparse(dsn)
    params = parse_qs(parsed.query)
    kept = {k: v for k, v in params.items() if k not in _ASYNCPG_UNSUPPORTED_PARAMS}
    return urlunparse(parsed._replace(query=urlencode(kept, doseq=True)))


async def _init_connection(conn: asyncpg.Connection) -> None:
    # La columna custom es JSONB; se lee y escribe como dict.
    await conn.set_type_codec("jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog")


async def create_pool(settings: Settings) -> asyncpg.Pool:
    """Crea y devuelve el pool global de conexiones."""
    global _pool

    raw_dsn = settings.database_url
    ssl: _ssl.SSLContext | bool = _ssl.create_default_context() if _needs_ssl(raw_dsn) else False
    dsn = _clean_dsn(raw_dsn)

    _pool = await asyncpg.create_pool(
        dsn=dsn,
        min_size=1,
        max_size=5,
        ssl=ssl,
        init=_init_connection,
    )
    logger.info("pool_created", host=urlparse(dsn).hostname)
    return _pool


async def close_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("pool_closed")


def get_pool() -> asyncpg.Pool:
    """Devuelve el pool activo o falla rápido."""
    if _pool is None:
        raise RuntimeError("El pool de DB no está inicializado. Llama a create_pool primero.")
    return _pool


async def run_migrations(pool: asyncpg.Pool) -> None:
    """Aplica en orden las migraciones SQL que aún no estén registradas."""
    migration_files = sorted(MIGRATIONS_DIR.glob("*.sql"))
    applied_now = 0
    async with pool.acquire() as conn:
        await conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_migrations ("
            "name TEXT PRIMARY KEY, applied_at TIMESTAMPTZ NOT NULL DEFAULT now())"
        )
        applied = {row["name"] for row in await conn.fetch("SELECT name FROM schema_migrations")}

        for mig in migration_files:
            if mig.name in applied:
                continue
            logger.info("migration_running", file=mig.name)
            async with conn.transaction():
                await conn.execute(mig.read_text())
                await conn.execute("INSERT INTO schema_migrations (name) VALUES ($1)", mig.name)
            applied_now += 1
    logger.info("migrations_complete", applied=applied_now, total=len(migration_files))
