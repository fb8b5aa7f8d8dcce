"""Repositorio de content assets en Postgres: listado por carpeta y metadata de sync."""

from __future__ import annotations

import datetime
from collections.abc import Sequence
from typing import Protocol

import asyncpg
import structlog

from kbsync.models import MetadataUpdate, SourceRecord

logger = structlog.get_logger(__name__)

ROOT_FOLDER = "root"

_ASSET_COLUMNS = """
    a.id, a.name, a.description, a.page_title, a.page_description, a.page_keywords,
    a.page_url, a.template, a.classification_folder, a.custom, a.online,
    a.creation_date, a.last_modified, a.sync_article_id, a.sync_version_id, a.last_sync_time
"""

_ALL_ONLINE_SQL = f"""
    SELECT {_ASSET_COLUMNS}
    FROM content_assets a
    WHERE a.online
    ORDER BY a.creation_date, a.id
"""

# $2 controla si se desciende a las subcarpetas.
_FOLDER_SQL = f"""
    WITH RECURSIVE tree AS (
        SELECT id, 0 AS depth FROM content_folders WHERE id = $1
        UNION ALL
        SELECT f.id, t.depth + 1
        FROM content_folders f
        JOIN tree t ON f.parent_id = t.id
        WHERE $2::boolean
    )
    SELECT {_ASSET_COLUMNS}
    FROM content_assets a
    JOIN content_folder_assignments fa ON fa.content_id = a.id
    JOIN tree t ON t.id = fa.folder_id
    WHERE a.online
    ORDER BY t.depth, fa.folder_id, fa.position, a.id
"""


class ContentSource(Protocol):
    """Colaborador que entrega content assets online y persiste su estado de sync."""

    async def list_records(
        self, folder_ids: Sequence[str], recursive: bool = True
    ) -> list[SourceRecord]: ...

    async def persist_sync_metadata(
        self,
        content_id: str,
        master_id: str,
        version_id: str,
        timestamp: datetime.datetime,
    ) -> MetadataUpdate: ...


def _row_to_record(row: asyncpg.Record) -> SourceRecord:
    return SourceRecord(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        page_title=row["page_title"],
        page_description=row["page_description"],
        page_keywords=row["page_keywords"],
        page_url=row["page_url"],
        template=row["template"],
        classification_folder=row["classification_folder"],
        custom=row["custom"] or {},
        online=row["online"],
        creation_date=row["creation_date"],
        last_modified=row["last_modified"],
        sync_article_id=row["sync_article_id"],
        sync_version_id=row["sync_version_id"],
        last_sync_time=row["last_sync_time"],
    )


class PostgresContentSource:
    """ContentSource sobre las tablas ``content_assets`` y ``content_folders``."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def list_records(
        self, folder_ids: Sequence[str], recursive: bool = True
    ) -> list[SourceRecord]:
        """Content assets online de las carpetas dadas, sin duplicados y en orden.

        ``root`` equivale a todo el repositorio.
        """
        records: list[SourceRecord] = []
        seen: set[str] = set()

        async with self._pool.acquire() as conn:
            for folder_id in folder_ids:
                folder = (folder_id or ROOT_FOLDER).strip()
                if folder.lower() == ROOT_FOLDER:
                    rows = await conn.fetch(_ALL_ONLINE_SQL)
                else:
                    rows = await conn.fetch(_FOLDER_SQL, folder, recursive)

                added = 0
                for row in rows:
                    if row["id"] in seen:
                        continue
                    seen.add(row["id"])
                    records.append(_row_to_record(row))
                    added += 1
                logger.info("folder_listed", folder=folder, found=len(rows), added=added)

        logger.info("content_listed", folders=list(folder_ids), total=len(records))
        return records

    async def persist_sync_metadata(
        self,
        content_id: str,
        master_id: str,
        version_id: str,
        timestamp: datetime.datetime,
    ) -> MetadataUpdate:
        """Guarda ids remotos y hora de sync de un content asset en una transacción."""
        try:
            async with self._pool.acquire() as conn:
                async with conn.transaction():
                    status = await conn.execute(
                        """
                        UPDATE content_assets
                        SET sync_article_id = $2, sync_version_id = $3, last_sync_time = $4
                        WHERE id = $1
                        """,
                        content_id,
                        master_id,
                        version_id,
                        timestamp,
                    )
        except asyncpg.PostgresError as exc:
            logger.warning("sync_metadata_failed", content_id=content_id, error=str(exc))
            return MetadataUpdate(success=False, error=str(exc))

        if status == "UPDATE 0":
            return MetadataUpdate(success=False, error=f"Content asset not found: {content_id}")
        return MetadataUpdate(success=True)
