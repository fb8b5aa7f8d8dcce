"""Filtro incremental: decide si un content asset cambió desde su último sync."""

from __future__ import annotations

import datetime
from collections.abc import Iterable

import structlog

from kbsync.models import ExportMode, SourceRecord

logger = structlog.get_logger(__name__)


def _aware(ts: datetime.datetime) -> datetime.datetime:
    # Timestamps sin zona se interpretan como UTC.
    if ts.tzinfo is None:
        return ts.replace(tzinfo=datetime.timezone.utc)
    return ts


def include(record: SourceRecord, mode: ExportMode | str) -> bool:
    """True si el registro debe exportarse en el modo dado.

    En ``delta`` se exporta si nunca se sincronizó o si ``last_modified`` es
    estrictamente posterior a ``last_sync_time``.
    """
    if ExportMode(mode) is ExportMode.FULL:
        return True
    if record.last_sync_time is None or record.last_modified is None:
        return True
    return _aware(record.last_modified) > _aware(record.last_sync_time)


def filter_records(records: Iterable[SourceRecord], mode: ExportMode | str) -> list[SourceRecord]:
    selected: list[SourceRecord] = []
    skipped = 0
    for record in records:
        if include(record, mode):
            selected.append(record)
        else:
            skipped += 1
            logger.debug(
                "delta_skip",
                content_id=record.id,
                last_modified=record.last_modified,
                last_sync=record.last_sync_time,
            )

    logger.info("delta_filter", mode=str(mode), selected=len(selected), skipped=skipped)
    return selected
