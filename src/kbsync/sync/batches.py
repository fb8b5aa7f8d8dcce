"""Orquestador de lotes: particiona los registros y agrega resultados por corrida."""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import Protocol

import structlog

from kbsync.exceptions import AuthenticationError
from kbsync.models import BatchResult, ExportResult, SourceRecord

logger = structlog.get_logger(__name__)


class BatchSink(Protocol):
    """Destino que exporta un lote completo; se espera en orden, un lote a la vez."""

    async def __call__(self, batch: list[SourceRecord]) -> BatchResult: ...


def partition(records: Sequence[SourceRecord], batch_size: int) -> list[list[SourceRecord]]:
    """Divide en ceil(n / batch_size) lotes contiguos, respetando el orden."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")
    total = math.ceil(len(records) / batch_size)
    return [list(records[i * batch_size : (i + 1) * batch_size]) for i in range(total)]


async def run_batches(
    records: Sequence[SourceRecord], batch_size: int, sink: BatchSink
) -> ExportResult:
    """Ejecuta ``sink`` sobre cada lote y acumula totales.

    Una excepción del sink marca el lote entero como fallido y se sigue con el
    siguiente. Los errores de autenticación se propagan y abortan la corrida.
    """
    result = ExportResult()
    if not records:
        logger.warning("export_no_records")
        return result

    batches = partition(records, batch_size)
    logger.info("export_started", records=len(records), batches=len(batches), batch_size=batch_size)

    for index, batch in enumerate(batches, start=1):
        try:
            batch_result = await sink(batch)
        except AuthenticationError:
            raise
        except Exception as exc:
            result.total_processed += len(batch)
            result.total_failed += len(batch)
            result.errors.append({"batch": index, "error": str(exc)})
            logger.error("batch_exception", batch=index, error=str(exc))
            continue

        result.total_processed += len(batch)
        result.details.extend(batch_result.details)
        if batch_result.success:
            result.total_success += batch_result.success_count
            result.total_failed += batch_result.failure_count
            logger.info(
                "batch_complete",
                batch=index,
                total=len(batches),
                success=batch_result.success_count,
                failed=batch_result.failure_count,
            )
        else:
            result.total_failed += len(batch)
            result.errors.append({"batch": index, "error": batch_result.error or "Unknown error"})
            logger.error("batch_failed", batch=index, error=batch_result.error)

    logger.info(
        "export_complete",
        processed=result.total_processed,
        success=result.total_success,
        failed=result.total_failed,
    )
    return result
