"""Endpoints de exportación a Knowledge."""

from __future__ import annotations

from fastapi import APIRouter, Request

from kbsync.api.schemas import CandidatesResponse, SyncRequest, SyncResponse, SyncResultItem
from kbsync.sync.job import count_export_candidates, run_export

router = APIRouter()


@router.post("/sync", response_model=SyncResponse)
async def sync(body: SyncRequest, request: Request) -> SyncResponse:
    """Corre una exportación completa del sitio: delta o full según su configuración."""
    settings = request.app.state.settings

    result = await run_export(
        settings,
        request.app.state.content_source,
        site_id=body.site_id,
        site_configurations=body.site_configurations,
    )

    return SyncResponse(
        status=str(result.status),
        message=result.message,
        site_id=result.site_id,
        export_mode=result.export_mode,
        total_records=result.total_records,
        total_processed=result.total_processed,
        total_success=result.total_success,
        total_failed=result.total_failed,
        metadata_updates=result.metadata_updates,
        metadata_errors=result.metadata_errors,
        duration_seconds=result.duration_seconds,
        details=[
            SyncResultItem(
                content_id=d.content_id,
                success=d.success,
                master_id=d.master_id,
                version_id=d.version_id,
                operation=str(d.operation) if d.operation else None,
                outcome=str(d.outcome),
                publish_status=str(d.publish_status) if d.publish_status else None,
                error=d.error,
                warning=d.warning,
            )
            for d in result.details
        ],
        errors=result.errors,
    )


@router.get("/sync/candidates", response_model=CandidatesResponse)
async def candidates(request: Request, site_id: str | None = None) -> CandidatesResponse:
    """Cuántos content assets exportaría ahora una corrida del sitio."""
    settings = request.app.state.settings
    site_id = site_id or settings.site_id
    total = await count_export_candidates(
        settings, request.app.state.content_source, site_id=site_id
    )
    return CandidatesResponse(site_id=site_id, total=total)
