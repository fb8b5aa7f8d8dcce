"""Corrida de exportación: config del sitio, listado, auth, campos y lotes de artículos."""

from __future__ import annotations

import datetime
import time

import httpx
import structlog

from kbsync.config import Settings
from kbsync.content import ContentSource
from kbsync.exceptions import (
    AuthenticationError,
    ConfigurationError,
    FieldProvisioningError,
    RecordTypeLookupError,
)
from kbsync.models import BatchResult, RunResult, RunStatus, SourceRecord
from kbsync.salesforce.auth import OAuthTokenProvider, validate_auth_configuration
from kbsync.salesforce.client import KnowledgeApiClient
from kbsync.salesforce.fields import ToolingFieldProvisioner, ensure_mapped_fields_exist
from kbsync.salesforce.record_types import get_record_type_id
from kbsync.site_config import (
    EffectiveConfig,
    log_effective_configuration,
    resolve_effective_config,
)
from kbsync.sync.articles import export_batch
from kbsync.sync.batches import run_batches
from kbsync.sync.context import RunContext
from kbsync.sync.delta import filter_records

logger = structlog.get_logger(__name__)


class ExportSink:
    """BatchSink que exporta un lote y guarda la metadata de sync de cada éxito."""

    def __init__(
        self,
        client: KnowledgeApiClient,
        config: EffectiveConfig,
        content_source: ContentSource,
        *,
        record_type_id: str | None,
        language: str,
    ) -> None:
        self._client = client
        self._config = config
        self._content = content_source
        self._record_type_id = record_type_id
        self._language = language
        self.metadata_updates = 0
        self.metadata_errors = 0

    async def __call__(self, batch: list[SourceRecord]) -> BatchResult:
        result = await export_batch(
            self._client,
            batch,
            self._config,
            record_type_id=self._record_type_id,
            language=self._language,
        )

        for detail in result.details:
            if not (detail.success and detail.master_id and detail.version_id):
                continue
            try:
                update = await self._content.persist_sync_metadata(
                    detail.content_id,
                    detail.master_id,
                    detail.version_id,
                    datetime.datetime.now(datetime.timezone.utc),
                )
            except Exception as exc:
                # El artículo ya quedó escrito en la org; solo se pierde la metadata local
                self.metadata_errors += 1
                logger.warning("sync_metadata_not_saved", content_id=detail.content_id, error=str(exc))
                continue
            if update.success:
                self.metadata_updates += 1
            else:
                self.metadata_errors += 1
                logger.warning("sync_metadata_not_saved", content_id=detail.content_id, error=update.error)
        return result


def _overall_status(total_success: int, total_failed: int, total_processed: int) -> tuple[RunStatus, str]:
    if total_success == 0 and total_failed > 0:
        return RunStatus.FAILED, f"All exports failed. Processed: {total_processed}"
    if total_failed > 0:
        return RunStatus.PARTIAL, f"Partial success. Success: {total_success}, Failed: {total_failed}"
    return RunStatus.SUCCESS, f"Success. Exported: {total_success} articles"


async def _list_candidates(content_source: ContentSource, config: EffectiveConfig) -> list[SourceRecord]:
    records = await content_source.list_records(config.content_folder_ids, recursive=True)
    return filter_records(records, config.export_mode)


async def count_export_candidates(
    settings: Settings,
    content_source: ContentSource,
    *,
    site_id: str | None = None,
    site_configurations: str | None = None,
) -> int:
    """Cuántos content assets exportaría una corrida ahora; 0 si la config es inválida."""
    site_id = site_id or settings.site_id
    raw = site_configurations if site_configurations is not None else settings.site_configurations
    try:
        config = resolve_effective_config(raw, site_id)
    except ConfigurationError:
        return 0
    return len(await _list_candidates(content_source, config))


async def run_export(
    settings: Settings,
    content_source: ContentSource,
    *,
    site_id: str | None = None,
    site_configurations: str | None = None,
    http: httpx.AsyncClient | None = None,
) -> RunResult:
    """Ejecuta una corrida completa de exportación para un sitio.

    Args:
        settings: Credenciales OAuth y valores por defecto.
        content_source: Origen de los content assets.
        site_id: Sitio a exportar; por defecto ``settings.site_id``.
        site_configurations: JSON multi-sitio; por defecto el de settings.
        http: Cliente httpx a reutilizar. Si no se pasa se crea uno para la corrida.

    Los errores de configuración, autenticación, record type y campos abortan la
    corrida con ``status=error``; los fallos por registro solo se cuentan.
    """
    t0 = time.time()
    site_id = site_id or settings.site_id
    raw = site_configurations if site_configurations is not None else settings.site_configurations
    log = logger.bind(site_id=site_id)

    def finish(result: RunResult) -> RunResult:
        result.duration_seconds = round(time.time() - t0, 2)
        return result

    auth_report = validate_auth_configuration(settings)
    for warning in auth_report.warnings:
        log.warning("auth_config_warning", warning=warning)
    if not auth_report.valid:
        log.error("auth_config_invalid", errors=auth_report.errors)
        return finish(
            RunResult(
                status=RunStatus.ERROR,
                message="Invalid configuration: " + ", ".join(auth_report.errors),
                site_id=site_id,
                errors=auth_report.errors,
            )
        )

    try:
        config = resolve_effective_config(raw, site_id)
    except ConfigurationError as exc:
        return finish(
            RunResult(
                status=RunStatus.ERROR,
                message=str(exc),
                site_id=site_id,
                errors=exc.errors or [str(exc)],
            )
        )
    log_effective_configuration(config, site_id)

    try:
        records = await _list_candidates(content_source, config)
    except Exception as exc:
        log.error("content_listing_failed", error=str(exc))
        return finish(
            RunResult(
                status=RunStatus.ERROR,
                message=f"Content listing failed: {exc}",
                site_id=site_id,
                export_mode=str(config.export_mode),
                errors=[str(exc)],
            )
        )
    if not records:
        log.warning("export_nothing_to_do")
        return finish(
            RunResult(
                status=RunStatus.NO_CONTENT,
                message="No content assets found",
                site_id=site_id,
                export_mode=str(config.export_mode),
            )
        )

    owns_http = http is None
    if http is None:
        http = httpx.AsyncClient(timeout=settings.sf_timeout_seconds)
    ctx = RunContext(service_id=settings.sf_service_id, tokens=OAuthTokenProvider(settings, http))
    log = log.bind(run_id=ctx.run_id)
    log.info("export_run_started", records=len(records), mode=str(config.export_mode))

    try:
        auth = await ctx.get_token()
        if not auth.success:
            raise AuthenticationError(f"Authentication failed: {auth.error}")

        client = KnowledgeApiClient(
            http, ctx, api_version=settings.sf_api_version, debug=config.enable_debug_logging
        )
        record_type_id = await get_record_type_id(
            client, ctx, config.record_type_name, config.article_type
        )

        fields = await ensure_mapped_fields_exist(
            ToolingFieldProvisioner(client, ctx),
            config.article_type,
            config.field_mapping,
            static_fields=config.static_fields,
            field_metadata=config.field_metadata,
            auto_create=config.auto_create_fields,
        )
        if not fields.ready:
            failed = [f"{e['field']}: {e['error']}" for e in fields.errors]
            if config.auto_create_fields:
                raise FieldProvisioningError(
                    "Field validation failed: " + ", ".join(e["field"] for e in fields.errors),
                    errors=failed,
                )
            log.warning("fields_not_ready", errors=failed)

        sink = ExportSink(
            client,
            config,
            content_source,
            record_type_id=record_type_id,
            language=settings.article_language,
        )
        export = await run_batches(records, config.batch_size, sink)
    except (AuthenticationError, RecordTypeLookupError, FieldProvisioningError) as exc:
        log.error("export_run_aborted", error=str(exc))
        errors = getattr(exc, "errors", None) or [str(exc)]
        return finish(
            RunResult(
                status=RunStatus.ERROR,
                message=str(exc),
                site_id=site_id,
                export_mode=str(config.export_mode),
                total_records=len(records),
                errors=errors,
            )
        )
    finally:
        ctx.close()
        if owns_http:
            await http.aclose()

    status, message = _overall_status(export.total_success, export.total_failed, export.total_processed)
    result = finish(
        RunResult(
            status=status,
            message=message,
            site_id=site_id,
            export_mode=str(config.export_mode),
            total_records=len(records),
            total_processed=export.total_processed,
            total_success=export.total_success,
            total_failed=export.total_failed,
            metadata_updates=sink.metadata_updates,
            metadata_errors=sink.metadata_errors,
            details=export.details,
            errors=[f"batch {e['batch']}: {e['error']}" for e in export.errors],
        )
    )
    log.info(
        "export_run_complete",
        status=str(status),
        processed=result.total_processed,
        success=result.total_success,
        failed=result.total_failed,
        metadata_updates=result.metadata_updates,
        metadata_errors=result.metadata_errors,
        duration=result.duration_seconds,
    )
    return result
