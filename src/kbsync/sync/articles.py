"""Máquina de estados de upsert de artículos versionados (Draft/Online/otros) y publicación."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum

import structlog

from kbsync.exceptions import AuthenticationError
from kbsync.mapping.mapper import DEFAULT_LANGUAGE, EXTERNAL_ID_FIELD, build_article_payload
from kbsync.models import (
    ArticleVersion,
    BatchResult,
    Operation,
    Outcome,
    PublishStatus,
    SourceRecord,
    SyncResult,
)
from kbsync.salesforce.client import KnowledgeApiClient, escape_soql
from kbsync.site_config import EffectiveConfig

logger = structlog.get_logger(__name__)

LOOKUP_FIELDS = f"Id, KnowledgeArticleId, Title, {EXTERNAL_ID_FIELD}, PublishStatus, VersionNumber"

# Orden de búsqueda: el remoto no permite un segundo Draft si ya existe uno.
LOOKUP_STATUSES: tuple[str | None, ...] = ("Draft", "Online", None)


class ArticleState(StrEnum):
    NOT_EXISTS = "not_exists"
    DRAFT_EXISTS = "draft_exists"
    ONLINE_EXISTS = "online_exists"
    OTHER_EXISTS = "other_exists"


@dataclass
class DeleteResult:
    success: bool
    error: str | None = None


def classify(version: ArticleVersion | None) -> ArticleState:
    if version is None:
        return ArticleState.NOT_EXISTS
    if version.publish_status == "Draft":
        return ArticleState.DRAFT_EXISTS
    if version.publish_status == "Online":
        return ArticleState.ONLINE_EXISTS
    return ArticleState.OTHER_EXISTS


def build_lookup_query(external_id: str, article_type: str, status: str | None) -> str:
    soql = (
        f"SELECT {LOOKUP_FIELDS} FROM {article_type} "
        f"WHERE {EXTERNAL_ID_FIELD} = '{escape_soql(external_id)}' "
    )
    if status:
        soql += f"AND PublishStatus = '{status}' "
    return soql + "ORDER BY VersionNumber DESC LIMIT 1"


async def find_article_by_external_id(
    client: KnowledgeApiClient, external_id: str, article_type: str
) -> ArticleVersion | None:
    """Busca la versión más reciente con ese external id: Draft, luego Online, luego cualquiera."""
    for status in LOOKUP_STATUSES:
        resp = await client.query(build_lookup_query(external_id, article_type, status))
        if not resp.success:
            logger.warning(
                "article_lookup_failed",
                external_id=external_id,
                status=status or "any",
                error=resp.error_message,
            )
            continue
        if resp.records:
            version = ArticleVersion.from_row(resp.records[0])
            logger.info(
                "article_found",
                external_id=external_id,
                version_id=version.version_id,
                master_id=version.master_id,
                publish_status=version.publish_status,
            )
            return version
    return None


async def publish_article(client: KnowledgeApiClient, version_id: str) -> str | None:
    """Publica una versión. Devuelve None si publicó, o el mensaje de error."""
    resp = await client.publish_versions([version_id])
    if not resp.success:
        return resp.error_message or "Publish failed"

    if not isinstance(resp.data, list) or not resp.data:
        return "Unexpected response structure from Actions API"

    action = resp.data[0]
    if not isinstance(action, dict):
        return "Unexpected response structure from Actions API"
    if action.get("isSuccess"):
        logger.info("article_published", version_id=version_id)
        return None
    errors = action.get("errors")
    return str(errors) if errors else "Publish failed"


async def _resolve_master_id(client: KnowledgeApiClient, article_type: str, version_id: str) -> str:
    """El create solo devuelve el id de versión; el master id se consulta aparte."""
    resp = await client.query(
        f"SELECT Id, KnowledgeArticleId FROM {article_type} WHERE Id = '{escape_soql(version_id)}'"
    )
    if resp.success and resp.records and resp.records[0].get("KnowledgeArticleId"):
        return resp.records[0]["KnowledgeArticleId"]

    logger.warning("master_id_fallback", version_id=version_id, error=resp.error_message)
    return version_id


async def _create_article(
    client: KnowledgeApiClient, payload: dict, article_type: str, content_id: str
) -> SyncResult:
    resp = await client.request("POST", f"/sobjects/{article_type}", payload)
    if not resp.success:
        logger.error("article_create_failed", content_id=content_id, error=resp.error_message)
        return SyncResult(
            content_id=content_id,
            operation=Operation.CREATE,
            error=resp.error_message or "Create failed",
        )

    version_id = resp.data["id"]
    master_id = await _resolve_master_id(client, article_type, version_id)
    logger.info("article_created", content_id=content_id, version_id=version_id, master_id=master_id)
    return SyncResult(
        content_id=content_id,
        success=True,
        master_id=master_id,
        version_id=version_id,
        operation=Operation.CREATE,
        outcome=Outcome.CREATED,
        publish_status=PublishStatus.DRAFT,
    )


async def _update_article(
    client: KnowledgeApiClient,
    existing: ArticleVersion,
    state: ArticleState,
    payload: dict,
    article_type: str,
    content_id: str,
) -> SyncResult:
    outcome = Outcome.UPDATED_DRAFT
    match state:
        case ArticleState.ONLINE_EXISTS:
            draft = await client.create_draft_from_master(existing.master_id or existing.version_id)
            if not draft.success:
                logger.error("draft_from_online_failed", content_id=content_id, error=draft.error_message)
                return SyncResult(
                    content_id=content_id,
                    operation=Operation.EDIT_ONLINE,
                    error=f"Failed to create draft: {draft.error_message}",
                )
            draft_id = draft.data["id"]
            outcome = Outcome.CREATED
            logger.info("draft_from_online_created", content_id=content_id, draft_id=draft_id)
        case ArticleState.DRAFT_EXISTS:
            draft_id = existing.version_id
        case _:
            logger.warning(
                "article_unusual_status",
                content_id=content_id,
                publish_status=existing.publish_status,
            )
            draft_id = existing.version_id

    resp = await client.request("PATCH", f"/sobjects/{article_type}/{draft_id}", payload)
    if not resp.success:
        logger.error("draft_update_failed", content_id=content_id, draft_id=draft_id, error=resp.error_message)
        return SyncResult(
            content_id=content_id,
            operation=Operation.UPDATE_DRAFT,
            error=f"Failed to update draft: {resp.error_message}",
        )

    logger.info("draft_updated", content_id=content_id, draft_id=draft_id)
    return SyncResult(
        content_id=content_id,
        success=True,
        master_id=existing.master_id,
        version_id=draft_id,
        operation=Operation.UPDATE,
        outcome=outcome,
        publish_status=PublishStatus.DRAFT,
    )


async def upsert_article(
    client: KnowledgeApiClient,
    record: SourceRecord,
    config: EffectiveConfig,
    *,
    record_type_id: str | None = None,
    language: str = DEFAULT_LANGUAGE,
) -> SyncResult:
    """Crea o actualiza el artículo de un content asset y lo publica si está configurado.

    Cualquier error del registro queda en un SyncResult fallido; solo los
    errores de autenticación se propagan.
    """
    try:
        existing = await find_article_by_external_id(client, record.id, config.article_type)
        state = classify(existing)
        payload = build_article_payload(
            record,
            config,
            is_create=state is ArticleState.NOT_EXISTS,
            record_type_id=record_type_id,
            language=language,
        )

        if existing is None:
            result = await _create_article(client, payload, config.article_type, record.id)
        else:
            result = await _update_article(
                client, existing, state, payload, config.article_type, record.id
            )
    except AuthenticationError:
        raise
    except Exception as exc:
        logger.error("upsert_exception", content_id=record.id, error=str(exc))
        return SyncResult(content_id=record.id, error=f"Exception: {exc}")

    if result.success and config.publish_articles:
        publish_error = await publish_article(client, result.version_id)
        if publish_error:
            logger.warning("publish_failed", content_id=record.id, error=publish_error)
            result.warning = f"Publish failed: {publish_error}"
        else:
            result.publish_status = PublishStatus.ONLINE
            result.outcome = Outcome.PUBLISHED
    return result


async def export_batch(
    client: KnowledgeApiClient,
    records: Sequence[SourceRecord],
    config: EffectiveConfig,
    *,
    record_type_id: str | None = None,
    language: str = DEFAULT_LANGUAGE,
) -> BatchResult:
    """Exporta un lote registro por registro; un fallo no detiene a los demás."""
    result = BatchResult()
    if not records:
        result.success = False
        result.error = "Empty batch"
        return result

    for record in records:
        sync_result = await upsert_article(
            client, record, config, record_type_id=record_type_id, language=language
        )
        result.details.append(sync_result)
        if sync_result.success:
            result.success_count += 1
        else:
            result.failure_count += 1
            logger.warning("upsert_failed", content_id=record.id, error=sync_result.error)

    logger.info("batch_exported", success=result.success_count, failed=result.failure_count)
    return result


async def delete_article(
    client: KnowledgeApiClient, external_id: str, article_type: str
) -> DeleteResult:
    """Elimina el artículo (todas sus versiones) asociado a un external id."""
    existing = await find_article_by_external_id(client, external_id, article_type)
    if existing is None or not existing.master_id:
        logger.warning("article_not_found", external_id=external_id)
        return DeleteResult(success=False, error="Article not found")

    resp = await client.request("DELETE", f"/knowledgeManagement/articles/{existing.master_id}")
    if not resp.success:
        logger.error("article_delete_failed", master_id=existing.master_id, error=resp.error_message)
        return DeleteResult(success=False, error=resp.error_message or "Delete failed")

    logger.info("article_deleted", master_id=existing.master_id)
    return DeleteResult(success=True)
