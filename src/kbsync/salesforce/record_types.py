"""Resolución del RecordTypeId configurado para el tipo de artículo."""

from __future__ import annotations

import structlog

from kbsync.exceptions import RecordTypeLookupError
from kbsync.salesforce.client import KnowledgeApiClient, escape_soql
from kbsync.sync.context import RunContext

logger = structlog.get_logger(__name__)


async def get_record_type_id(
    client: KnowledgeApiClient,
    ctx: RunContext,
    record_type_name: str | None,
    article_type: str,
) -> str | None:
    """Busca el RecordType por DeveloperName; memoriza el resultado en el RunContext.

    Devuelve None si no hay record type configurado.

    Raises:
        RecordTypeLookupError: si la consulta falla o el record type no existe.
    """
    if not record_type_name or not record_type_name.strip():
        return None

    cache_key = f"{article_type}:{record_type_name}"
    cached = ctx.record_type_ids.get(cache_key)
    if cached:
        return cached

    soql = (
        "SELECT Id, Name, DeveloperName, Description FROM RecordType "
        f"WHERE SObjectType = '{escape_soql(article_type)}' "
        f"AND DeveloperName = '{escape_soql(record_type_name)}' LIMIT 1"
    )
    resp = await client.query(soql)
    if not resp.success:
        logger.error("record_type_lookup_failed", record_type=record_type_name, error=resp.error_message)
        raise RecordTypeLookupError(f"Record Type lookup failed: {resp.error_message}")

    records = resp.records
    if not records:
        logger.error("record_type_not_found", record_type=record_type_name, article_type=article_type)
        raise RecordTypeLookupError(f'Record Type "{record_type_name}" not found for {article_type}')

    record_type = records[0]
    ctx.record_type_ids[cache_key] = record_type["Id"]
    logger.info(
        "record_type_found",
        name=record_type.get("Name"),
        developer_name=record_type.get("DeveloperName"),
        record_type_id=record_type["Id"],
    )
    return record_type["Id"]
