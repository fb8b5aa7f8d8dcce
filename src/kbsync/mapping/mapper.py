"""Proyección de un content asset a un payload de artículo de Knowledge."""

from __future__ import annotations

import datetime
import json
from typing import Any

import structlog

from kbsync.exceptions import MappingError
from kbsync.mapping.transforms import apply_transforms_to_fields
from kbsync.models import SourceRecord
from kbsync.site_config import EffectiveConfig

logger = structlog.get_logger(__name__)

EXTERNAL_ID_FIELD = "SFCC_External_ID__c"
DEFAULT_LANGUAGE = "en_US"

_PRIMITIVES = (str, int, float, bool)
_DEBUG_PREVIEW_CHARS = 100


def get_nested_property(obj: Any, path: str | None) -> Any:
    """Recorre ``path`` separado por puntos; un nodo faltante devuelve None."""
    if obj is None or not path:
        return None

    current = obj
    for raw_part in path.split("."):
        if current is None:
            return None
        part = raw_part.strip()
        if not part:
            continue
        if isinstance(current, dict):
            current = current.get(part)
        else:
            current = getattr(current, part, None)
    return current


def _markup_payload(value: Any) -> Any:
    if isinstance(value, dict):
        for key in ("markup", "source"):
            if value.get(key) is not None:
                return value[key]
        return None
    for attr in ("markup", "source"):
        payload = getattr(value, attr, None)
        if payload is not None:
            return payload
    return None


def to_safe_value(value: Any) -> Any:
    """Convierte un valor crudo en un escalar que el API remoto acepte."""
    if value is None:
        return None
    if isinstance(value, _PRIMITIVES):
        return value
    if isinstance(value, datetime.datetime | datetime.date):
        return value.isoformat()

    markup = _markup_payload(value)
    if markup is not None:
        return str(markup)

    try:
        return json.dumps(value)
    except (TypeError, ValueError) as exc:
        logger.warning("value_not_serializable", error=str(exc))
        return str(value)


def _preview(value: Any) -> Any:
    if isinstance(value, str) and len(value) > _DEBUG_PREVIEW_CHARS:
        return f"{value[:_DEBUG_PREVIEW_CHARS]}... (length: {len(value)})"
    return value


def map_content_to_article(
    record: SourceRecord,
    article_type: str,
    field_mapping: dict[str, str],
    data_category: str | None = None,
    is_create: bool = True,
    debug: bool = False,
    language: str = DEFAULT_LANGUAGE,
) -> dict[str, Any]:
    """Mapea un content asset a los campos del artículo.

    Args:
        record: Content asset de origen.
        article_type: Tipo de objeto destino (ej. ``Knowledge__kav``).
        field_mapping: Campo destino -> ruta en el registro de origen.
        data_category: Categoría a asignar, si hay.
        is_create: ``Language`` solo se envía al crear; el remoto no permite cambiarlo.
        debug: Loguea cada paso del mapeo.
        language: Locale del artículo en creación.

    Los campos cuyo valor resulta None o ``""`` se omiten del payload.
    """
    source = record.as_mapping()
    article: dict[str, Any] = {"attributes": {"type": article_type}}

    for target_field, source_path in field_mapping.items():
        raw_value = get_nested_property(source, source_path)
        value = to_safe_value(raw_value)
        included = value is not None and value != ""

        if debug:
            logger.info(
                "field_mapping_step",
                content_id=record.id,
                target_field=target_field,
                source_path=source_path,
                raw_type=type(raw_value).__name__,
                value=_preview(value),
                included=included,
            )

        if included:
            article[target_field] = value

    if is_create:
        article["Language"] = language

    if data_category and data_category.strip():
        article["DataCategorySelections"] = {"DataCategory": data_category}

    logger.debug(
        "content_mapped",
        content_id=record.id,
        article_type=article_type,
        is_create=is_create,
        fields=len(article),
    )
    return article


def build_article_payload(
    record: SourceRecord,
    config: EffectiveConfig,
    *,
    is_create: bool,
    record_type_id: str | None = None,
    language: str = DEFAULT_LANGUAGE,
) -> dict[str, Any]:
    """Payload final: mapeo -> transforms -> campos estáticos -> RecordTypeId -> external id.

    Los campos estáticos pisan cualquier valor mapeado o transformado.

    Raises:
        MappingError: si el mapeo no produjo ningún campo además de ``attributes``.
    """
    payload = map_content_to_article(
        record,
        config.article_type,
        config.field_mapping,
        data_category=config.data_category,
        is_create=is_create,
        debug=config.enable_debug_logging,
        language=language,
    )
    if len(payload) <= 1:
        raise MappingError(f"Failed to map content to article: {record.id}")

    payload = apply_transforms_to_fields(payload, config.transforms)

    for name, value in config.static_fields.items():
        if name in payload and payload[name] != value and config.enable_debug_logging:
            logger.info("static_field_override", content_id=record.id, field=name)
        payload[name] = value

    if record_type_id:
        payload["RecordTypeId"] = record_type_id

    payload[EXTERNAL_ID_FIELD] = record.id
    return payload
