"""Verificación y creación de campos custom vía Tooling API antes de exportar."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Protocol

import structlog

from kbsync.salesforce.client import KnowledgeApiClient, escape_soql
from kbsync.sync.context import RunContext

logger = structlog.get_logger(__name__)

STANDARD_FIELDS = frozenset(
    {
        "Title",
        "Summary",
        "UrlName",
        "Language",
        "PublishStatus",
        "VersionNumber",
        "Id",
        "KnowledgeArticleId",
    }
)

DEFAULT_FIELD_DESCRIPTION = "Auto-created field for Salesforce Knowledge integration"

_DUPLICATE_MARKERS = ("already exists", "duplicate", "DUPLICATE_DEVELOPER_NAME")


@dataclass
class FieldCheck:
    exists: bool
    field_id: str | None = None
    error: str | None = None


@dataclass
class FieldCreation:
    success: bool
    field_id: str | None = None
    error: str | None = None


@dataclass
class FieldProvisioningResult:
    ready: bool = True
    created: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    existing: list[str] = field(default_factory=list)
    errors: list[dict[str, str]] = field(default_factory=list)

    def fail(self, field_name: str, error: str) -> None:
        self.errors.append({"field": field_name, "error": error})
        self.ready = False


class FieldProvisioner(Protocol):
    """Colaborador que consulta y crea campos en el tipo de artículo remoto."""

    async def field_exists(self, resource_type: str, field_name: str) -> FieldCheck: ...

    async def create_field(
        self, resource_type: str, field_name: str, type_spec: dict[str, Any]
    ) -> FieldCreation: ...


def developer_name(field_name: str) -> str:
    return re.sub(r"__c$", "", field_name)


def default_field_metadata(field_name: str) -> dict[str, Any]:
    """Metadata por defecto: label derivado del nombre, Text(255)."""
    return {
        "label": developer_name(field_name).replace("_", " "),
        "description": DEFAULT_FIELD_DESCRIPTION,
        "type": "Text",
        "length": 255,
    }


def normalize_field_metadata(field_name: str, spec: dict[str, Any]) -> dict[str, Any]:
    """Completa la metadata según el tipo de campo; un tipo desconocido cae a Text(255)."""
    metadata: dict[str, Any] = {
        "label": spec.get("label") or developer_name(field_name).replace("_", " "),
        "description": spec.get("description") or "",
        "type": spec.get("type") or "Text",
    }

    match metadata["type"]:
        case "Text" | "TextArea" | "Url" | "Email" | "Phone":
            metadata["length"] = spec.get("length") or 255
        case "LongTextArea":
            metadata["length"] = spec.get("length") or 32000
            if spec.get("visibleLines"):
                metadata["visibleLines"] = spec["visibleLines"]
        case "Number":
            metadata["precision"] = spec.get("precision") or 18
            metadata["scale"] = spec.get("scale") or 0
        case "Checkbox":
            metadata["defaultValue"] = spec.get("defaultValue") or False
        case "Date" | "DateTime":
            if spec.get("defaultValue"):
                metadata["defaultValue"] = spec["defaultValue"]
        case "Picklist" | "MultiselectPicklist":
            logger.warning("picklist_values_manual", field=field_name)
        case _:
            logger.warning("field_type_unknown", field=field_name, type=metadata["type"])
            metadata["type"] = "Text"
            metadata["length"] = 255
    return metadata


class ToolingFieldProvisioner:
    """FieldProvisioner sobre el Tooling API, con caché de existencia en el RunContext."""

    def __init__(self, client: KnowledgeApiClient, ctx: RunContext) -> None:
        self._client = client
        self._ctx = ctx

    async def field_exists(self, resource_type: str, field_name: str) -> FieldCheck:
        dev_name = developer_name(field_name)
        cache_key = f"{resource_type}.{dev_name}"
        if cache_key in self._ctx.known_fields:
            return FieldCheck(exists=True, field_id=self._ctx.known_fields[cache_key])

        entity = re.sub(r"__kav$", "", resource_type)
        soql = (
            "SELECT Id,DeveloperName,FullName,TableEnumOrId,Length,Description,Metadata "
            f"FROM CustomField WHERE DeveloperName='{escape_soql(dev_name)}' "
            f"AND EntityDefinition.DeveloperName='{escape_soql(entity)}'"
        )
        resp = await self._client.tooling_query(soql)
        if not resp.success:
            logger.error("field_check_failed", field=field_name, error=resp.error_message)
            return FieldCheck(exists=False, error=resp.error_message)

        records = resp.records
        if not records:
            return FieldCheck(exists=False)

        field_id = records[0].get("Id")
        self._ctx.known_fields[cache_key] = field_id
        return FieldCheck(exists=True, field_id=field_id)

    async def create_field(
        self, resource_type: str, field_name: str, type_spec: dict[str, Any]
    ) -> FieldCreation:
        dev_name = developer_name(field_name)
        full_name = f"{resource_type}.{dev_name}__c"
        payload = {
            "FullName": full_name,
            "Metadata": normalize_field_metadata(field_name, type_spec),
        }

        resp = await self._client.request("POST", "/tooling/sobjects/CustomField", payload)
        if resp.success:
            field_id = resp.data.get("id") if isinstance(resp.data, dict) else None
            self._ctx.known_fields[f"{resource_type}.{dev_name}"] = field_id
            logger.info("field_created", field=full_name, field_id=field_id)
            return FieldCreation(success=True, field_id=field_id)

        error = resp.error_message or "Create failed"
        if any(marker in error for marker in _DUPLICATE_MARKERS):
            logger.warning("field_already_exists", field=full_name)
            return FieldCreation(success=True)

        logger.error("field_create_failed", field=full_name, error=error)
        return FieldCreation(success=False, error=error)


def custom_fields_to_check(
    field_mapping: dict[str, str], static_fields: dict[str, Any] | None = None
) -> list[str]:
    """Campos ``__c`` del mapeo y de los estáticos, sin repetir y sin campos estándar."""
    names = list(field_mapping)
    names += [name for name in (static_fields or {}) if name not in field_mapping]
    return [name for name in names if "__c" in name and name not in STANDARD_FIELDS]


async def ensure_mapped_fields_exist(
    provisioner: FieldProvisioner,
    article_type: str,
    field_mapping: dict[str, str],
    *,
    static_fields: dict[str, Any] | None = None,
    field_metadata: dict[str, Any] | None = None,
    auto_create: bool = False,
) -> FieldProvisioningResult:
    """Revisa que cada campo custom mapeado exista; lo crea si ``auto_create``.

    Con ``auto_create`` apagado los campos faltantes quedan en ``skipped`` y no
    afectan ``ready``.
    """
    result = FieldProvisioningResult()
    field_metadata = field_metadata or {}
    to_check = custom_fields_to_check(field_mapping, static_fields)
    logger.info("fields_check_started", article_type=article_type, fields=to_check, auto_create=auto_create)

    for name in to_check:
        check = await provisioner.field_exists(article_type, name)
        if check.exists:
            result.existing.append(name)
            continue
        if check.error:
            result.fail(name, check.error)
            continue

        if not auto_create:
            logger.warning("field_missing_skipped", field=name)
            result.skipped.append(name)
            continue

        spec = field_metadata.get(name) or default_field_metadata(name)
        created = await provisioner.create_field(article_type, name, spec)
        if created.success:
            result.created.append(name)
        else:
            result.fail(name, created.error or "Create failed")

    logger.info(
        "fields_check_complete",
        existing=len(result.existing),
        created=len(result.created),
        skipped=len(result.skipped),
        errors=len(result.errors),
    )
    return result
