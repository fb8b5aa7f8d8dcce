"""DTOs (Data Transfer Objects) para las entidades de negocio del kbsync."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class ExportMode(StrEnum):
    DELTA = "delta"
    FULL = "full"


class PublishStatus(StrEnum):
    """Estado de publicación reportado en un SyncResult."""

    DRAFT = "draft"
    ONLINE = "online"


class Operation(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    EDIT_ONLINE = "edit_online"
    UPDATE_DRAFT = "update_draft"


class Outcome(StrEnum):
    CREATED = "created"
    UPDATED_DRAFT = "updated_draft"
    PUBLISHED = "published"
    FAILED = "failed"


class RunStatus(StrEnum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    NO_CONTENT = "no_content"
    ERROR = "error"


@dataclass
class SourceRecord:
    """Un content asset del repositorio de contenido.

    Los campos ``sync_*`` y ``last_sync_time`` solo los escribe el kbsync,
    una vez por sync exitoso y después de la escritura remota.
    """

    id: str
    name: str | None = None
    description: str | None = None
    page_title: str | None = None
    page_description: str | None = None
    page_keywords: str | None = None
    page_url: str | None = None
    template: str | None = None
    classification_folder: str | None = None
    custom: dict[str, Any] = field(default_factory=dict)
    online: bool = True
    creation_date: datetime.datetime | None = None
    last_modified: datetime.datetime | None = None
    sync_article_id: str | None = None
    sync_version_id: str | None = None
    last_sync_time: datetime.datetime | None = None

    def as_mapping(self) -> dict[str, Any]:
        """Vista del registro con los nombres de atributo usados en fieldMapping."""
        return {
            "ID": self.id,
            "name": self.name,
            "description": self.description,
            "pageTitle": self.page_title,
            "pageDescription": self.page_description,
            "pageKeywords": self.page_keywords,
            "pageURL": self.page_url,
            "template": self.template,
            "classificationFolder": self.classification_folder,
            "online": self.online,
            "creationDate": self.creation_date,
            "lastModified": self.last_modified,
            "custom": self.custom,
            "body": self.custom.get("body"),
        }


@dataclass
class ArticleVersion:
    """Una versión (Draft/Online/Archived) de un artículo en el remoto."""

    version_id: str
    master_id: str | None
    publish_status: str
    external_id: str | None = None
    version_number: int | None = None
    title: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> ArticleVersion:
        return cls(
            version_id=row["Id"],
            master_id=row.get("KnowledgeArticleId"),
            publish_status=row.get("PublishStatus") or "",
            external_id=row.get("SFCC_External_ID__c"),
            version_number=row.get("VersionNumber"),
            title=row.get("Title"),
        )


@dataclass
class SyncResult:
    """Resultado del upsert de un registro."""

    content_id: str
    success: bool = False
    master_id: str | None = None
    version_id: str | None = None
    operation: Operation | None = None
    outcome: Outcome = Outcome.FAILED
    publish_status: PublishStatus | None = None
    error: str | None = None
    warning: str | None = None


@dataclass
class BatchResult:
    """Resultado de exportar un lote de registros."""

    success: bool = True
    success_count: int = 0
    failure_count: int = 0
    details: list[SyncResult] = field(default_factory=list)
    error: str | None = None


@dataclass
class ExportResult:
    """Agregado del orquestador de lotes."""

    total_processed: int = 0
    total_success: int = 0
    total_failed: int = 0
    details: list[SyncResult] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class MetadataUpdate:
    success: bool
    error: str | None = None


@dataclass
class RunResult:
    """Resultado de una corrida completa de exportación."""

    status: RunStatus
    message: str
    site_id: str
    export_mode: str | None = None
    total_records: int = 0
    total_processed: int = 0
    total_success: int = 0
    total_failed: int = 0
    metadata_updates: int = 0
    metadata_errors: int = 0
    details: list[SyncResult] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0
