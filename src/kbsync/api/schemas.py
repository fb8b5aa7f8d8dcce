"""Modelos Pydantic v2 para request/response de la API."""

from __future__ import annotations

from pydantic import BaseModel


# ---------- /sync ----------

class SyncRequest(BaseModel):
    site_id: str | None = None
    # JSON multi-sitio; si no viene se usa KBSYNC_SITE_CONFIGURATIONS
    site_configurations: str | None = None


class SyncResultItem(BaseModel):
    content_id: str
    success: bool
    master_id: str | None
    version_id: str | None
    operation: str | None
    outcome: str
    publish_status: str | None
    error: str | None
    warning: str | None


class SyncResponse(BaseModel):
    status: str
    message: str
    site_id: str
    export_mode: str | None
    total_records: int
    total_processed: int
    total_success: int
    total_failed: int
    metadata_updates: int
    metadata_errors: int
    duration_seconds: float
    details: list[SyncResultItem]
    errors: list[str]


# ---------- /sync/candidates ----------

class CandidatesResponse(BaseModel):
    site_id: str
    total: int


# ---------- /health ----------

class HealthResponse(BaseModel):
    status: str
    db_connected: bool
    version: str
