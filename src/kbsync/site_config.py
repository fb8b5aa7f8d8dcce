"""Resolución de la configuración multi-sitio: parseo, merge con _defaults y validación."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

import structlog

from kbsync.exceptions import ConfigurationError
from kbsync.mapping.transforms import STRING_TRANSFORMS, TransformKind
from kbsync.models import ExportMode

logger = structlog.get_logger(__name__)

DEFAULTS_KEY = "_defaults"
STATIC_KEY = "static"

DEFAULT_ARTICLE_TYPE = "Knowledge__kav"
DEFAULT_BATCH_SIZE = 50
MAX_BATCH_SIZE = 500
DEFAULT_FOLDER_IDS = ["root"]
DEFAULT_FIELD_MAPPING = {
    "Title": "name",
    "Summary": "pageDescription",
    "Body__c": "custom.body",
    "SFCC_External_ID__c": "ID",
    "UrlName": "ID",
}

_SUPPORTED_TRANSFORMS = {kind.value for kind in TransformKind}


@dataclass
class ValidationReport:
    valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def error(self, message: str) -> None:
        self.errors.append(message)
        self.valid = False


@dataclass
class EffectiveConfig:
    """Configuración efectiva de un sitio, ya validada."""

    article_type: str = DEFAULT_ARTICLE_TYPE
    field_mapping: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_FIELD_MAPPING))
    transforms: dict[str, Any] = field(default_factory=dict)
    static_fields: dict[str, Any] = field(default_factory=dict)
    field_metadata: dict[str, Any] = field(default_factory=dict)
    content_folder_ids: list[str] = field(default_factory=lambda: list(DEFAULT_FOLDER_IDS))
    batch_size: int = DEFAULT_BATCH_SIZE
    export_mode: ExportMode = ExportMode.DELTA
    publish_articles: bool = False
    record_type_name: str | None = None
    data_category: str | None = None
    auto_create_fields: bool = False
    enable_debug_logging: bool = False

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> EffectiveConfig:
        """Construye la config tipada aplicando los valores por defecto a las claves ausentes."""
        return cls(
            article_type=config.get("articleType") or DEFAULT_ARTICLE_TYPE,
            field_mapping=_dict_or_default(config, "fieldMapping", DEFAULT_FIELD_MAPPING),
            transforms=_dict_or_default(config, "transforms"),
            static_fields=_dict_or_default(config, STATIC_KEY),
            field_metadata=_dict_or_default(config, "fieldMetadata"),
            content_folder_ids=normalize_content_folder_ids(config.get("contentFolderIDs")),
            batch_size=config.get("batchSize") or DEFAULT_BATCH_SIZE,
            export_mode=ExportMode(config.get("exportMode") or ExportMode.DELTA),
            publish_articles=config.get("publishArticles", False),
            record_type_name=config.get("recordTypeName") or None,
            data_category=config.get("dataCategory") or None,
            auto_create_fields=config.get("autoCreateFields", False),
            enable_debug_logging=config.get("enableDebugLogging", False),
        )

    def overlapping_fields(self) -> list[str]:
        """Campos que tienen a la vez una transformación y un valor estático."""
        return [name for name in self.transforms if name in self.static_fields]


# ---------- Parseo y merge ----------

def parse_site_configurations(raw: str | None) -> dict[str, Any] | None:
    """Parsea el JSON multi-sitio. Devuelve None si está vacío o es inválido."""
    if not raw or not raw.strip():
        logger.warning("site_configurations_empty")
        return None

    try:
        config = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.error("site_configurations_invalid_json", error=str(exc), content=raw[:500])
        return None

    if not isinstance(config, dict):
        logger.error("site_configurations_not_object", content=raw[:500])
        return None
    return config


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _dict_or_default(config: dict[str, Any], key: str, default: dict[str, Any] | None = None) -> dict[str, Any]:
    # Un {} explícito del sitio reemplaza al default; solo la clave ausente o null cae al default
    value = config.get(key)
    return dict(value if value is not None else default or {})


def merge_static_fields(default_static: dict[str, Any], site_static: dict[str, Any]) -> dict[str, Any]:
    return {**default_static, **site_static}


def merge_configurations(defaults: dict[str, Any], site_config: dict[str, Any]) -> dict[str, Any]:
    """Combina _defaults con la config del sitio.

    Cada clave del sitio reemplaza por completo la de _defaults, salvo ``static``,
    que se combina a un nivel (el sitio gana en colisiones).
    """
    merged = dict(defaults)
    for key, value in site_config.items():
        if key == STATIC_KEY and isinstance(value, dict | None):
            merged[STATIC_KEY] = merge_static_fields(
                _as_dict(defaults.get(STATIC_KEY)), value or {}
            )
        else:
            merged[key] = value
    return merged


def get_site_configuration(all_configs: Any, site_id: str | None) -> dict[str, Any] | None:
    """Devuelve la config efectiva (todavía sin tipar) de un sitio."""
    if not isinstance(all_configs, dict):
        logger.error("site_configurations_invalid_object")
        return None
    if not site_id or not site_id.strip():
        logger.error("site_id_required")
        return None

    defaults = _as_dict(all_configs.get(DEFAULTS_KEY))
    site_config = all_configs.get(site_id)
    if not site_config:
        logger.warning("site_configuration_missing", site_id=site_id)
        return dict(defaults)
    if not isinstance(site_config, dict):
        logger.error("site_configuration_not_object", site_id=site_id)
        return None

    return merge_configurations(defaults, site_config)


def is_multi_site_mode(raw: str | None) -> bool:
    return bool(raw and raw.strip() and raw.strip() != "{}")


# ---------- Validación ----------

def _present(config: dict[str, Any], key: str) -> bool:
    return config.get(key) is not None


def _validate_folder_ids(value: Any) -> str | None:
    if isinstance(value, str):
        return None if value.strip() else "contentFolderIDs cannot be empty string"
    if isinstance(value, list):
        if not value:
            return "contentFolderIDs array cannot be empty"
        if any(not isinstance(v, str) or not v.strip() for v in value):
            return "contentFolderIDs array must contain non-empty strings"
        return None
    return "contentFolderIDs must be a string or array of strings"


def _validate_transform_spec(spec: Any, field_name: str, report: ValidationReport) -> None:
    if isinstance(spec, str):
        name = spec.split(":", 1)[0]
        if TransformKind.parse(name) not in STRING_TRANSFORMS:
            report.warnings.append(f'Unknown transform "{name}" for field {field_name}')
    elif isinstance(spec, dict):
        type_name = spec.get("type")
        if not type_name:
            report.error(f'Transform object for field {field_name} must have a "type" property')
        elif not isinstance(type_name, str):
            report.error(f"Transform type for field {field_name} must be a string")
        elif type_name not in _SUPPORTED_TRANSFORMS:
            report.warnings.append(f'Unknown transform type "{type_name}" for field {field_name}')
    else:
        report.error(f"Transform for field {field_name} must be a string or object")


def _validate_transforms(transforms: Any, report: ValidationReport) -> None:
    if not isinstance(transforms, dict):
        report.error("transforms must be an object")
        return
    for field_name, spec in transforms.items():
        # Una lista es una cadena de transformaciones.
        specs = spec if isinstance(spec, list) else [spec]
        for item in specs:
            _validate_transform_spec(item, field_name, report)


def validate_configuration(config: Any, site_id: str) -> ValidationReport:
    """Valida tipos y rangos de la config efectiva de un sitio.

    Los nombres de transformación desconocidos y un fieldMapping vacío son
    warnings; las formas mal construidas son errores.
    """
    report = ValidationReport()
    if not isinstance(config, dict):
        report.error(f"Configuration is not a valid object for site: {site_id}")
        return report

    for key in ("articleType", "recordTypeName", "dataCategory"):
        if _present(config, key) and not isinstance(config[key], str):
            report.error(f"{key} must be a string")

    if _present(config, "contentFolderIDs"):
        folder_error = _validate_folder_ids(config["contentFolderIDs"])
        if folder_error:
            report.error(f"contentFolderIDs: {folder_error}")

    if _present(config, "batchSize"):
        batch_size = config["batchSize"]
        if (
            isinstance(batch_size, bool)
            or not isinstance(batch_size, int)
            or not 1 <= batch_size <= MAX_BATCH_SIZE
        ):
            report.error(f"batchSize must be an integer between 1 and {MAX_BATCH_SIZE}")

    if _present(config, "exportMode") and config["exportMode"] not in {m.value for m in ExportMode}:
        report.error('exportMode must be "delta" or "full"')

    for key in ("publishArticles", "enableDebugLogging", "autoCreateFields"):
        if _present(config, key) and not isinstance(config[key], bool):
            report.error(f"{key} must be a boolean")

    if _present(config, "fieldMapping"):
        if not isinstance(config["fieldMapping"], dict):
            report.error("fieldMapping must be an object")
        elif not config["fieldMapping"]:
            report.warnings.append("fieldMapping is empty")

    if _present(config, "transforms"):
        _validate_transforms(config["transforms"], report)

    for key in (STATIC_KEY, "fieldMetadata"):
        if _present(config, key) and not isinstance(config[key], dict):
            report.error(f"{key} must be an object")

    if not report.valid:
        logger.error("site_configuration_invalid", site_id=site_id, errors=report.errors)
    if report.warnings:
        logger.warning("site_configuration_warnings", site_id=site_id, warnings=report.warnings)
    return report


def normalize_content_folder_ids(value: Any) -> list[str]:
    """Normaliza contentFolderIDs a una lista; por defecto ``["root"]``."""
    if not value:
        return list(DEFAULT_FOLDER_IDS)
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        if "," in value:
            return [part.strip() for part in value.split(",") if part.strip()]
        return [value.strip()]
    logger.warning("content_folder_ids_unrecognized", value=repr(value))
    return list(DEFAULT_FOLDER_IDS)


# ---------- Punto de entrada ----------

def resolve_effective_config(raw: str | None, site_id: str) -> EffectiveConfig:
    """Parsea, resuelve y valida la configuración de un sitio.

    Raises:
        ConfigurationError: si el JSON es inválido, el sitio no resuelve o la validación falla.
    """
    all_configs = parse_site_configurations(raw)
    if all_configs is None:
        raise ConfigurationError("Failed to parse SiteConfigurations JSON")

    site_config = get_site_configuration(all_configs, site_id)
    if site_config is None:
        raise ConfigurationError(f"Failed to get configuration for site: {site_id}")

    report = validate_configuration(site_config, site_id)
    if not report.valid:
        raise ConfigurationError(
            f"Configuration validation failed for site: {site_id}", errors=report.errors
        )

    config = EffectiveConfig.from_dict(site_config)
    for field_name in config.overlapping_fields():
        logger.warning("static_overrides_transform", site_id=site_id, field=field_name)
    return config


def log_effective_configuration(config: EffectiveConfig, site_id: str) -> None:
    logger.info(
        "effective_configuration",
        site_id=site_id,
        article_type=config.article_type,
        content_folder_ids=config.content_folder_ids,
        batch_size=config.batch_size,
        export_mode=str(config.export_mode),
        publish_articles=config.publish_articles,
        record_type_name=config.record_type_name or "none",
        data_category=config.data_category or "none",
        auto_create_fields=config.auto_create_fields,
        enable_debug_logging=config.enable_debug_logging,
        field_mapping=config.field_mapping,
        transforms=config.transforms,
        static_fields=config.static_fields,
    )
