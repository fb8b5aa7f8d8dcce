"""Transformaciones de texto aplicables a los campos mapeados (slug, espacios, regex)."""

from __future__ import annotations

import json
import re
from enum import StrEnum
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

_WHITESPACE = re.compile(r"\s+")

# Flags estilo JS -> flags de re.  "g" se maneja aparte (reemplazo global).
_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "u": 0, "y": 0}

_JS_REPLACEMENT_TOKEN = re.compile(r"\$(\$|&|\d{1,2})")


class TransformKind(StrEnum):
    """Tipos de transformación soportados."""

    REPLACE_SPACES = "replaceSpaces"
    URL_SAFE = "urlSafe"
    LOWERCASE = "lowercase"
    UPPERCASE = "uppercase"
    REMOVE_SPACES = "removeSpaces"
    REPLACE = "replace"

    @classmethod
    def parse(cls, name: Any) -> TransformKind | None:
        try:
            return cls(name)
        except (ValueError, TypeError):
            return None


# Solo estas se pueden expresar en la forma compacta "nombre:param".
STRING_TRANSFORMS = frozenset(
    {
        TransformKind.REPLACE_SPACES,
        TransformKind.URL_SAFE,
        TransformKind.LOWERCASE,
        TransformKind.UPPERCASE,
        TransformKind.REMOVE_SPACES,
    }
)


# ---------- Transformaciones primitivas ----------

def replace_spaces(value: str, replace_with: str | None = "-") -> str:
    """Reemplaza cada secuencia de espacios en blanco por ``replace_with``."""
    if replace_with is None:
        replace_with = "-"
    return _WHITESPACE.sub(lambda _: replace_with, value)


def url_safe(value: str, separator: str | None = "-") -> str:
    """Genera un slug: minúsculas, solo ``[a-z0-9]`` y el separador, sin repeticiones."""
    if separator is None:
        separator = "-"
    escaped = re.escape(separator)

    result = value.lower()
    result = _WHITESPACE.sub(lambda _: separator, result)
    result = re.sub(f"[^a-z0-9{escaped}]", "", result)
    if separator:
        result = re.sub(f"(?:{escaped})+", lambda _: separator, result)
        result = re.sub(f"^(?:{escaped})+|(?:{escaped})+$", "", result)
    return result


def lowercase(value: str) -> str:
    return value.lower()


def uppercase(value: str) -> str:
    return value.upper()


def remove_spaces(value: str) -> str:
    return _WHITESPACE.sub("", value)


def _js_replacement(template: str):
    """Convierte un reemplazo con ``$1``/``$&``/``$$`` en una función para ``re.sub``."""

    def expand(match: re.Match) -> str:
        def token(m: re.Match) -> str:
            ref = m.group(1)
            if ref == "$":
                return "$"
            if ref == "&":
                return match.group(0)
            idx = int(ref)
            if idx <= (match.re.groups or 0):
                return match.group(idx) or ""
            return m.group(0)

        return _JS_REPLACEMENT_TOKEN.sub(token, template)

    return expand


def regex_replace(value: str, options: dict[str, Any]) -> str:
    """Reemplazo por expresión regular configurado con ``pattern``/``replaceWith``/``flags``."""
    pattern = options.get("pattern")
    if not pattern:
        logger.error("transform_replace_missing_pattern")
        return value

    replace_with = options.get("replaceWith")
    if replace_with is None:
        replace_with = ""
    flags_spec = options.get("flags") or "g"

    try:
        flags = 0
        for ch in flags_spec:
            if ch == "g":
                continue
            if ch not in _REGEX_FLAGS:
                raise re.error(f"flag inválido: {ch!r}")
            flags |= _REGEX_FLAGS[ch]
        regex = re.compile(pattern, flags)
        count = 0 if "g" in flags_spec else 1
        return regex.sub(_js_replacement(str(replace_with)), value, count=count)
    except re.error as exc:
        logger.error("transform_replace_invalid", pattern=pattern, error=str(exc))
        return value


# ---------- Despacho ----------

def _dispatch(value: str, kind: TransformKind, options: dict[str, Any], param: str | None) -> str:
    match kind:
        case TransformKind.REPLACE_SPACES:
            return replace_spaces(value, param)
        case TransformKind.URL_SAFE:
            return url_safe(value, param)
        case TransformKind.LOWERCASE:
            return lowercase(value)
        case TransformKind.UPPERCASE:
            return uppercase(value)
        case TransformKind.REMOVE_SPACES:
            return remove_spaces(value)
        case TransformKind.REPLACE:
            return regex_replace(value, options)
        case _:
            return value


def _apply_string_spec(value: str, spec: str, field_name: str) -> str:
    name, sep, param = spec.partition(":")
    kind = TransformKind.parse(name)
    if kind is None or kind not in STRING_TRANSFORMS:
        logger.warning("transform_unknown", transform=name, field=field_name)
        return value
    return _dispatch(value, kind, {}, param if sep else "-")


def _apply_object_spec(value: str, spec: dict[str, Any], field_name: str) -> str:
    type_name = spec.get("type")
    if not type_name:
        logger.error("transform_missing_type", field=field_name)
        return value

    kind = TransformKind.parse(type_name)
    if kind is None:
        logger.warning("transform_unknown", transform=type_name, field=field_name)
        return value

    param = None
    if kind is TransformKind.REPLACE_SPACES:
        param = spec.get("with") or spec.get("replaceWith") or "-"
    elif kind is TransformKind.URL_SAFE:
        param = spec.get("with") or spec.get("separator") or "-"
    return _dispatch(value, kind, spec, param)


def apply_transform(value: Any, spec: Any, field_name: str = "") -> Any:
    """Aplica una transformación a un valor.

    Args:
        value: Valor del campo. Si es falsy se devuelve sin tocar.
        spec: ``"nombre"``, ``"nombre:param"`` o un dict ``{"type": ..., ...}``.
        field_name: Campo destino, solo para logging.

    Cualquier error dentro de la transformación se registra y devuelve el valor original.
    """
    if not value:
        return value
    if not isinstance(value, str):
        logger.warning("transform_non_string", field=field_name, value_type=type(value).__name__)
        value = str(value)

    try:
        if isinstance(spec, dict):
            result = _apply_object_spec(value, spec, field_name)
        elif isinstance(spec, str):
            result = _apply_string_spec(value, spec, field_name)
        else:
            logger.warning("transform_invalid_spec", field=field_name, spec_type=type(spec).__name__)
            return value
    except Exception as exc:
        logger.error("transform_error", field=field_name, error=str(exc))
        return value

    logger.debug(
        "transform_applied",
        field=field_name,
        before=value,
        after=result,
        transform=json.dumps(spec, default=str),
    )
    return result


def apply_multiple_transforms(value: Any, specs: Any, field_name: str = "") -> Any:
    """Encadena transformaciones de izquierda a derecha."""
    if not isinstance(specs, list):
        logger.error("transform_chain_not_list", field=field_name)
        return value

    result = value
    for spec in specs:
        result = apply_transform(result, spec, field_name)
    return result


def apply_transforms_to_fields(
    fields: dict[str, Any], transforms: dict[str, Any] | None
) -> dict[str, Any]:
    """Devuelve una copia de ``fields`` con las transformaciones configuradas aplicadas."""
    if not transforms or not isinstance(transforms, dict):
        return fields

    result = dict(fields)
    for field_name, spec in transforms.items():
        if field_name not in result:
            logger.warning("transform_field_not_mapped", field=field_name)
            continue
        if isinstance(spec, list):
            result[field_name] = apply_multiple_transforms(result[field_name], spec, field_name)
        else:
            result[field_name] = apply_transform(result[field_name], spec, field_name)
    return result
