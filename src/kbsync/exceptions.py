"""Errores que abortan una corrida completa de exportación."""

from __future__ import annotations


class KbSyncError(Exception):
    """Error base del kbsync."""


class ConfigurationError(KbSyncError):
    """La configuración del sitio es inválida; se aborta antes de llamar al remoto."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class AuthenticationError(KbSyncError):
    """No se pudo obtener un token válido del endpoint OAuth."""


class RecordTypeLookupError(KbSyncError):
    """El record type configurado no existe para el tipo de artículo."""


class FieldProvisioningError(KbSyncError):
    """Faltan campos custom y no se pudieron crear."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class MappingError(KbSyncError):
    """El content asset no produjo ningún campo mapeable."""
