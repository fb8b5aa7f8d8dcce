"""Autenticación OAuth contra Salesforce (password y client_credentials)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

import httpx
import structlog

from kbsync.config import Settings

logger = structlog.get_logger(__name__)

TOKEN_PATH = "/services/oauth2/token"
GRANT_PASSWORD = "password"
GRANT_CLIENT_CREDENTIALS = "client_credentials"


@dataclass
class AuthResult:
    success: bool
    access_token: str | None = None
    instance_url: str | None = None
    token_type: str = "Bearer"
    issued_at: str | None = None
    user_id: str | None = None
    org_id: str | None = None
    error: str | None = None
    status_code: int | None = None


@dataclass
class AuthConfigReport:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class TokenProvider(Protocol):
    """Colaborador de autenticación: token por identidad de servicio."""

    async def get_token(self, service_id: str) -> AuthResult: ...

    def invalidate(self, service_id: str) -> None: ...


def validate_auth_configuration(settings: Settings) -> AuthConfigReport:
    """Revisa que las credenciales OAuth estén completas para el grant configurado."""
    errors: list[str] = []
    warnings: list[str] = []

    if not settings.sf_service_id.strip():
        errors.append("Service ID not provided (KBSYNC_SF_SERVICE_ID)")
        return AuthConfigReport(valid=False, errors=errors)

    if not settings.sf_client_id:
        errors.append('OAuth "client_id" not configured')
    if not settings.sf_client_secret:
        errors.append('OAuth "client_secret" not configured')

    grant_type = settings.sf_grant_type.strip()
    if grant_type == GRANT_PASSWORD:
        if not settings.sf_username.strip():
            errors.append("Username not configured (required for password grant type)")
        if not settings.sf_password.strip():
            errors.append("Password not configured (required for password grant type)")
        if not settings.sf_security_token:
            warnings.append("Security token not configured (may be required for password grant)")
    elif grant_type == GRANT_CLIENT_CREDENTIALS:
        if settings.sf_username or settings.sf_password:
            warnings.append("Username/password configured but not used for client_credentials grant type")
    else:
        errors.append(
            f'Invalid grant type: "{grant_type}". Must be "password" or "client_credentials"'
        )

    return AuthConfigReport(valid=not errors, errors=errors, warnings=warnings)


def _parse_identity(identity_url: str | None) -> tuple[str | None, str | None]:
    """Extrae (org_id, user_id) de la URL ``id`` de la respuesta OAuth."""
    if not identity_url:
        return None, None
    parts = identity_url.rstrip("/").split("/")
    if len(parts) < 2:
        return None, None
    return parts[-2], parts[-1]


class OAuthTokenProvider:
    """Obtiene tokens OAuth y los guarda en un único slot por identidad de servicio.

    Una instancia vive lo que dura una corrida; ``invalidate`` vacía el slot y el
    siguiente ``get_token`` vuelve a autenticar.
    """

    def __init__(self, settings: Settings, http: httpx.AsyncClient) -> None:
        self._settings = settings
        self._http = http
        self._cached: tuple[str, AuthResult] | None = None

    def _token_params(self) -> dict[str, str]:
        s = self._settings
        params = {
            "grant_type": s.sf_grant_type.strip(),
            "client_id": s.sf_client_id,
            "client_secret": s.sf_client_secret,
        }
        if params["grant_type"] == GRANT_PASSWORD:
            params["username"] = s.sf_username
            params["password"] = s.sf_password + (s.sf_security_token or "")
        return params

    async def get_token(self, service_id: str) -> AuthResult:
        if not service_id or not service_id.strip():
            logger.error("auth_service_id_missing")
            return AuthResult(success=False, error="Service ID is required but not configured")

        if self._cached is not None and self._cached[0] == service_id:
            return self._cached[1]

        grant_type = self._settings.sf_grant_type.strip()
        if grant_type not in (GRANT_PASSWORD, GRANT_CLIENT_CREDENTIALS):
            logger.error("auth_invalid_grant_type", grant_type=grant_type)
            return AuthResult(
                success=False,
                error='Invalid grant type. Must be "password" or "client_credentials"',
            )

        url = self._settings.sf_login_url.rstrip("/") + TOKEN_PATH
        logger.info(
            "oauth_request",
            service_id=service_id,
            grant_type=grant_type,
            client_id=self._settings.sf_client_id,
        )

        try:
            resp = await self._http.post(url, data=self._token_params())
        except httpx.HTTPError as exc:
            logger.error("oauth_request_failed", service_id=service_id, error=str(exc))
            return AuthResult(success=False, error=f"OAuth exception: {exc}")

        result = self._parse_response(resp)
        if result.success:
            self._cached = (service_id, result)
            logger.info(
                "oauth_authenticated",
                service_id=service_id,
                instance_url=result.instance_url,
                org_id=result.org_id,
            )
        return result

    def _parse_response(self, resp: httpx.Response) -> AuthResult:
        text = resp.text.strip()
        if not text:
            logger.error("oauth_empty_response", status=resp.status_code)
            return AuthResult(
                success=False,
                error="Empty response from OAuth endpoint",
                status_code=resp.status_code,
            )
        if text.startswith("<"):
            logger.error("oauth_html_response", status=resp.status_code, preview=text[:200])
            return AuthResult(
                success=False,
                error="Received HTML instead of JSON. Check OAuth URL configuration.",
                status_code=resp.status_code,
            )

        try:
            body = resp.json()
        except ValueError as exc:
            logger.error("oauth_invalid_json", status=resp.status_code, preview=text[:200])
            return AuthResult(
                success=False,
                error=f"Response is not valid JSON: {exc}",
                status_code=resp.status_code,
            )

        if resp.is_error or not isinstance(body, dict):
            error = body.get("error_description") or body.get("error") if isinstance(body, dict) else None
            logger.error(
                "oauth_failed",
                status=resp.status_code,
                oauth_error=body.get("error") if isinstance(body, dict) else None,
            )
            return AuthResult(
                success=False,
                error=error or f"HTTP {resp.status_code}",
                status_code=resp.status_code,
            )

        access_token = body.get("access_token")
        instance_url = body.get("instance_url")
        if not access_token or not instance_url:
            logger.error("oauth_response_incomplete", keys=sorted(body))
            return AuthResult(
                success=False,
                error="Invalid OAuth response structure - missing access_token or instance_url",
                status_code=resp.status_code,
            )

        org_id, user_id = _parse_identity(body.get("id"))
        return AuthResult(
            success=True,
            access_token=access_token,
            instance_url=instance_url.rstrip("/"),
            token_type=body.get("token_type") or "Bearer",
            issued_at=body.get("issued_at"),
            user_id=user_id,
            org_id=org_id,
            status_code=resp.status_code,
        )

    def invalidate(self, service_id: str) -> None:
        if self._cached is not None and self._cached[0] == service_id:
            self._cached = None
            logger.info("oauth_token_invalidated", service_id=service_id)
