"""Cliente REST de Salesforce Knowledge sobre httpx con envelope {success, data, error}."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from kbsync.exceptions import AuthenticationError
from kbsync.sync.context import RunContext

logger = structlog.get_logger(__name__)

DEFAULT_API_VERSION = "v58.0"


@dataclass
class ApiResponse:
    success: bool
    data: Any = None
    error_message: str | None = None
    status_code: int | None = None

    @property
    def records(self) -> list[dict[str, Any]]:
        if isinstance(self.data, dict):
            return self.data.get("records") or []
        return []


def escape_soql(value: str) -> str:
    """Escapa un literal para usarlo entre comillas simples en SOQL."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _error_message(data: Any, status_code: int) -> str:
    # Salesforce devuelve [{"message": ..., "errorCode": ...}] en los errores.
    if isinstance(data, list) and data and isinstance(data[0], dict):
        messages = [str(item.get("message") or item) for item in data]
        return "; ".join(messages)
    if isinstance(data, dict):
        return str(data.get("message") or data.get("error_description") or json.dumps(data))
    if data:
        return str(data)
    return f"HTTP {status_code}"


class KnowledgeApiClient:
    """Llamadas autenticadas a ``/services/data/{version}``.

    El token se pide al RunContext en cada llamada. Un 401 invalida el token
    cacheado y la llamada se reporta como fallida; la siguiente vuelve a autenticar.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        ctx: RunContext,
        *,
        api_version: str = DEFAULT_API_VERSION,
        debug: bool = False,
    ) -> None:
        self._http = http
        self._ctx = ctx
        self.api_version = api_version
        self.debug = debug

    async def request(
        self,
        method: str,
        endpoint: str,
        body: Any = None,
        *,
        params: dict[str, str] | None = None,
    ) -> ApiResponse:
        """Ejecuta una llamada al API.

        Raises:
            AuthenticationError: si no se puede obtener un token.
        """
        auth = await self._ctx.get_token()
        if not auth.success:
            raise AuthenticationError(f"Authentication failed: {auth.error}")

        url = f"{auth.instance_url}/services/data/{self.api_version}{endpoint}"
        headers = {"Authorization": f"{auth.token_type} {auth.access_token}"}

        if self.debug:
            logger.info("api_request", method=method, url=url, payload=body)

        try:
            resp = await self._http.request(method, url, json=body, params=params, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("api_request_failed", method=method, endpoint=endpoint, error=str(exc))
            return ApiResponse(success=False, error_message=str(exc))

        data: Any = None
        if resp.content:
            try:
                data = resp.json()
            except ValueError:
                data = resp.text

        if resp.status_code == 401:
            logger.warning("api_unauthorized", endpoint=endpoint)
            self._ctx.invalidate_token()

        if resp.is_success:
            return ApiResponse(success=True, data=data, status_code=resp.status_code)

        error = _error_message(data, resp.status_code)
        logger.warning(
            "api_request_error",
            method=method,
            endpoint=endpoint,
            status=resp.status_code,
            error=error,
        )
        return ApiResponse(
            success=False, data=data, error_message=error, status_code=resp.status_code
        )

    async def query(self, soql: str) -> ApiResponse:
        return await self.request("GET", "/query", params={"q": soql})

    async def tooling_query(self, soql: str) -> ApiResponse:
        return await self.request("GET", "/tooling/query", params={"q": soql})

    async def create_draft_from_master(self, master_id: str) -> ApiResponse:
        """Crea una versión Draft a partir de la versión publicada de ``master_id``."""
        return await self.request(
            "POST",
            "/knowledgeManagement/articleVersions/masterVersions",
            {"articleId": master_id},
        )

    async def publish_versions(self, version_ids: list[str]) -> ApiResponse:
        """Publica versiones Draft; el resultado por acción viene en ``data[0]``."""
        return await self.request(
            "POST",
            "/actions/standard/publishKnowledgeArticles",
            {
                "inputs": [
                    {"articleVersionIdList": list(version_ids), "pubAction": "PUBLISH_ARTICLE"}
                ]
            },
        )
