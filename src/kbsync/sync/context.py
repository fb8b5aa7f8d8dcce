"""Estado de una corrida: token y lookups memorizados, creado al inicio y descartado al final."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from kbsync.salesforce.auth import AuthResult, TokenProvider


@dataclass
class RunContext:
    service_id: str
    tokens: TokenProvider
    run_id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    # "{articleType}:{recordTypeName}" -> RecordType.Id
    record_type_ids: dict[str, str] = field(default_factory=dict)
    # "{resourceType}.{fieldName}" -> CustomField.Id (None si existe pero sin id)
    known_fields: dict[str, str | None] = field(default_factory=dict)

    async def get_token(self) -> AuthResult:
        return await self.tokens.get_token(self.service_id)

    def invalidate_token(self) -> None:
        self.tokens.invalidate(self.service_id)

    def close(self) -> None:
        """Limpia todas las cachés de la corrida."""
        self.invalidate_token()
        self.record_type_ids.clear()
        self.known_fields.clear()
