from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Protocol


@dataclass(frozen=True)
class AuditLogEntry:
    """One immutable record of a privileged action."""
    admin_id: str
    admin_name: str
    admin_role: str
    society_id: str
    action: str
    resource: str
    details: Mapping[str, Any]
    timestamp: datetime
    ip_address: str | None = None
    user_agent: str | None = None
    id: str | None = field(default=None, compare=False)


@dataclass(frozen=True)
class AuditLogQuery:
    society_id: str
    action: str | None = None
    admin_id: str | None = None
    start: datetime | None = None
    end: datetime | None = None


class AuditStore(Protocol):
    """Insert-only audit storage: no update or delete."""

    async def append(self, entry: AuditLogEntry) -> AuditLogEntry:
        ...

    async def get(self, entry_id: str) -> AuditLogEntry | None:
        ...

    async def list(
        self, query: AuditLogQuery, *, limit: int = 50, offset: int = 0
    ) -> list[AuditLogEntry]:
        ...

    async def count(self, query: AuditLogQuery) -> int:
        ...
