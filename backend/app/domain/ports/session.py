from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol


@dataclass(frozen=True)
class AdminSession:
    session_id: str
    admin_id: str
    society_id: str
    admin_role: str
    created_at: datetime
    last_seen_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None
    is_active: bool = True
    ended_at: datetime | None = None


class SessionStore(Protocol):
    """Storage for admin sessions.

    Implementations must make replace_active a single atomic step: once it
    returns, only the new session is visible as the admin's active session.
    """

    async def replace_active(self, session: AdminSession) -> AdminSession | None:
        """Store session as the admin's sole active session; return the superseded one."""
        ...

    async def get(self, session_id: str) -> AdminSession | None:
        ...

    async def get_active(self, admin_id: str) -> AdminSession | None:
        ...

    async def deactivate_active(self, admin_id: str, ended_at: datetime) -> AdminSession | None:
        ...

    async def touch(self, admin_id: str, seen_at: datetime) -> AdminSession | None:
        ...

    async def list_active(self, society_id: str) -> list[AdminSession]:
        ...

    async def sweep(self, idle_before: datetime) -> int:
        """Deactivate sessions idle since idle_before and purge ones ended before it."""
        ...
