"""Admin session tracking: at most one active session per administrator."""
from __future__ import annotations

import json
import logging
import secrets
from dataclasses import asdict, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping

from ...auth.identity import AdministratorIdentity
from ...domain.ports.session import AdminSession, SessionStore
from ...infrastructure.redis import RedisClient

logger = logging.getLogger("oursociety.sessions")

DEFAULT_SESSION_TTL = timedelta(hours=24)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


class InMemorySessionStore:
    """Process-local session store.

    Every method performs its read-modify-write without awaiting, so a
    single event loop never interleaves two updates to the same admin.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, AdminSession] = {}
        self._active: dict[str, str] = {}

    async def replace_active(self, session: AdminSession) -> AdminSession | None:
        previous = self._end_active(session.admin_id, session.created_at)
        self._sessions[session.session_id] = session
        self._active[session.admin_id] = session.session_id
        return previous

    async def get(self, session_id: str) -> AdminSession | None:
        return self._sessions.get(session_id)

    async def get_active(self, admin_id: str) -> AdminSession | None:
        session_id = self._active.get(admin_id)
        if session_id is None:
            return None
        return self._sessions.get(session_id)

    async def deactivate_active(self, admin_id: str, ended_at: datetime) -> AdminSession | None:
        return self._end_active(admin_id, ended_at)

    async def touch(self, admin_id: str, seen_at: datetime) -> AdminSession | None:
        session_id = self._active.get(admin_id)
        if session_id is None:
            return None
        touched = replace(self._sessions[session_id], last_seen_at=seen_at)
        self._sessions[session_id] = touched
        return touched

    async def list_active(self, society_id: str) -> list[AdminSession]:
        sessions = (self._sessions[session_id] for session_id in self._active.values())
        return sorted(
            (session for session in sessions if session.society_id == society_id),
            key=lambda session: session.last_seen_at,
            reverse=True,
        )

    async def sweep(self, idle_before: datetime) -> int:
        removed = 0
        for admin_id, session_id in list(self._active.items()):
            last_seen = self._sessions[session_id].last_seen_at
            if last_seen < idle_before:
                self._end_active(admin_id, last_seen)
                removed += 1

        for session_id, session in list(self._sessions.items()):
            if not session.is_active and session.ended_at and session.ended_at < idle_before:
                del self._sessions[session_id]
        return removed

    def _end_active(self, admin_id: str, ended_at: datetime) -> AdminSession | None:
        session_id = self._active.pop(admin_id, None)
        if session_id is None:
            return None
        ended = replace(self._sessions[session_id], is_active=False, ended_at=ended_at)
        self._sessions[session_id] = ended
        return ended


def _session_to_json(session: AdminSession) -> str:
    data = asdict(session)
    for key in ("created_at", "last_seen_at", "ended_at"):
        if data[key] is not None:
            data[key] = data[key].isoformat()
    return json.dumps(data)


def _session_from_json(raw: str) -> AdminSession:
    data: dict[str, Any] = json.loads(raw)
    for key in ("created_at", "last_seen_at", "ended_at"):
        if data.get(key):
            data[key] = datetime.fromisoformat(data[key])
    return AdminSession(**data)


class RedisSessionStore:
    """Session store shared by every API instance.

    admin_session:active:<admin_id> points at the admin's active session id.
    A session counts as active only while that pointer names it, and the
    pointer is swapped with a single SET ... GET.
    """

    SESSION_KEY = "admin_session:{session_id}"
    ACTIVE_KEY = "admin_session:active:{admin_id}"
    SOCIETY_KEY = "admin_session:society:{society_id}"

    def __init__(self, client: RedisClient, *, ttl: timedelta = DEFAULT_SESSION_TTL) -> None:
        self._client = client
        self._ttl_ms = int(ttl.total_seconds() * 1000)

    def _session_key(self, session_id: str) -> str:
        return self.SESSION_KEY.format(session_id=session_id)

    def _active_key(self, admin_id: str) -> str:
        return self.ACTIVE_KEY.format(admin_id=admin_id)

    def _society_key(self, society_id: str) -> str:
        return self.SOCIETY_KEY.format(society_id=society_id)

    async def replace_active(self, session: AdminSession) -> AdminSession | None:
        # Record first so the pointer never names a missing session
        await self._client.set_value(
            self._session_key(session.session_id), _session_to_json(session), self._ttl_ms * 2
        )
        previous_id = await self._client.swap_value(
            self._active_key(session.admin_id), session.session_id, self._ttl_ms
        )
        await self._client.add_members(self._society_key(session.society_id), session.admin_id)
        if previous_id is None or previous_id == session.session_id:
            return None
        return await self._mark_ended(previous_id, session.created_at)

    async def get(self, session_id: str) -> AdminSession | None:
        raw = await self._client.get_value(self._session_key(session_id))
        if raw is None:
            return None
        session = _session_from_json(raw)
        if not session.is_active:
            return session
        active_id = await self._client.get_value(self._active_key(session.admin_id))
        if active_id != session_id:
            return replace(session, is_active=False)
        return session

    async def get_active(self, admin_id: str) -> AdminSession | None:
        session_id = await self._client.get_value(self._active_key(admin_id))
        if session_id is None:
            return None
        raw = await self._client.get_value(self._session_key(session_id))
        if raw is None:
            return None
        session = _session_from_json(raw)
        return session if session.is_active else None

    async def deactivate_active(self, admin_id: str, ended_at: datetime) -> AdminSession | None:
        session_id = await self._client.take_value(self._active_key(admin_id))
        if session_id is None:
            return None
        return await self._mark_ended(session_id, ended_at)

    async def touch(self, admin_id: str, seen_at: datetime) -> AdminSession | None:
        session = await self.get_active(admin_id)
        if session is None:
            return None
        touched = replace(session, last_seen_at=seen_at)
        await self._client.set_value(
            self._session_key(session.session_id), _session_to_json(touched), self._ttl_ms * 2
        )
        await self._client.expire_value(self._active_key(admin_id), self._ttl_ms)
        return touched

    async def list_active(self, society_id: str) -> list[AdminSession]:
        society_key = self._society_key(society_id)
        admin_ids = sorted(await self._client.get_members(society_key))
        sessions: list[AdminSession] = []
        stale: list[str] = []
        for admin_id in admin_ids:
            session = await self.get_active(admin_id)
            if session is None:
                stale.append(admin_id)
            else:
                sessions.append(session)
        await self._client.remove_members(society_key, stale)
        return sorted(sessions, key=lambda session: session.last_seen_at, reverse=True)

    async def sweep(self, idle_before: datetime) -> int:
        # Idle sessions expire through the pointer TTL; drop their society index entries
        removed = 0
        for society_key in await self._client.scan_keys(self.SOCIETY_KEY.format(society_id="*")):
            admin_ids = sorted(await self._client.get_members(society_key))
            active_ids = await self._client.get_values(
                [self._active_key(admin_id) for admin_id in admin_ids]
            )
            stale = [
                admin_id
                for admin_id, session_id in zip(admin_ids, active_ids)
                if session_id is None
            ]
            removed += await self._client.remove_members(society_key, stale)
        return removed

    async def _mark_ended(self, session_id: str, ended_at: datetime) -> AdminSession | None:
        key = self._session_key(session_id)
        raw = await self._client.get_value(key)
        if raw is None:
            return None
        ended = replace(_session_from_json(raw), is_active=False, ended_at=ended_at)
        await self._client.set_value(key, _session_to_json(ended), self._ttl_ms)
        return ended


class SessionManager:
    """Creates, looks up and ends admin sessions through an injected store."""

    def __init__(
        self,
        store: SessionStore,
        *,
        ttl: timedelta = DEFAULT_SESSION_TTL,
        clock: Clock = _utcnow,
    ) -> None:
        self._store = store
        self._ttl = ttl
        self._clock = clock

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    async def create_session(
        self,
        admin: AdministratorIdentity,
        metadata: Mapping[str, Any] | None = None,
    ) -> AdminSession:
        metadata = metadata or {}
        now = self._clock()
        session = AdminSession(
            session_id=new_session_id(),
            admin_id=admin.subject_id,
            society_id=admin.society_id,
            admin_role=admin.role.value,
            created_at=now,
            last_seen_at=now,
            ip_address=metadata.get("ip_address"),
            user_agent=metadata.get("user_agent"),
        )
        previous = await self._store.replace_active(session)
        if previous is not None:
            logger.info(
                "Superseded admin session admin=%s previous=%s",
                admin.subject_id,
                previous.session_id[:8],
            )
        logger.info("Created admin session admin=%s society=%s", admin.subject_id, admin.society_id)
        return session

    async def get_active_session(self, admin_id: str) -> AdminSession | None:
        return await self._store.get_active(admin_id)

    async def get_session(self, session_id: str) -> AdminSession | None:
        return await self._store.get(session_id)

    async def invalidate_session(self, admin_id: str) -> None:
        ended = await self._store.deactivate_active(admin_id, self._clock())
        if ended is not None:
            logger.info("Invalidated admin session admin=%s", admin_id)

    async def touch(self, admin_id: str) -> AdminSession | None:
        return await self._store.touch(admin_id, self._clock())

    async def list_active_sessions(self, society_id: str) -> list[AdminSession]:
        return await self._store.list_active(society_id)

    async def cleanup_expired_sessions(self) -> int:
        removed = await self._store.sweep(self._clock() - self._ttl)
        if removed:
            logger.info("Cleaned up %d expired admin sessions", removed)
        return removed
