"""
Audit Service - append-only trail of privileged admin actions.

Every entry is a snapshot: actor fields are copied from the identity and the
details mapping is deep-copied into JSON-safe data, so later changes to the
caller's objects never reach the stored record.

Audit failures must never block admin operations. A failed write is logged
as an AuditWriteFailure on the "oursociety.audit" logger and swallowed.
"""
from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import asdict, replace
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ...auth.identity import AdministratorIdentity
from ...crud.audit_log import AdminAuditLogRepository
from ...domain.ports.audit import AuditLogEntry, AuditLogQuery, AuditStore
from ...errors import AuditWriteFailure
from ...models.admin_audit_log import AdminAuditLog

logger = logging.getLogger("oursociety.audit")

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def snapshot_details(details: Mapping[str, Any] | None) -> dict[str, Any]:
    """Deep copy details into plain JSON types (UUIDs, datetimes become strings)."""
    if not details:
        return {}
    return json.loads(json.dumps(dict(details), default=str))


def _matches(entry: AuditLogEntry, query: AuditLogQuery) -> bool:
    if entry.society_id != query.society_id:
        return False
    if query.action is not None and entry.action != query.action:
        return False
    if query.admin_id is not None and entry.admin_id != query.admin_id:
        return False
    if query.start is not None and entry.timestamp < query.start:
        return False
    if query.end is not None and entry.timestamp > query.end:
        return False
    return True


class InMemoryAuditStore:
    """Insert-only store for tests and single-instance deployments."""

    def __init__(self) -> None:
        self._entries: dict[str, AuditLogEntry] = {}

    async def append(self, entry: AuditLogEntry) -> AuditLogEntry:
        stored = replace(entry, id=str(uuid.uuid4()), details=snapshot_details(entry.details))
        self._entries[stored.id] = stored
        return replace(stored, details=snapshot_details(stored.details))

    async def get(self, entry_id: str) -> AuditLogEntry | None:
        entry = self._entries.get(entry_id)
        if entry is None:
            return None
        return replace(entry, details=snapshot_details(entry.details))

    async def list(
        self, query: AuditLogQuery, *, limit: int = 50, offset: int = 0
    ) -> list[AuditLogEntry]:
        matched = sorted(
            (entry for entry in self._entries.values() if _matches(entry, query)),
            key=lambda entry: entry.timestamp,
            reverse=True,
        )
        return [
            replace(entry, details=snapshot_details(entry.details))
            for entry in matched[offset:offset + limit]
        ]

    async def count(self, query: AuditLogQuery) -> int:
        return sum(1 for entry in self._entries.values() if _matches(entry, query))

    def __len__(self) -> int:
        return len(self._entries)


def _entry_from_row(row: AdminAuditLog) -> AuditLogEntry:
    return AuditLogEntry(
        id=str(row.id),
        admin_id=row.admin_id,
        admin_name=row.admin_name,
        admin_role=row.admin_role,
        society_id=row.society_id,
        action=row.action,
        resource=row.resource,
        details=dict(row.details or {}),
        timestamp=row.timestamp,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
    )


class SqlAlchemyAuditStore:
    """Persists entries to admin_audit_logs.

    Each call opens its own session so an audit write never shares a
    transaction with the request that triggered it.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def append(self, entry: AuditLogEntry) -> AuditLogEntry:
        async with self._session_factory() as session:
            row = await AdminAuditLogRepository(session).create(
                admin_id=entry.admin_id,
                admin_name=entry.admin_name,
                admin_role=entry.admin_role,
                society_id=entry.society_id,
                action=entry.action,
                resource=entry.resource,
                details=dict(entry.details),
                timestamp=entry.timestamp,
                ip_address=entry.ip_address,
                user_agent=entry.user_agent,
            )
            return _entry_from_row(row)

    async def get(self, entry_id: str) -> AuditLogEntry | None:
        try:
            key = uuid.UUID(entry_id)
        except ValueError:
            return None
        async with self._session_factory() as session:
            row = await AdminAuditLogRepository(session).get_by_id(key)
            return _entry_from_row(row) if row is not None else None

    async def list(
        self, query: AuditLogQuery, *, limit: int = 50, offset: int = 0
    ) -> list[AuditLogEntry]:
        async with self._session_factory() as session:
            rows = await AdminAuditLogRepository(session).list_by_filters(
                society_id=query.society_id,
                admin_id=query.admin_id,
                action=query.action,
                from_date=query.start,
                to_date=query.end,
                limit=limit,
                offset=offset,
            )
            return [_entry_from_row(row) for row in rows]

    async def count(self, query: AuditLogQuery) -> int:
        async with self._session_factory() as session:
            return await AdminAuditLogRepository(session).count_by_filters(
                society_id=query.society_id,
                admin_id=query.admin_id,
                action=query.action,
                from_date=query.start,
                to_date=query.end,
            )


class AuditLogger:
    """Builds audit entries for admin actions and hands them to a store."""

    def __init__(self, store: AuditStore, *, clock: Clock = _utcnow) -> None:
        self._store = store
        self._clock = clock
        self._pending: set[asyncio.Task] = set()

    @property
    def store(self) -> AuditStore:
        return self._store

    @property
    def pending(self) -> int:
        return len(self._pending)

    def build_entry(
        self,
        admin: AdministratorIdentity,
        action: str,
        resource: str,
        details: Mapping[str, Any] | None = None,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuditLogEntry:
        snapshot = snapshot_details(details)
        return AuditLogEntry(
            admin_id=admin.subject_id,
            admin_name=admin.display_name,
            admin_role=admin.role.value,
            society_id=admin.society_id,
            action=action,
            resource=resource,
            details=snapshot,
            timestamp=self._clock(),
            ip_address=ip_address or snapshot.get("ip_address"),
            user_agent=user_agent or snapshot.get("user_agent"),
        )

    async def log_admin_action(
        self,
        admin: AdministratorIdentity,
        action: str,
        resource: str,
        details: Mapping[str, Any] | None = None,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuditLogEntry | None:
        """
        Record a privileged action.

        Never raises: persistence failures are logged and None is returned.

        Args:
            admin: The acting administrator
            action: Action identifier (e.g. "approve_join_request")
            resource: Resource family (e.g. "join_requests")
            details: Action specific data, copied at call time
            ip_address: Client address; falls back to details["ip_address"]
            user_agent: Client user agent; falls back to details["user_agent"]

        Returns:
            The stored entry, or None when the write failed
        """
        try:
            entry = self.build_entry(
                admin,
                action,
                resource,
                details,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            stored = await self._store.append(entry)
        except Exception as exc:
            failure = AuditWriteFailure(f"audit write failed for action {action}")
            failure.__cause__ = exc
            logger.error(
                "Audit logging failed for action %s by %s",
                action,
                admin.subject_id,
                exc_info=failure,
            )
            return None

        record = asdict(stored)
        record["timestamp"] = stored.timestamp.isoformat()
        logger.info(
            "AUDIT: %s",
            json.dumps(record, ensure_ascii=False, default=str),
            extra={"audit_entry": record},
        )
        return stored

    def record(
        self,
        admin: AdministratorIdentity,
        action: str,
        resource: str,
        details: Mapping[str, Any] | None = None,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> asyncio.Task:
        """Schedule log_admin_action without waiting for it.

        The details snapshot is taken now, before the caller can mutate them.
        """
        task = asyncio.create_task(
            self.log_admin_action(
                admin,
                action,
                resource,
                snapshot_details(details),
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for every scheduled audit write to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def list_entries(
        self, query: AuditLogQuery, *, limit: int = 50, offset: int = 0
    ) -> tuple[list[AuditLogEntry], int]:
        entries = await self._store.list(query, limit=limit, offset=offset)
        total = await self._store.count(query)
        return entries, total

    async def get_entry(self, entry_id: str) -> AuditLogEntry | None:
        return await self._store.get(entry_id)
