import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.admin_audit_log import AdminAuditLog


class AdminAuditLogRepository:
    """Insert and query admin audit rows. There is no update or delete method."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        admin_id: str,
        admin_name: str,
        admin_role: str,
        society_id: str,
        action: str,
        resource: str,
        details: dict[str, Any],
        timestamp: datetime,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AdminAuditLog:
        audit_log = AdminAuditLog(
            admin_id=admin_id,
            admin_name=admin_name,
            admin_role=admin_role,
            society_id=society_id,
            action=action,
            resource=resource,
            details=details,
            timestamp=timestamp,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.session.add(audit_log)
        await self.session.commit()
        await self.session.refresh(audit_log)
        return audit_log

    async def get_by_id(self, audit_log_id: uuid.UUID) -> AdminAuditLog | None:
        return await self.session.get(AdminAuditLog, audit_log_id)

    @staticmethod
    def _conditions(
        society_id: str,
        admin_id: str | None,
        action: str | None,
        from_date: datetime | None,
        to_date: datetime | None,
    ) -> list:
        conditions = [AdminAuditLog.society_id == society_id]
        if admin_id is not None:
            conditions.append(AdminAuditLog.admin_id == admin_id)
        if action is not None:
            conditions.append(AdminAuditLog.action == action)
        if from_date is not None:
            conditions.append(AdminAuditLog.timestamp >= from_date)
        if to_date is not None:
            conditions.append(AdminAuditLog.timestamp <= to_date)
        return conditions

    async def list_by_filters(
        self,
        society_id: str,
        admin_id: str | None = None,
        action: str | None = None,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AdminAuditLog]:
        conditions = self._conditions(society_id, admin_id, action, from_date, to_date)
        query = (
            select(AdminAuditLog)
            .where(and_(*conditions))
            .order_by(AdminAuditLog.timestamp.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_by_filters(
        self,
        society_id: str,
        admin_id: str | None = None,
        action: str | None = None,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
    ) -> int:
        conditions = self._conditions(society_id, admin_id, action, from_date, to_date)
        result = await self.session.execute(
            select(func.count()).select_from(AdminAuditLog).where(and_(*conditions))
        )
        return int(result.scalar_one())
