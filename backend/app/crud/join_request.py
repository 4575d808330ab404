import uuid
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.join_request import JoinRequest


class JoinRequestRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, request_id: uuid.UUID) -> JoinRequest | None:
        return await self.session.get(JoinRequest, request_id)

    async def list_by_society(
        self, society_id: str, *, status: str | None = None
    ) -> list[JoinRequest]:
        query = select(JoinRequest).where(JoinRequest.society_id == society_id)
        if status is not None:
            query = query.where(JoinRequest.status == status)
        query = query.order_by(JoinRequest.created_at.desc())
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def save_review(
        self,
        request_id: uuid.UUID,
        *,
        status: str,
        reviewed_by: str,
        reviewed_at: datetime,
        rejection_reason: str | None = None,
    ) -> JoinRequest | None:
        """Move a pending request to its reviewed state.

        Returns None when the row is no longer pending, so two concurrent
        reviews cannot both succeed.
        """
        result = await self.session.execute(
            update(JoinRequest)
            .where(JoinRequest.id == request_id, JoinRequest.status == "pending")
            .values(
                status=status,
                reviewed_by=reviewed_by,
                reviewed_at=reviewed_at,
                rejection_reason=rejection_reason,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.session.rollback()
            return None
        await self.session.commit()
        join_request = await self.session.get(JoinRequest, request_id, populate_existing=True)
        return join_request
