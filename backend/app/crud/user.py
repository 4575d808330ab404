from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models.user import User


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_subject(self, subject_id: str) -> User | None:
        result = await self.session.execute(
            select(User).where(User.subject_id == subject_id)
        )
        return result.scalars().first()

    async def find_administrator_by_subject(self, subject_id: str) -> User | None:
        """Return the active user record for an identity subject, admin or not."""
        user = await self.get_by_subject(subject_id)
        if user is None or not user.is_active:
            return None
        return user


class SessionScopedUserLookup:
    """AdministratorLookup that opens a short-lived session per lookup."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def find_administrator_by_subject(self, subject_id: str) -> User | None:
        async with self._session_factory() as session:
            return await UserRepository(session).find_administrator_by_subject(subject_id)
