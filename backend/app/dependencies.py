from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import TYPE_CHECKING

from fastapi import Depends, Request
from fastapi.security import HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from .crud.join_request import JoinRequestRepository
from .database import get_session
from .domain.ports.join_request import JoinRequestPort

if TYPE_CHECKING:
    from .auth.context import AuthContextResolver
    from .services.admin.rate_limit_service import RateLimiter
    from .services.admin.session_service import SessionManager
    from .services.audit.audit_service import AuditLogger
    from .services.container import AdminServices

bearer_scheme = HTTPBearer(auto_error=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async for session in get_session():
        yield session


def get_admin_services(request: Request) -> AdminServices:
    services = getattr(request.app.state, "admin_services", None)
    if services is None:
        raise RuntimeError("Admin services are not initialized")
    return services


def get_auth_resolver(request: Request) -> AuthContextResolver:
    return get_admin_services(request).resolver


def get_session_manager(request: Request) -> SessionManager:
    return get_admin_services(request).sessions


def get_rate_limiter(request: Request) -> RateLimiter:
    return get_admin_services(request).rate_limiter


def get_audit_logger(request: Request) -> AuditLogger:
    return get_admin_services(request).audit


def get_join_request_port(db: AsyncSession = Depends(get_db)) -> JoinRequestPort:
    return JoinRequestRepository(db)
