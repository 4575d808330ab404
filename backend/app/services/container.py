"""Wiring of the long-lived admin services held on app.state."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..auth.context import AuthContextResolver
from ..background.runner import PeriodicSweeper
from ..config import Settings
from ..crud.user import SessionScopedUserLookup
from ..domain.ports.audit import AuditStore
from ..domain.ports.identity import AdministratorLookup, TokenVerifier
from ..infrastructure.redis import RedisClient
from ..security.token_inspection import JWTTokenVerifier
from .admin.rate_limit_service import InMemoryRateLimitStore, RateLimiter, RedisRateLimitStore
from .admin.session_service import InMemorySessionStore, RedisSessionStore, SessionManager
from .audit.audit_service import AuditLogger, SqlAlchemyAuditStore

logger = logging.getLogger("oursociety")


@dataclass
class AdminServices:
    resolver: AuthContextResolver
    sessions: SessionManager
    rate_limiter: RateLimiter
    audit: AuditLogger
    sweeper: PeriodicSweeper

    async def start(self) -> None:
        await self.sweeper.start()

    async def shutdown(self) -> None:
        await self.sweeper.stop()
        await self.audit.drain()


def build_admin_services(
    settings: Settings,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    redis_client: RedisClient | None = None,
    verifier: TokenVerifier | None = None,
    lookup: AdministratorLookup | None = None,
    audit_store: AuditStore | None = None,
) -> AdminServices:
    """Assemble the admin services for the configured state backend."""
    if verifier is None:
        verifier = JWTTokenVerifier(
            settings.identity_verification_key,
            algorithm=settings.identity_algorithm,
            issuer=settings.identity_issuer,
            audience=settings.identity_audience,
        )
    if lookup is None or audit_store is None:
        if session_factory is None:
            raise ValueError("session_factory is required for the database-backed stores")
        lookup = lookup or SessionScopedUserLookup(session_factory)
        audit_store = audit_store or SqlAlchemyAuditStore(session_factory)

    ttl = timedelta(seconds=settings.session_ttl_seconds)
    if settings.state_backend == "redis":
        if redis_client is None:
            raise ValueError("redis_client is required when STATE_BACKEND=redis")
        session_store = RedisSessionStore(redis_client, ttl=ttl)
        rate_limit_store = RedisRateLimitStore(redis_client)
    else:
        session_store = InMemorySessionStore()
        rate_limit_store = InMemoryRateLimitStore()
    logger.info("Admin state backend: %s", settings.state_backend)

    sessions = SessionManager(session_store, ttl=ttl)
    rate_limiter = RateLimiter(rate_limit_store)

    sweeper = PeriodicSweeper(settings.sweep_interval_seconds)
    sweeper.register("admin-sessions", sessions.cleanup_expired_sessions)
    sweeper.register("admin-rate-limits", rate_limiter.sweep)

    return AdminServices(
        resolver=AuthContextResolver(
            verifier, lookup, timeout_seconds=settings.auth_timeout_seconds
        ),
        sessions=sessions,
        rate_limiter=rate_limiter,
        audit=AuditLogger(audit_store),
        sweeper=sweeper,
    )
