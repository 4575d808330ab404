"""Resolve a bearer credential into an administrator identity and data scope."""
from __future__ import annotations

import asyncio
import logging

from ..domain.ports.identity import AdministratorLookup, AdministratorRecord, TokenVerifier
from ..errors import (
    AdministratorMisconfiguredError,
    AuthenticationError,
    DatabaseError,
    ExternalServiceError,
)
from .identity import AdministratorIdentity, AuthContext, compute_effective_scope
from .permission_matrix import parse_role

logger = logging.getLogger("oursociety.auth")

DEFAULT_TIMEOUT_SECONDS = 5.0


class AuthContextResolver:
    def __init__(
        self,
        verifier: TokenVerifier,
        lookup: AdministratorLookup,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self._verifier = verifier
        self._lookup = lookup
        self._timeout = timeout_seconds

    async def resolve(self, credential: str | None) -> AuthContext:
        if not credential or not credential.strip():
            raise AuthenticationError("No authentication token provided")

        subject_id = await self._verify(credential)
        record = await self._find(subject_id)
        identity = self._build_identity(subject_id, record)
        return AuthContext(identity=identity, scope=compute_effective_scope(identity))

    async def _verify(self, credential: str) -> str:
        try:
            subject_id = await asyncio.wait_for(
                self._verifier.verify(credential), timeout=self._timeout
            )
        except asyncio.TimeoutError as exc:
            logger.warning("Token verification timed out after %.1fs", self._timeout)
            raise AuthenticationError("Authentication service timed out") from exc
        except (AuthenticationError, ExternalServiceError):
            raise
        except Exception as exc:
            logger.error("Token verification failed", exc_info=True)
            raise ExternalServiceError("Unable to verify session token") from exc
        if not subject_id:
            raise AuthenticationError("Invalid authentication token")
        return subject_id

    async def _find(self, subject_id: str) -> AdministratorRecord | None:
        try:
            return await asyncio.wait_for(
                self._lookup.find_administrator_by_subject(subject_id),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.error("Administrator lookup timed out subject=%s", subject_id)
            raise DatabaseError("Administrator lookup timed out") from exc
        except Exception as exc:
            logger.error("Administrator lookup failed subject=%s", subject_id, exc_info=True)
            raise DatabaseError("Administrator lookup failed") from exc

    @staticmethod
    def _build_identity(subject_id: str, record: AdministratorRecord | None) -> AdministratorIdentity:
        if record is None:
            raise AuthenticationError("User not found")
        if not record.admin_role:
            raise AuthenticationError("Admin privileges required")

        role = parse_role(record.admin_role)
        if role is None:
            logger.error(
                "Administrator has unknown role subject=%s role=%s",
                subject_id,
                record.admin_role,
            )
            raise AdministratorMisconfiguredError(
                "Administrator role is not recognised",
                details={"role": record.admin_role},
            )
        if not record.society_id:
            logger.error("Administrator has no society subject=%s", subject_id)
            raise AdministratorMisconfiguredError("Administrator is not linked to a society")

        wings = frozenset(wing for wing in (record.assigned_wings or ()) if wing)
        return AdministratorIdentity(
            subject_id=subject_id,
            role=role,
            society_id=record.society_id,
            assigned_wings=wings,
            home_wing=record.wing or None,
            name=record.name,
            email=record.email,
        )
