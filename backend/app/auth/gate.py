"""
Permission gate for admin routes.

Composes the credential resolver with the permission matrix and exposes the
FastAPI dependencies every privileged route goes through:

- authenticate: resolve the bearer credential into an AuthContext (401/400)
- require_permission(resource, action): matrix check (403)
- require_admin / require_super_admin: role-exclusive checks (403)

Wing scoping is enforced once the target records are loaded, through
AuthorizedAdmin.ensure_wing_access. The gate never writes audit entries.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, TypeVar

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials

from ..dependencies import bearer_scheme, get_auth_resolver
from ..errors import AuthenticationError, ForbiddenError
from .context import AuthContextResolver
from .identity import AuthContext, EffectiveScope
from .permission_matrix import ADMIN_ROLES, Role, has_permission, is_wing_scoped

logger = logging.getLogger("oursociety.auth")

T = TypeVar("T")

OUTSIDE_WINGS_MESSAGE = "Access denied: target is outside your assigned wings"


class DenialReason(str, Enum):
    GRANTED = "granted"
    INSUFFICIENT_PERMISSION = "insufficient_permission"
    OUTSIDE_ASSIGNED_WINGS = "outside_assigned_wings"


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: DenialReason
    resource: str
    action: str

    @property
    def message(self) -> str:
        if self.reason is DenialReason.INSUFFICIENT_PERMISSION:
            return f"Insufficient permissions. Required: {self.resource}:{self.action}"
        if self.reason is DenialReason.OUTSIDE_ASSIGNED_WINGS:
            return OUTSIDE_WINGS_MESSAGE
        return "Access granted"


def _wing_check_applies(context: AuthContext, resource: str) -> bool:
    return context.scope.wing_restricted or is_wing_scoped(context.role, resource)


def authorize(
    context: AuthContext,
    resource: str,
    action: str,
    target_wings: Iterable[str | None] = (),
) -> AccessDecision:
    """Evaluate a request against the matrix and the caller's wing scope."""
    if not has_permission(context.role, resource, action):
        return AccessDecision(False, DenialReason.INSUFFICIENT_PERMISSION, resource, action)

    wings = tuple(target_wings)
    if wings and _wing_check_applies(context, resource) and not context.scope.permits_all(wings):
        return AccessDecision(False, DenialReason.OUTSIDE_ASSIGNED_WINGS, resource, action)

    return AccessDecision(True, DenialReason.GRANTED, resource, action)


def enforce_access(
    context: AuthContext,
    resource: str,
    action: str,
    target_wings: Iterable[str | None] = (),
) -> AccessDecision:
    decision = authorize(context, resource, action, target_wings)
    if not decision.allowed:
        logger.warning(
            "Access denied admin=%s role=%s resource=%s action=%s reason=%s",
            context.admin_id,
            context.role.value,
            resource,
            action,
            decision.reason.value,
        )
        raise ForbiddenError(
            decision.message,
            details={"reason": decision.reason.value, "required": f"{resource}:{action}"},
        )
    return decision


def filter_by_wing_access(
    items: Iterable[T],
    scope: EffectiveScope,
    wing_of: Callable[[T], str | None],
) -> list[T]:
    """Drop items whose wing falls outside a restricted scope."""
    if not scope.wing_restricted:
        return list(items)
    return [item for item in items if scope.permits(wing_of(item))]


def request_metadata(request: Request) -> dict[str, str | None]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip_address = forwarded.split(",")[0].strip() or None
    else:
        ip_address = request.client.host if request.client else None
    return {"ip_address": ip_address, "user_agent": request.headers.get("user-agent")}


async def authenticate(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    resolver: AuthContextResolver = Depends(get_auth_resolver),
) -> AuthContext:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError("No authentication token provided")

    context = await resolver.resolve(credentials.credentials)
    request.state.auth_context = context
    return context


@dataclass(frozen=True)
class AuthorizedAdmin:
    """Caller that passed require_permission for one resource/action."""
    context: AuthContext
    resource: str
    action: str

    @property
    def identity(self):
        return self.context.identity

    @property
    def scope(self) -> EffectiveScope:
        return self.context.scope

    def ensure_wing_access(self, *wings: str | None) -> None:
        enforce_access(self.context, self.resource, self.action, wings)


def require_permission(resource: str, action: str) -> Callable:
    """Build a dependency that admits callers holding resource:action."""

    async def dependency(context: AuthContext = Depends(authenticate)) -> AuthorizedAdmin:
        enforce_access(context, resource, action)
        return AuthorizedAdmin(context=context, resource=resource, action=action)

    return dependency


def _require_roles(roles: frozenset[Role], message: str) -> Callable:
    async def dependency(context: AuthContext = Depends(authenticate)) -> AuthContext:
        if context.role not in roles:
            logger.warning(
                "Role check failed admin=%s role=%s required=%s",
                context.admin_id,
                context.role.value,
                sorted(role.value for role in roles),
            )
            raise ForbiddenError(message)
        return context

    return dependency


require_admin = _require_roles(ADMIN_ROLES, "Admin privileges required")
require_super_admin = _require_roles(frozenset({Role.SUPER_ADMIN}), "Super admin privileges required")
