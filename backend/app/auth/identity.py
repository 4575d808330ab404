"""Request-scoped administrator identity and the data scope derived from it."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from .permission_matrix import Role


@dataclass(frozen=True)
class AdministratorIdentity:
    """An authenticated privileged user, immutable for the request's duration."""
    subject_id: str
    role: Role
    society_id: str
    assigned_wings: frozenset[str] = field(default_factory=frozenset)
    home_wing: str | None = None
    name: str | None = None
    email: str | None = None

    def __post_init__(self) -> None:
        if not self.subject_id:
            raise ValueError("subject_id is required")
        if not self.society_id:
            raise ValueError("society_id is required")
        if not isinstance(self.role, Role):
            object.__setattr__(self, "role", Role(self.role))
        if not isinstance(self.assigned_wings, frozenset):
            object.__setattr__(self, "assigned_wings", frozenset(self.assigned_wings))

    @property
    def display_name(self) -> str:
        return self.name or "Admin User"


@dataclass(frozen=True)
class EffectiveScope:
    """Which wings of the society an administrator may touch.

    allowed_wings is None when the administrator is not wing restricted,
    meaning every wing in the society.
    """
    wing_restricted: bool
    allowed_wings: frozenset[str] | None = None

    def permits(self, wing: str | None) -> bool:
        if self.allowed_wings is None:
            return True
        return wing is not None and wing in self.allowed_wings

    def permits_all(self, wings: Iterable[str | None]) -> bool:
        return all(self.permits(wing) for wing in wings)


UNRESTRICTED_SCOPE = EffectiveScope(wing_restricted=False, allowed_wings=None)


def compute_effective_scope(identity: AdministratorIdentity) -> EffectiveScope:
    """Derive the data scope for an administrator.

    Wing chairmen are restricted to their assigned wings; with no assignment
    they fall back to their own home wing.
    """
    if identity.role is not Role.WING_CHAIRMAN:
        return UNRESTRICTED_SCOPE

    if identity.assigned_wings:
        return EffectiveScope(wing_restricted=True, allowed_wings=identity.assigned_wings)

    # TODO: confirm with product whether an empty assignment should fall back to the home wing
    fallback = frozenset({identity.home_wing}) if identity.home_wing else frozenset()
    return EffectiveScope(wing_restricted=True, allowed_wings=fallback)


@dataclass(frozen=True)
class AuthContext:
    identity: AdministratorIdentity
    scope: EffectiveScope

    @property
    def admin_id(self) -> str:
        return self.identity.subject_id

    @property
    def role(self) -> Role:
        return self.identity.role
