"""
Admin permission matrix - role -> resource -> allowed actions.

The matrix is static, process-wide configuration. It answers a single
question: may a role perform an action on a resource?

Rules:
- super_admin is a universal wildcard, evaluated BEFORE any table lookup.
  It has no table entry, so a missing row can never take access away.
- Unknown roles and unknown resources fail closed.
- "*" grants every action on a resource.
- "wing_only" is a scoping marker, not a grantable action. It tells the
  permission gate that row-level wing checks apply to that resource.
"""
from __future__ import annotations

from enum import Enum
from typing import Final, Mapping


# ============================================================================
# ROLES
# ============================================================================

class Role(str, Enum):
    """Administrator roles. Closed set; ordering carries no meaning."""
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    WING_CHAIRMAN = "wing_chairman"
    MODERATOR = "moderator"


ALL_ROLES: Final[frozenset[str]] = frozenset(role.value for role in Role)

# Roles allowed through require_admin regardless of the matrix
ADMIN_ROLES: Final[frozenset[Role]] = frozenset({Role.SUPER_ADMIN, Role.ADMIN})


# ============================================================================
# RESOURCES AND ACTIONS
# ============================================================================

class Resource(str, Enum):
    USERS = "users"
    MAINTENANCE = "maintenance"
    ANNOUNCEMENTS = "announcements"
    NOTIFICATIONS = "notifications"
    ANALYTICS = "analytics"
    SOCIETY = "society"
    FORUM = "forum"
    JOIN_REQUESTS = "join_requests"
    EVENTS = "events"


ALL_RESOURCES: Final[frozenset[str]] = frozenset(resource.value for resource in Resource)

WILDCARD_ACTION: Final[str] = "*"
WING_ONLY: Final[str] = "wing_only"

PermissionTable = Mapping[Role, Mapping[Resource, frozenset[str]]]


# ============================================================================
# MATRIX
# ============================================================================

ROLE_PERMISSIONS: Final[PermissionTable] = {
    Role.ADMIN: {
        Resource.MAINTENANCE: frozenset({"read", "write", "approve", "reject"}),
        Resource.USERS: frozenset({"read", "write", "deactivate"}),
        Resource.ANNOUNCEMENTS: frozenset({WILDCARD_ACTION}),
        Resource.NOTIFICATIONS: frozenset({WILDCARD_ACTION}),
        Resource.ANALYTICS: frozenset({WILDCARD_ACTION}),
        Resource.SOCIETY: frozenset({"read", "write"}),
        Resource.FORUM: frozenset({"moderate"}),
        Resource.JOIN_REQUESTS: frozenset({WILDCARD_ACTION}),
        Resource.EVENTS: frozenset({WILDCARD_ACTION}),
    },
    Role.WING_CHAIRMAN: {
        Resource.MAINTENANCE: frozenset({"read", "approve", WING_ONLY}),
        Resource.USERS: frozenset({"read", WING_ONLY}),
        Resource.ANNOUNCEMENTS: frozenset({"read", "write", WING_ONLY}),
        Resource.NOTIFICATIONS: frozenset({"read", "send", WING_ONLY}),
        Resource.ANALYTICS: frozenset({"read", WING_ONLY}),
        Resource.JOIN_REQUESTS: frozenset({"read", "approve", WING_ONLY}),
        Resource.EVENTS: frozenset({"read", "create"}),
    },
    Role.MODERATOR: {
        Resource.FORUM: frozenset({WILDCARD_ACTION}),
        Resource.ANNOUNCEMENTS: frozenset({"read"}),
        Resource.NOTIFICATIONS: frozenset({"read"}),
        Resource.USERS: frozenset({"read"}),
    },
}

# Capability summaries shown to the admin panel (display only, never enforced)
ROLE_CAPABILITIES: Final[Mapping[Role, Mapping[str, tuple[str, ...]]]] = {
    Role.SUPER_ADMIN: {
        "user_management": ("read", "write", "delete", "assign_roles"),
        "maintenance": ("read", "write", "approve", "reject", "bulk_operations"),
        "announcements": ("read", "write", "delete", "target_all"),
        "society": ("read", "write", "settings", "audit"),
        "forum": ("read", "write", "moderate", "delete"),
        "analytics": ("read", "export"),
        "admin_management": ("read", "write", "assign", "remove"),
    },
    Role.ADMIN: {
        "user_management": ("read", "write", "deactivate"),
        "maintenance": ("read", "write", "approve", "reject", "bulk_operations"),
        "announcements": ("read", "write", "target_all"),
        "society": ("read", "write"),
        "forum": ("read", "moderate"),
        "analytics": ("read",),
    },
    Role.WING_CHAIRMAN: {
        "user_management": ("read", WING_ONLY),
        "maintenance": ("read", "approve", WING_ONLY),
        "announcements": ("read", "write", WING_ONLY),
        "society": ("read",),
        "forum": ("read",),
        "analytics": ("read", WING_ONLY),
    },
    Role.MODERATOR: {
        "user_management": ("read",),
        "maintenance": ("read",),
        "announcements": ("read",),
        "society": ("read",),
        "forum": ("read", "moderate", "delete"),
        "analytics": ("read",),
    },
}


# ============================================================================
# LOOKUPS
# ============================================================================

def parse_role(value: str | None) -> Role | None:
    """Return the Role for a raw value, or None when it is not a known role."""
    if value is None:
        return None
    try:
        return Role(value)
    except ValueError:
        return None


def _grants(role: Role, resource: str) -> frozenset[str]:
    return ROLE_PERMISSIONS.get(role, {}).get(resource, frozenset())  # type: ignore[call-overload]


def has_permission(role: str | None, resource: str, action: str) -> bool:
    """Check whether a role may perform an action on a resource.

    Args:
        role: Role value (enum member or raw string)
        resource: Resource name, e.g. "maintenance"
        action: Action name, e.g. "approve"

    Returns:
        bool: True if allowed. Unknown roles/resources return False.
    """
    parsed = parse_role(role)
    if parsed is None:
        return False

    # Universal wildcard, never a table entry
    if parsed is Role.SUPER_ADMIN:
        return True

    if action == WING_ONLY:
        return False

    granted = _grants(parsed, resource)
    return action in granted or WILDCARD_ACTION in granted


def is_wing_scoped(role: str | None, resource: str) -> bool:
    """Whether the role's grant on a resource carries the wing_only marker."""
    parsed = parse_role(role)
    if parsed is None or parsed is Role.SUPER_ADMIN:
        return False
    return WING_ONLY in _grants(parsed, resource)


def get_role_permissions(role: str | None) -> list[str]:
    """Flatten a role's grants into sorted "resource:action" strings."""
    parsed = parse_role(role)
    if parsed is None:
        return []
    if parsed is Role.SUPER_ADMIN:
        return [WILDCARD_ACTION]
    return sorted(
        f"{resource.value}:{action}"
        for resource, actions in ROLE_PERMISSIONS.get(parsed, {}).items()
        for action in actions
    )


def get_role_capabilities(role: str | None) -> dict[str, list[str]]:
    parsed = parse_role(role)
    if parsed is None:
        return {}
    return {area: list(actions) for area, actions in ROLE_CAPABILITIES[parsed].items()}


# ============================================================================
# IMPORT-TIME VALIDATION
# ============================================================================

def _validate_matrix() -> None:
    """Fail fast on a malformed matrix."""
    errors = []

    if Role.SUPER_ADMIN in ROLE_PERMISSIONS:
        errors.append("super_admin must not have a table entry; it is evaluated as a rule")

    for role, grants in ROLE_PERMISSIONS.items():
        if role.value not in ALL_ROLES:
            errors.append(f"Invalid role in matrix: {role}")
            continue
        for resource, actions in grants.items():
            if resource.value not in ALL_RESOURCES:
                errors.append(f"Role '{role.value}' references unknown resource '{resource}'")
            if not actions - {WING_ONLY}:
                errors.append(
                    f"Role '{role.value}' grants no actions on '{resource.value}'"
                )

    for role in Role:
        if role not in ROLE_CAPABILITIES:
            errors.append(f"Role '{role.value}' has no capability summary")

    if errors:
        raise RuntimeError(
            "Permission matrix validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        )


_validate_matrix()
