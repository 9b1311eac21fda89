"""
Static authorization policy: role hierarchy and role permission sets.

Each role has a numeric level used for "at least this role" checks and a set
of permission strings of the form ``<resource>:<action>``. Top roles hold the
wildcard ``*`` and pass every permission check.
"""

from typing import Iterable

from sgms.core.enums import UserRole

WILDCARD = "*"

ROLE_LEVELS: dict[UserRole, int] = {
    UserRole.CUSTOMER: 1,
    UserRole.TRAINER: 2,
    UserRole.STAFF: 3,
    UserRole.MANAGER: 4,
    UserRole.OWNER: 5,
    UserRole.ADMIN: 6,
}

_CUSTOMER_PERMISSIONS = frozenset(
    {
        "profile:read",
        "profile:update",
        "schedule:read",
        "booking:create",
        "booking:read",
        "booking:cancel",
    }
)
_TRAINER_PERMISSIONS = _CUSTOMER_PERMISSIONS | {
    "schedule:manage",
    "equipment:read",
}
_STAFF_PERMISSIONS = _TRAINER_PERMISSIONS | {
    "users:read",
    "equipment:update",
    "equipment:maintain",
    "booking:manage",
}
_MANAGER_PERMISSIONS = _STAFF_PERMISSIONS | {
    "users:create",
    "users:update",
    "users:delete",
    "equipment:create",
    "equipment:delete",
    "reports:view",
    "reports:export",
}

ROLE_PERMISSIONS: dict[UserRole, frozenset[str]] = {
    UserRole.CUSTOMER: _CUSTOMER_PERMISSIONS,
    UserRole.TRAINER: frozenset(_TRAINER_PERMISSIONS),
    UserRole.STAFF: frozenset(_STAFF_PERMISSIONS),
    UserRole.MANAGER: frozenset(_MANAGER_PERMISSIONS),
    UserRole.OWNER: frozenset({WILDCARD}),
    UserRole.ADMIN: frozenset({WILDCARD}),
}

# Roles that may act on resources owned by other users
ELEVATED_ROLES: frozenset[UserRole] = frozenset({UserRole.OWNER, UserRole.ADMIN})

# Every role must be mapped in both tables
_unmapped = (set(UserRole) - ROLE_LEVELS.keys()) | (
    set(UserRole) - ROLE_PERMISSIONS.keys()
)
if _unmapped:
    raise RuntimeError(f"Roles missing from the authorization policy: {_unmapped}")


def get_role_level(role: UserRole | str) -> int:
    """Return the hierarchy level of a role (0 for unknown roles)."""
    try:
        return ROLE_LEVELS[UserRole(role)]
    except ValueError:
        return 0


def get_role_permissions(role: UserRole | str) -> frozenset[str]:
    """Return the permission set of a role (empty for unknown roles)."""
    try:
        return ROLE_PERMISSIONS[UserRole(role)]
    except ValueError:
        return frozenset()


def is_role_at_least(role: UserRole | str, minimum: UserRole) -> bool:
    return get_role_level(role) >= ROLE_LEVELS[minimum]


def has_permission(role: UserRole | str, permission: str) -> bool:
    permissions = get_role_permissions(role)
    return WILDCARD in permissions or permission in permissions


def missing_permissions(role: UserRole | str, required: Iterable[str]) -> list[str]:
    """
    Return the subset of ``required`` the role does not hold.

    An empty list means every requested permission is granted.
    """
    return [perm for perm in required if not has_permission(role, perm)]


def is_elevated(role: UserRole | str) -> bool:
    try:
        return UserRole(role) in ELEVATED_ROLES
    except ValueError:
        return False


__all__ = [
    "WILDCARD",
    "ROLE_LEVELS",
    "ROLE_PERMISSIONS",
    "ELEVATED_ROLES",
    "get_role_level",
    "get_role_permissions",
    "is_role_at_least",
    "has_permission",
    "missing_permissions",
    "is_elevated",
]
