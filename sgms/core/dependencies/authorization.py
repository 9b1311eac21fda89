"""
Role and permission guards.

Each factory returns a dependency that resolves to the authenticated active
user, or raises 403 naming what was required.

Example usage:
    @router.get("/", dependencies=[Depends(require_min_role(UserRole.MANAGER))])
    async def list_members(): ...

    @router.delete("/{user_id}")
    async def delete_member(actor: Annotated[User, Depends(require_permission("users:delete"))]): ...
"""

from typing import Annotated, Callable
from uuid import UUID

from fastapi import Depends, Request

from sgms.core.config import auth_logger
from sgms.core.db.models import User
from sgms.core.dependencies.auth import get_current_active_user
from sgms.core.enums import UserRole
from sgms.core.exceptions.types import (
    BadRequestException,
    ForbiddenException,
    InsufficientPermissionException,
    InsufficientRoleException,
)
from sgms.core.permissions import is_elevated, is_role_at_least, missing_permissions


def require_role(*roles: UserRole) -> Callable:
    """Allow only users holding one of ``roles`` exactly."""
    allowed = set(roles)

    async def dependency(
        user: Annotated[User, Depends(get_current_active_user)],
    ) -> User:
        if user.role not in allowed:
            auth_logger.warning(
                f"Role check failed: user_id={user.id} role={user.role.value}"
            )
            raise InsufficientRoleException([role.value for role in roles])
        return user

    return dependency


def require_min_role(role: UserRole) -> Callable:
    """Allow users whose role is at least ``role`` in the hierarchy."""

    async def dependency(
        user: Annotated[User, Depends(get_current_active_user)],
    ) -> User:
        if not is_role_at_least(user.role, role):
            auth_logger.warning(
                f"Minimum role {role.value} not met: user_id={user.id} role={user.role.value}"
            )
            raise InsufficientRoleException([f"{role.value} or higher"])
        return user

    return dependency


def require_permission(*permissions: str) -> Callable:
    """Allow users whose role grants every one of ``permissions``."""

    async def dependency(
        user: Annotated[User, Depends(get_current_active_user)],
    ) -> User:
        missing = missing_permissions(user.role, permissions)
        if missing:
            auth_logger.warning(
                f"Permission check failed: user_id={user.id} missing={missing}"
            )
            raise InsufficientPermissionException(missing)
        return user

    return dependency


def require_owner_or_admin(field: str = "user_id") -> Callable:
    """
    Allow the user named by path parameter ``field``, or an elevated role.
    """

    async def dependency(
        request: Request,
        user: Annotated[User, Depends(get_current_active_user)],
    ) -> User:
        raw = request.path_params.get(field)
        if raw is None:
            raise BadRequestException(f"Missing path parameter '{field}'.")
        try:
            target_id = UUID(str(raw))
        except ValueError:
            raise BadRequestException(f"Invalid {field}.")

        if target_id != user.id and not is_elevated(user.role):
            auth_logger.warning(
                f"Ownership check failed: user_id={user.id} target={target_id}"
            )
            raise ForbiddenException("You can only access your own resources.")
        return user

    return dependency


__all__ = [
    "require_role",
    "require_min_role",
    "require_permission",
    "require_owner_or_admin",
]
