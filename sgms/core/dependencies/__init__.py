"""
Shared dependencies for FastAPI endpoints.

"""

from sgms.core.dependencies.auth import (
    get_current_user,
    get_current_active_user,
    CurrentUser,
    CurrentActiveUser,
    bearer_scheme,
)
from sgms.core.dependencies.authorization import (
    require_role,
    require_min_role,
    require_permission,
    require_owner_or_admin,
)
from sgms.core.dependencies.db import get_async_session

__all__ = [
    "get_current_user",
    "get_current_active_user",
    "CurrentUser",
    "CurrentActiveUser",
    "bearer_scheme",
    "require_role",
    "require_min_role",
    "require_permission",
    "require_owner_or_admin",
    "get_async_session",
]
