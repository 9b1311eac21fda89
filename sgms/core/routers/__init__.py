"""
Routers mounted by the main application.

"""

from sgms.core.routers.auth import router as auth_router
from sgms.core.routers.users import router as users_router

__all__ = ["auth_router", "users_router"]
