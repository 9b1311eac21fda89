"""
CRUD operations for the RefreshToken model.

"""

from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy import and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from sgms.core.db.crud.base import BaseDB
from sgms.core.db.models.refresh_token import RefreshToken


class RefreshTokenDB(BaseDB[RefreshToken]):
    def __init__(self):
        super().__init__(model=RefreshToken)

    async def get_by_jti(self, session: AsyncSession, jti: str) -> RefreshToken | None:
        return await self.get_one_by_conditions(
            session, [RefreshToken.jti == jti], fresh=True
        )

    async def revoke(
        self, session: AsyncSession, jti: str, commit_self: bool = True
    ) -> bool:
        """
        Revoke a token by ``jti`` unless it is already revoked.

        Returns:
            bool: True if this call revoked the token. False when it was
            already revoked (a concurrent rotation or logout got there first)
            or is unknown.
        """
        count = await self.update_by_conditions(
            session,
            [RefreshToken.jti == jti, RefreshToken.revoked_at.is_(None)],
            {"revoked_at": datetime.now(timezone.utc)},
            commit_self=commit_self,
        )
        return count > 0

    async def revoke_all_for_user(
        self, session: AsyncSession, user_id: UUID, commit_self: bool = True
    ) -> int:
        """
        Revoke every live token of a user (sign out everywhere).

        Returns:
            int: The number of tokens revoked.
        """
        return await self.update_by_conditions(
            session,
            [RefreshToken.user_id == user_id, RefreshToken.revoked_at.is_(None)],
            {"revoked_at": datetime.now(timezone.utc)},
            commit_self=commit_self,
        )

    async def delete_expired(
        self,
        session: AsyncSession,
        retention_days: int = 7,
        commit_self: bool = True,
    ) -> int:
        """
        Hard-delete tokens that expired or were revoked over ``retention_days`` ago.

        Example:
            >>> count = await db.delete_expired(session, retention_days=7)
        """
        cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
        return await self.delete_by_conditions(
            session,
            [
                or_(
                    RefreshToken.expires_at < cutoff,
                    and_(
                        RefreshToken.revoked_at.is_not(None),
                        RefreshToken.revoked_at < cutoff,
                    ),
                )
            ],
            commit_self=commit_self,
        )


__all__ = ["RefreshTokenDB"]
