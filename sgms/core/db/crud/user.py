from datetime import datetime, timedelta, timezone
from typing import Sequence
from uuid import UUID

from sqlalchemy import asc, case, desc, func, null, or_, update as sa_update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sgms.core.db.crud.base import BaseDB
from sgms.core.db.models import User
from sgms.core.enums import SortOrder, UserRole, UserSortField, UserStatus


class UserDB(BaseDB[User]):
    def __init__(self):
        super().__init__(model=User)

    async def get_active_by_id(self, session: AsyncSession, user_id: UUID) -> User | None:
        """Fetch a user that has not been soft-deleted."""
        return await self.get_one_by_conditions(
            session,
            [User.id == user_id, User.is_deleted.is_(False)],
            fresh=True,
        )

    async def get_by_email(self, session: AsyncSession, email: str) -> User | None:
        return await self.get_one_by_conditions(
            session,
            [User.email == email.strip().lower(), User.is_deleted.is_(False)],
            fresh=True,
        )

    async def get_by_identifier(
        self, session: AsyncSession, identifier: str
    ) -> User | None:
        """Look a user up by email or username."""
        identifier = identifier.strip()
        return await self.get_one_by_conditions(
            session,
            [
                or_(User.email == identifier.lower(), User.username == identifier),
                User.is_deleted.is_(False),
            ],
            fresh=True,
        )

    async def find_taken_field(
        self,
        session: AsyncSession,
        email: str | None = None,
        username: str | None = None,
        exclude_id: UUID | None = None,
    ) -> str | None:
        """
        Report which unique identity field is already in use.

        Soft-deleted accounts still hold their email and username, since the
        unique constraints span every row.

        Returns:
            str | None: "email", "username", or None when both are free.
        """
        for field, value in (("email", email), ("username", username)):
            if value is None:
                continue
            column = getattr(User, field)
            conditions = [column == (value.lower() if field == "email" else value)]
            if exclude_id is not None:
                conditions.append(User.id != exclude_id)
            if await self.exists(session, conditions):
                return field
        return None

    async def register_failed_login(
        self,
        session: AsyncSession,
        user_id: UUID,
        max_attempts: int,
        lock_minutes: int,
        commit_self: bool = True,
    ) -> tuple[int, datetime | None]:
        """
        Atomically record a failed login and lock the account at the limit.

        The counter restarts at 1 when a previous lock has already run out.
        Increment and lock happen in one UPDATE, so concurrent failures cannot
        both read a stale count.

        Returns:
            tuple[int, datetime | None]: The new attempt count and ``lock_until``.
        """
        now = datetime.now(timezone.utc)
        lock_expired = (User.lock_until.is_not(None)) & (User.lock_until <= now)
        next_attempts = case((lock_expired, 1), else_=User.login_attempts + 1)

        try:
            stmt = (
                sa_update(User)
                .where(User.id == user_id)
                .values(
                    login_attempts=next_attempts,
                    lock_until=case(
                        (next_attempts >= max_attempts, now + timedelta(minutes=lock_minutes)),
                        (lock_expired, null()),
                        else_=User.lock_until,
                    ),
                    updated_at=now,
                )
                .returning(User.login_attempts, User.lock_until)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            row = result.one()
            await self._finish(session, commit_self)
            return row.login_attempts, row.lock_until
        except SQLAlchemyError as e:
            raise self._wrap_error("recording failed login for", e) from e

    async def register_successful_login(
        self, session: AsyncSession, user_id: UUID, commit_self: bool = True
    ) -> User | None:
        now = datetime.now(timezone.utc)
        return await self.update(
            session,
            user_id,
            {"login_attempts": 0, "lock_until": None, "last_login_at": now},
            commit_self=commit_self,
        )

    async def search(
        self,
        session: AsyncSession,
        page: int,
        limit: int,
        search: str | None = None,
        role: UserRole | None = None,
        status: UserStatus | None = None,
        sort_by: UserSortField = UserSortField.CREATED_AT,
        sort_order: SortOrder = SortOrder.DESC,
    ) -> tuple[Sequence[User], int]:
        """
        Page through members, optionally filtered and searched.

        ``search`` is a case-insensitive substring match over email, username,
        first name and last name.
        """
        conditions = [User.is_deleted.is_(False)]
        if search:
            pattern = f"%{search.strip().lower()}%"
            conditions.append(
                or_(
                    func.lower(User.email).like(pattern),
                    func.lower(User.username).like(pattern),
                    func.lower(User.first_name).like(pattern),
                    func.lower(User.last_name).like(pattern),
                )
            )
        if role is not None:
            conditions.append(User.role == role)
        if status is not None:
            conditions.append(User.status == status)

        column = getattr(User, sort_by.value)
        direction = asc if sort_order == SortOrder.ASC else desc
        # id breaks ties so pages stay stable
        order_by = [direction(column), direction(User.id)]

        return await self.paginate(session, conditions, order_by, page, limit)


__all__ = ["UserDB"]
