from datetime import datetime, timezone
from typing import (
    Any,
    TypeVar,
    Generic,
    Type,
    Sequence,
    Callable,
)
from uuid import UUID

from sqlalchemy import (
    SQLColumnExpression,
    and_,
    func,
    update as sa_update,
    delete as sa_delete,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.sql import Select, Delete, Update

from sgms.core.exceptions.types import ConflictException, DatabaseException

T = TypeVar("T")


class BaseDB(Generic[T]):
    """
    Generic async CRUD over one model.

    Write methods take ``commit_self``: when True the session is committed,
    otherwise it is only flushed and the caller owns the transaction.
    Driver errors are re-raised as ``DatabaseException``; constraint
    violations become ``ConflictException``.
    """

    def __init__(self, model: Type[T]):
        self.model = model

    async def _finish(self, session: AsyncSession, commit_self: bool) -> None:
        if commit_self:
            await session.commit()
        else:
            await session.flush()

    def _wrap_error(self, action: str, e: Exception) -> Exception:
        if isinstance(e, IntegrityError):
            return ConflictException(
                f"{self.model.__name__} conflicts with an existing record."
            )
        return DatabaseException(f"Error {action} {self.model.__name__}: {str(e)}")

    async def get_by_id(
        self, session: AsyncSession, id: UUID, options: list[Any] | None = None
    ) -> T | None:
        """
        Retrieve an instance of the model by its primary key.

        Args:
            session (AsyncSession): The asynchronous database session.
            id (UUID): Primary key value.
            options (list[Any] | None): Loader options (e.g. selectinload).

        Returns:
            T | None: The model instance if found, otherwise None.

        Raises:
            DatabaseException: If an error occurs while querying the database.
        """
        try:
            stmt: Select = (
                select(self.model)
                .options(*(options or []))
                .where(getattr(self.model, "id") == id)
            )
            result = await session.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise self._wrap_error(f"retrieving (id={id})", e) from e

    async def get_one_by_conditions(
        self,
        session: AsyncSession,
        conditions: Sequence[SQLColumnExpression],
        order_by: Sequence[Any] | None = None,
        fresh: bool = False,
    ) -> T | None:
        """
        Retrieve the first record matching SQLAlchemy conditions.

        Args:
            session (AsyncSession): The asynchronous database session.
            conditions (Sequence[SQLColumnExpression]): Conditions joined with AND.
            order_by (Sequence[Any] | None): Optional ordering, applied before picking the first row.
            fresh (bool): Overwrite any copy already in the session with the row just read.

        Returns:
            T | None: An instance of the model if found, otherwise None.
        """
        try:
            stmt = select(self.model).where(and_(*conditions))
            if order_by:
                stmt = stmt.order_by(*order_by)
            if fresh:
                stmt = stmt.execution_options(populate_existing=True)
            result = await session.execute(stmt.limit(1))
            return result.scalars().first()
        except (SQLAlchemyError, ValueError) as e:
            raise self._wrap_error("retrieving one by conditions", e) from e

    async def get_by_conditions(
        self,
        session: AsyncSession,
        conditions: Sequence[SQLColumnExpression],
    ) -> Sequence[T]:
        try:
            stmt = select(self.model).where(and_(*conditions))
            result = await session.execute(stmt)
            return result.scalars().all()
        except (SQLAlchemyError, ValueError) as e:
            raise self._wrap_error("retrieving by conditions", e) from e

    async def count_by_conditions(
        self,
        session: AsyncSession,
        conditions: Sequence[SQLColumnExpression],
    ) -> int:
        """Count records matching the conditions."""
        try:
            stmt = select(func.count()).select_from(self.model).where(and_(*conditions))
            result = await session.execute(stmt)
            return int(result.scalar_one())
        except SQLAlchemyError as e:
            raise self._wrap_error("counting", e) from e

    async def paginate(
        self,
        session: AsyncSession,
        conditions: Sequence[SQLColumnExpression],
        order_by: Sequence[Any],
        page: int,
        limit: int,
    ) -> tuple[Sequence[T], int]:
        """
        Return one page of records and the total number of matches.

        Args:
            session (AsyncSession): The asynchronous database session.
            conditions (Sequence[SQLColumnExpression]): Filters joined with AND.
            order_by (Sequence[Any]): Ordering expressions.
            page (int): 1-based page number.
            limit (int): Page size.

        Returns:
            tuple[Sequence[T], int]: The page items and the total count.
        """
        total = await self.count_by_conditions(session, conditions)
        try:
            stmt = (
                select(self.model)
                .where(and_(*conditions))
                .order_by(*order_by)
                .offset((page - 1) * limit)
                .limit(limit)
            )
            result = await session.execute(stmt)
            return result.scalars().all(), total
        except SQLAlchemyError as e:
            raise self._wrap_error("paginating", e) from e

    async def exists(
        self, session: AsyncSession, conditions: Sequence[SQLColumnExpression]
    ) -> bool:
        return await self.get_one_by_conditions(session, conditions) is not None

    async def create(
        self,
        session: AsyncSession,
        data: dict,
        validate: Callable[[dict], dict] | None = None,
        commit_self: bool = True,
    ) -> T:
        """
        Create and persist a new instance of the model.

        Args:
            session (AsyncSession): The SQLAlchemy asynchronous session.
            data (dict): Field values for the new instance.
            validate (Callable[[dict], dict] | None): Optional transform applied to ``data`` first.
            commit_self (bool): Commit when True, otherwise only flush.

        Returns:
            T: The newly created instance.

        Raises:
            ConflictException: If a unique constraint is violated.
            DatabaseException: For any other database error.
        """
        try:
            if validate:
                data = validate(data)

            obj = self.model(**data)
            session.add(obj)
            await self._finish(session, commit_self)
            await session.refresh(obj)
            return obj
        except (SQLAlchemyError, ValueError) as e:
            raise self._wrap_error("creating", e) from e

    async def update(
        self, session: AsyncSession, id: UUID, updates: dict, commit_self: bool = True
    ) -> T | None:
        """
        Update the record with the given ID and return it.

        Returns:
            T | None: The updated instance, or None if no record has that ID.

        Raises:
            ConflictException: If a unique constraint is violated.
            DatabaseException: For any other database error.
        """
        try:
            stmt: Update = (
                sa_update(self.model)
                .where(self.model.id == id)  # type: ignore[attr-defined]
                .values(**updates)
                .returning(self.model)
                .execution_options(synchronize_session=False, populate_existing=True)
            )
            result = await session.execute(stmt)
            obj = result.scalar_one_or_none()
            await self._finish(session, commit_self)
            return obj
        except SQLAlchemyError as e:
            raise self._wrap_error(f"updating (id={id})", e) from e

    async def update_by_conditions(
        self,
        session: AsyncSession,
        conditions: Sequence[SQLColumnExpression],
        updates: dict,
        commit_self: bool = True,
    ) -> int:
        """
        Update every record matching the conditions.

        Returns:
            int: The number of records updated.
        """
        try:
            stmt: Update = (
                sa_update(self.model)
                .where(and_(*conditions))
                .values(**updates)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            await self._finish(session, commit_self)
            return result.rowcount  # type: ignore[attr-defined]
        except SQLAlchemyError as e:
            raise self._wrap_error("updating by conditions", e) from e

    async def delete_by_conditions(
        self,
        session: AsyncSession,
        conditions: Sequence[SQLColumnExpression],
        commit_self: bool = True,
    ) -> int:
        """
        Hard-delete every record matching the conditions.

        Returns:
            int: The number of records deleted.
        """
        try:
            stmt: Delete = (
                sa_delete(self.model)
                .where(and_(*conditions))
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            await self._finish(session, commit_self)
            return result.rowcount  # type: ignore[attr-defined]
        except SQLAlchemyError as e:
            raise self._wrap_error("deleting by conditions", e) from e

    async def soft_delete(
        self, session: AsyncSession, id: UUID, commit_self: bool = True
    ) -> T | None:
        """
        Mark a record as deleted without removing it.

        Sets ``is_deleted=True`` and stamps ``deleted_at``. Only meaningful for
        models carrying the soft-delete columns.

        Returns:
            T | None: The soft-deleted instance, or None if no record has that ID.
        """
        now = datetime.now(timezone.utc)
        return await self.update(
            session,
            id,
            {"is_deleted": True, "deleted_at": now, "updated_at": now},
            commit_self=commit_self,
        )


__all__ = ["BaseDB"]
