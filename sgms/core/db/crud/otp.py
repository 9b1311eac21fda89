"""
CRUD operations for the OTPRecord model.

Attempt counting and consumption are single conditional UPDATE statements,
so two concurrent verifications of the same record can never both succeed
or both slip past the attempt limit.
"""

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import or_, update as sa_update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sgms.core.db.crud.base import BaseDB
from sgms.core.db.models.otp import OTPRecord
from sgms.core.enums import OTPPurpose


class OTPRecordDB(BaseDB[OTPRecord]):
    def __init__(self):
        super().__init__(model=OTPRecord)

    async def count_active(
        self, session: AsyncSession, email: str, purpose: OTPPurpose
    ) -> int:
        """Count unused, unexpired codes for (email, purpose)."""
        now = datetime.now(timezone.utc)
        return await self.count_by_conditions(
            session,
            [
                OTPRecord.email == email,
                OTPRecord.purpose == purpose,
                OTPRecord.used_at.is_(None),
                OTPRecord.expires_at > now,
            ],
        )

    async def delete_stale(
        self,
        session: AsyncSession,
        email: str | None = None,
        purpose: OTPPurpose | None = None,
        commit_self: bool = True,
    ) -> int:
        """
        Hard-delete expired or used records.

        Scoped to (email, purpose) when given, otherwise table-wide.

        Returns:
            int: The number of records removed.
        """
        now = datetime.now(timezone.utc)
        conditions = [or_(OTPRecord.expires_at <= now, OTPRecord.used_at.is_not(None))]
        if email is not None:
            conditions.append(OTPRecord.email == email)
        if purpose is not None:
            conditions.append(OTPRecord.purpose == purpose)
        return await self.delete_by_conditions(session, conditions, commit_self=commit_self)

    async def get_by_hash(
        self,
        session: AsyncSession,
        email: str,
        purpose: OTPPurpose,
        code_hash: str,
    ) -> OTPRecord | None:
        """Most recent record for (email, purpose) whose code hashes to ``code_hash``."""
        return await self.get_one_by_conditions(
            session,
            [
                OTPRecord.email == email,
                OTPRecord.purpose == purpose,
                OTPRecord.code_hash == code_hash,
            ],
            order_by=[OTPRecord.created_at.desc()],
            fresh=True,
        )

    async def get_latest_pending(
        self, session: AsyncSession, email: str, purpose: OTPPurpose
    ) -> OTPRecord | None:
        """Most recently sent unused record for (email, purpose), expired or not."""
        return await self.get_one_by_conditions(
            session,
            [
                OTPRecord.email == email,
                OTPRecord.purpose == purpose,
                OTPRecord.used_at.is_(None),
            ],
            order_by=[OTPRecord.last_sent_at.desc(), OTPRecord.created_at.desc()],
            fresh=True,
        )

    async def increment_attempts(
        self,
        session: AsyncSession,
        email: str,
        purpose: OTPPurpose,
        max_attempts: int,
        commit_self: bool = True,
    ) -> list[int]:
        """
        Add one failed attempt to every active code for (email, purpose).

        A wrong guess could have been aimed at any of the active codes, so
        all of them are charged. Codes already at the limit are left alone.

        Returns:
            list[int]: The new attempt counts, empty when no active code was
            under the limit.
        """
        now = datetime.now(timezone.utc)
        try:
            stmt = (
                sa_update(OTPRecord)
                .where(
                    OTPRecord.email == email,
                    OTPRecord.purpose == purpose,
                    OTPRecord.used_at.is_(None),
                    OTPRecord.expires_at > now,
                    OTPRecord.attempts < max_attempts,
                )
                .values(attempts=OTPRecord.attempts + 1, updated_at=now)
                .returning(OTPRecord.attempts)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            attempts = list(result.scalars().all())
            await self._finish(session, commit_self)
            return attempts
        except SQLAlchemyError as e:
            raise self._wrap_error("incrementing attempts on", e) from e

    async def consume(
        self,
        session: AsyncSession,
        record_id: UUID,
        max_attempts: int,
        commit_self: bool = True,
    ) -> OTPRecord | None:
        """
        Mark a record used if it is still unused, unexpired and under the limit.

        Returns:
            OTPRecord | None: The consumed record, or None if another request
            consumed it first or it stopped being valid.
        """
        now = datetime.now(timezone.utc)
        try:
            stmt = (
                sa_update(OTPRecord)
                .where(
                    OTPRecord.id == record_id,
                    OTPRecord.used_at.is_(None),
                    OTPRecord.attempts < max_attempts,
                    OTPRecord.expires_at > now,
                )
                .values(used_at=now, updated_at=now)
                .returning(OTPRecord)
                .execution_options(synchronize_session=False, populate_existing=True)
            )
            result = await session.execute(stmt)
            record = result.scalar_one_or_none()
            await self._finish(session, commit_self)
            return record
        except SQLAlchemyError as e:
            raise self._wrap_error("consuming", e) from e

    async def regenerate(
        self,
        session: AsyncSession,
        record_id: UUID,
        code_hash: str,
        expires_at: datetime,
        commit_self: bool = True,
    ) -> OTPRecord | None:
        """Swap in a fresh code on an existing record and restart its counters."""
        now = datetime.now(timezone.utc)
        return await self.update(
            session,
            record_id,
            {
                "code_hash": code_hash,
                "attempts": 0,
                "expires_at": expires_at,
                "last_sent_at": now,
                "updated_at": now,
            },
            commit_self=commit_self,
        )


__all__ = ["OTPRecordDB"]
