"""
Tests for the CRUD layer's conditional updates and lookups.
"""

from datetime import datetime, timedelta, timezone
import uuid

import pytest

from tests.conftest import create_user


async def _otp(session, email="a@x.com", **overrides):
    from sgms.core.db.crud import otp_record_db
    from sgms.core.enums import OTPPurpose

    now = datetime.now(timezone.utc)
    data = {
        "email": email,
        "purpose": OTPPurpose.REGISTRATION,
        "code_hash": uuid.uuid4().hex,
        "attempts": 0,
        "expires_at": now + timedelta(minutes=10),
        "last_sent_at": now,
    }
    data.update(overrides)
    return await otp_record_db.create(session, data)


async def _refresh_token(session, user, **overrides):
    from sgms.core.db.crud import refresh_token_db

    data = {
        "user_id": user.id,
        "jti": uuid.uuid4().hex,
        "token_hash": uuid.uuid4().hex,
        "expires_at": datetime.now(timezone.utc) + timedelta(days=30),
    }
    data.update(overrides)
    return await refresh_token_db.create(session, data)


class TestUserDB:
    @pytest.mark.asyncio
    async def test_find_taken_field(self, db_session, test_user):
        from sgms.core.db.crud import user_db

        assert await user_db.find_taken_field(db_session, email="MEMBER@example.com") == "email"
        assert await user_db.find_taken_field(db_session, username="member") == "username"
        assert await user_db.find_taken_field(db_session, username="Member") is None
        assert (
            await user_db.find_taken_field(
                db_session, email="member@example.com", exclude_id=test_user.id
            )
            is None
        )

    @pytest.mark.asyncio
    async def test_duplicate_email_conflicts(self, db_session, test_user):
        from sgms.core.exceptions.types import ConflictException

        with pytest.raises(ConflictException):
            await create_user(db_session, username="someone-else")

    @pytest.mark.asyncio
    async def test_register_failed_login_locks_at_limit(self, db_session, test_user):
        from sgms.core.db.crud import user_db

        results = [
            await user_db.register_failed_login(db_session, test_user.id, 3, 60)
            for _ in range(3)
        ]

        assert [attempts for attempts, _ in results] == [1, 2, 3]
        assert results[0][1] is None
        assert results[2][1] is not None

    @pytest.mark.asyncio
    async def test_register_successful_login_resets(self, db_session):
        from sgms.core.db.crud import user_db

        user = await create_user(
            db_session,
            login_attempts=4,
            lock_until=datetime.now(timezone.utc) - timedelta(minutes=5),
        )

        updated = await user_db.register_successful_login(db_session, user.id)

        assert updated.login_attempts == 0
        assert updated.lock_until is None
        assert updated.last_login_at is not None

    @pytest.mark.asyncio
    async def test_soft_delete_hides_user(self, db_session, test_user):
        from sgms.core.db.crud import user_db

        deleted = await user_db.soft_delete(db_session, test_user.id)

        assert deleted.is_deleted is True
        assert deleted.deleted_at is not None
        assert await user_db.get_by_email(db_session, "member@example.com") is None
        assert await user_db.get_by_identifier(db_session, "member") is None


class TestOTPRecordDB:
    @pytest.mark.asyncio
    async def test_increment_attempts_stops_at_limit(self, db_session):
        from sgms.core.db.crud import otp_record_db
        from sgms.core.enums import OTPPurpose

        await _otp(db_session, attempts=1)

        assert await otp_record_db.increment_attempts(
            db_session, "a@x.com", OTPPurpose.REGISTRATION, 2
        ) == [2]
        assert await otp_record_db.increment_attempts(
            db_session, "a@x.com", OTPPurpose.REGISTRATION, 2
        ) == []

    @pytest.mark.asyncio
    async def test_increment_attempts_charges_every_active_code(self, db_session):
        from sgms.core.db.crud import otp_record_db
        from sgms.core.enums import OTPPurpose

        older = await _otp(db_session, attempts=3)
        newer = await _otp(db_session)
        used = await _otp(db_session, used_at=datetime.now(timezone.utc))
        expired = await _otp(
            db_session, expires_at=datetime.now(timezone.utc) - timedelta(minutes=1)
        )
        other_purpose = await _otp(db_session, purpose=OTPPurpose.PASSWORD_RESET)

        attempts = await otp_record_db.increment_attempts(
            db_session, "a@x.com", OTPPurpose.REGISTRATION, 5
        )

        assert sorted(attempts) == [1, 4]
        for record, expected in (
            (older, 4),
            (newer, 1),
            (used, 0),
            (expired, 0),
            (other_purpose, 0),
        ):
            fresh = await otp_record_db.get_one_by_conditions(
                db_session, [otp_record_db.model.id == record.id], fresh=True
            )
            assert fresh.attempts == expected

    @pytest.mark.asyncio
    async def test_consume_only_once(self, db_session):
        from sgms.core.db.crud import otp_record_db

        record = await _otp(db_session)

        consumed = await otp_record_db.consume(db_session, record.id, 5)
        assert consumed.used_at is not None
        assert await otp_record_db.consume(db_session, record.id, 5) is None

    @pytest.mark.asyncio
    async def test_consume_refuses_expired(self, db_session):
        from sgms.core.db.crud import otp_record_db

        record = await _otp(
            db_session, expires_at=datetime.now(timezone.utc) - timedelta(seconds=1)
        )

        assert await otp_record_db.consume(db_session, record.id, 5) is None

    @pytest.mark.asyncio
    async def test_count_active_and_delete_stale(self, db_session):
        from sgms.core.db.crud import otp_record_db
        from sgms.core.enums import OTPPurpose

        now = datetime.now(timezone.utc)
        await _otp(db_session)
        await _otp(db_session, expires_at=now - timedelta(minutes=1))
        await _otp(db_session, used_at=now)
        await _otp(db_session, email="b@x.com", used_at=now)

        assert await otp_record_db.count_active(db_session, "a@x.com", OTPPurpose.REGISTRATION) == 1
        assert await otp_record_db.delete_stale(
            db_session, "a@x.com", OTPPurpose.REGISTRATION
        ) == 2
        assert await otp_record_db.delete_stale(db_session) == 1

    @pytest.mark.asyncio
    async def test_latest_pending_prefers_most_recent_send(self, db_session):
        from sgms.core.db.crud import otp_record_db
        from sgms.core.enums import OTPPurpose

        now = datetime.now(timezone.utc)
        await _otp(db_session, last_sent_at=now - timedelta(minutes=5))
        newest = await _otp(db_session, last_sent_at=now)

        pending = await otp_record_db.get_latest_pending(
            db_session, "a@x.com", OTPPurpose.REGISTRATION
        )

        assert pending.id == newest.id


class TestRefreshTokenDB:
    @pytest.mark.asyncio
    async def test_revoke_is_conditional(self, db_session, test_user):
        from sgms.core.db.crud import refresh_token_db

        token = await _refresh_token(db_session, test_user)

        assert await refresh_token_db.revoke(db_session, token.jti) is True
        assert await refresh_token_db.revoke(db_session, token.jti) is False
        assert await refresh_token_db.revoke(db_session, "unknown") is False

    @pytest.mark.asyncio
    async def test_revoke_all_for_user(self, db_session, test_user, manager_user):
        from sgms.core.db.crud import refresh_token_db

        await _refresh_token(db_session, test_user)
        await _refresh_token(db_session, test_user)
        other = await _refresh_token(db_session, manager_user)

        assert await refresh_token_db.revoke_all_for_user(db_session, test_user.id) == 2
        assert (await refresh_token_db.get_by_jti(db_session, other.jti)).revoked_at is None

    @pytest.mark.asyncio
    async def test_delete_expired(self, db_session, test_user):
        from sgms.core.db.crud import refresh_token_db

        now = datetime.now(timezone.utc)
        await _refresh_token(db_session, test_user, expires_at=now - timedelta(days=8))
        await _refresh_token(db_session, test_user, revoked_at=now - timedelta(days=8))
        await _refresh_token(db_session, test_user, revoked_at=now - timedelta(days=1))
        live = await _refresh_token(db_session, test_user)

        assert await refresh_token_db.delete_expired(db_session, retention_days=7) == 2
        assert await refresh_token_db.get_by_jti(db_session, live.jti) is not None
