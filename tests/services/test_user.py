"""
Tests for profile management and member administration.
"""

from io import BytesIO
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import UploadFile

from tests.conftest import create_user


def _upload(filename="avatar.png", content=b"\x89PNG fake image", size=None):
    return UploadFile(file=BytesIO(content), filename=filename, size=size)


@pytest.fixture
def storage():
    mock = MagicMock()
    mock.upload_file = AsyncMock(
        return_value=("https://cdn.example.com/avatars/new.png", "sgms_avatars/new")
    )
    mock.delete_file = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def user_service(storage):
    from sgms.core.services.user import UserService

    return UserService(storage=storage)


class TestProfile:
    @pytest.mark.asyncio
    async def test_update_profile(self, db_session, user_service, test_user):
        updated = await user_service.update_profile(
            db_session, test_user, {"first_name": "Robert", "address": None}
        )
        await db_session.commit()

        assert updated.first_name == "Robert"
        assert updated.last_name == "Member"
        assert updated.full_name == "Robert Member"

    @pytest.mark.asyncio
    async def test_null_clears_optional_fields(self, db_session, user_service):
        from datetime import date

        user = await create_user(
            db_session,
            phone_number="+15550100",
            address="1 Main St",
            date_of_birth=date(1990, 1, 1),
        )

        updated = await user_service.update_profile(
            db_session,
            user,
            {"phone_number": None, "address": None, "date_of_birth": None, "email": None},
        )
        await db_session.commit()

        assert updated.phone_number is None
        assert updated.address is None
        assert updated.date_of_birth is None
        assert updated.email == user.email

    @pytest.mark.asyncio
    async def test_changing_email_unverifies(self, db_session, user_service, test_user):
        updated = await user_service.update_profile(
            db_session, test_user, {"email": "new@example.com"}
        )

        assert updated.email == "new@example.com"
        assert updated.email_verified is False

    @pytest.mark.asyncio
    async def test_same_email_keeps_verification(self, db_session, user_service, test_user):
        updated = await user_service.update_profile(
            db_session, test_user, {"email": "member@example.com", "username": "member"}
        )

        assert updated.email_verified is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "changes", [{"email": "manager@example.com"}, {"username": "manager"}]
    )
    async def test_taken_identity(
        self, db_session, user_service, test_user, manager_user, changes
    ):
        from sgms.core.exceptions.types import UserAlreadyExistsException

        with pytest.raises(UserAlreadyExistsException):
            await user_service.update_profile(db_session, test_user, changes)

    @pytest.mark.asyncio
    async def test_delete_account(self, db_session, user_service, auth_service, test_user):
        from sgms.core.db.crud import refresh_token_db, user_db
        from tests.conftest import TEST_PASSWORD

        _, pair = await auth_service.login(db_session, "member", TEST_PASSWORD)

        await user_service.delete_account(db_session, test_user)
        await db_session.commit()

        assert await user_db.get_active_by_id(db_session, test_user.id) is None
        token = await refresh_token_db.get_by_jti(db_session, pair.refresh_jti)
        assert token.revoked_at is not None

    @pytest.mark.asyncio
    async def test_get_profile_of_deleted_user(self, db_session, user_service):
        from sgms.core.exceptions.types import UserNotFoundException

        deleted = await create_user(db_session, is_deleted=True)

        with pytest.raises(UserNotFoundException):
            await user_service.get_profile(db_session, deleted.id)


class TestAvatar:
    @pytest.mark.asyncio
    async def test_upload(self, db_session, user_service, storage, test_user):
        updated, replaced = await user_service.upload_avatar(db_session, test_user, _upload())

        assert updated.avatar_url == "https://cdn.example.com/avatars/new.png"
        assert updated.avatar_public_id == "sgms_avatars/new"
        assert replaced is None
        storage.upload_file.assert_awaited_once()
        assert storage.upload_file.await_args.kwargs["folder"] == "sgms_avatars"
        storage.delete_file.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_upload_keeps_previous_until_discarded(
        self, db_session, user_service, storage
    ):
        user = await create_user(
            db_session,
            avatar_url="https://cdn.example.com/avatars/old.png",
            avatar_public_id="sgms_avatars/old",
        )

        _, replaced = await user_service.upload_avatar(db_session, user, _upload("me.JPG"))

        assert replaced == "sgms_avatars/old"
        storage.delete_file.assert_not_awaited()

        await user_service.discard_avatar(replaced)
        storage.delete_file.assert_awaited_once_with("sgms_avatars/old")

    @pytest.mark.asyncio
    async def test_failed_update_removes_new_upload(self, db_session, storage):
        from sgms.core.db.crud import UserDB
        from sgms.core.exceptions.types import DatabaseException
        from sgms.core.services.user import UserService

        users = UserDB()
        users.update = AsyncMock(side_effect=DatabaseException("write failed"))
        service = UserService(storage=storage, users=users)
        user = await create_user(
            db_session,
            avatar_url="https://cdn.example.com/avatars/old.png",
            avatar_public_id="sgms_avatars/old",
        )

        with pytest.raises(DatabaseException):
            await service.upload_avatar(db_session, user, _upload())

        storage.delete_file.assert_awaited_once_with("sgms_avatars/new")
        assert user.avatar_public_id == "sgms_avatars/old"

    @pytest.mark.asyncio
    async def test_discard_failure_is_not_fatal(self, user_service, storage):
        storage.delete_file.side_effect = RuntimeError("cdn down")

        await user_service.discard_avatar("sgms_avatars/old")
        await user_service.discard_avatar(None)

        storage.delete_file.assert_awaited_once_with("sgms_avatars/old")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "filename, content",
        [
            ("avatar.exe", b"data"),
            ("avatar", b"data"),
            ("avatar.png", b""),
        ],
    )
    async def test_rejected_files(
        self, db_session, user_service, storage, test_user, filename, content
    ):
        from sgms.core.exceptions.types import BadRequestException

        with pytest.raises(BadRequestException):
            await user_service.upload_avatar(
                db_session, test_user, _upload(filename, content)
            )
        storage.upload_file.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_oversized_file_read_is_bounded(self, db_session, storage, test_user):
        from sgms.core.config import settings
        from sgms.core.exceptions.types import BadRequestException
        from sgms.core.services.user import UserService

        service = UserService(
            config=settings.model_copy(update={"AVATAR_MAX_BYTES": 4}), storage=storage
        )
        upload = _upload(content=b"x" * 1024)

        with pytest.raises(BadRequestException):
            await service.upload_avatar(db_session, test_user, upload)

        assert upload.file.tell() == 5
        storage.upload_file.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_declared_size_checked_before_reading(
        self, db_session, storage, test_user
    ):
        from sgms.core.config import settings
        from sgms.core.exceptions.types import BadRequestException
        from sgms.core.services.user import UserService

        service = UserService(
            config=settings.model_copy(update={"AVATAR_MAX_BYTES": 4}), storage=storage
        )
        upload = _upload(content=b"12345", size=5)

        with pytest.raises(BadRequestException):
            await service.upload_avatar(db_session, test_user, upload)

        assert upload.file.tell() == 0
        storage.upload_file.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delete_avatar(self, db_session, user_service, storage):
        user = await create_user(
            db_session,
            avatar_url="https://cdn.example.com/avatars/old.png",
            avatar_public_id="sgms_avatars/old",
        )

        updated, old_public_id = await user_service.delete_avatar(db_session, user)

        assert updated.avatar_url is None
        assert updated.avatar_public_id is None
        assert old_public_id == "sgms_avatars/old"
        storage.delete_file.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delete_missing_avatar(self, db_session, user_service, test_user):
        from sgms.core.exceptions.types import BadRequestException

        with pytest.raises(BadRequestException):
            await user_service.delete_avatar(db_session, test_user)


class TestListUsers:
    @pytest.mark.asyncio
    async def test_search_and_filters(self, db_session, user_service, make_user):
        from sgms.core.enums import UserRole, UserStatus

        await make_user(email="alice@example.com", username="alice", first_name="Alice")
        await make_user(
            email="bob@example.com", username="bob", role=UserRole.TRAINER
        )
        await make_user(
            email="carol@example.com",
            username="carol",
            status=UserStatus.SUSPENDED,
        )
        await make_user(email="dave@example.com", username="dave", is_deleted=True)

        users, total = await user_service.list_users(db_session, search="ALI")
        assert total == 1 and users[0].username == "alice"

        users, total = await user_service.list_users(db_session, role=UserRole.TRAINER)
        assert [u.username for u in users] == ["bob"]

        users, total = await user_service.list_users(
            db_session, status=UserStatus.SUSPENDED
        )
        assert [u.username for u in users] == ["carol"]

        users, total = await user_service.list_users(db_session)
        assert total == 3

    @pytest.mark.asyncio
    async def test_pagination_and_sort(self, db_session, user_service, make_user):
        from sgms.core.enums import SortOrder, UserSortField

        for name in ["delta", "alpha", "charlie", "bravo"]:
            await make_user(email=f"{name}@example.com", username=name)

        first, total = await user_service.list_users(
            db_session,
            page=1,
            limit=3,
            sort_by=UserSortField.USERNAME,
            sort_order=SortOrder.ASC,
        )
        second, _ = await user_service.list_users(
            db_session,
            page=2,
            limit=3,
            sort_by=UserSortField.USERNAME,
            sort_order=SortOrder.ASC,
        )

        assert total == 4
        assert [u.username for u in first] == ["alpha", "bravo", "charlie"]
        assert [u.username for u in second] == ["delta"]


class TestAdministration:
    @pytest.mark.asyncio
    async def test_update_role(self, db_session, user_service, admin_user, test_user):
        from sgms.core.enums import UserRole

        updated = await user_service.update_role(
            db_session, admin_user, test_user.id, UserRole.TRAINER
        )

        assert updated.role == UserRole.TRAINER

    @pytest.mark.asyncio
    async def test_cannot_change_own_role(self, db_session, user_service, admin_user):
        from sgms.core.enums import UserRole
        from sgms.core.exceptions.types import ForbiddenException

        with pytest.raises(ForbiddenException):
            await user_service.update_role(
                db_session, admin_user, admin_user.id, UserRole.CUSTOMER
            )

    @pytest.mark.asyncio
    async def test_role_of_missing_user(self, db_session, user_service, admin_user):
        from uuid import uuid4

        from sgms.core.enums import UserRole
        from sgms.core.exceptions.types import UserNotFoundException

        with pytest.raises(UserNotFoundException):
            await user_service.update_role(db_session, admin_user, uuid4(), UserRole.STAFF)

    @pytest.mark.asyncio
    async def test_suspend_revokes_tokens(
        self, db_session, user_service, auth_service, manager_user, test_user
    ):
        from sgms.core.db.crud import refresh_token_db
        from sgms.core.enums import UserStatus
        from tests.conftest import TEST_PASSWORD

        _, pair = await auth_service.login(db_session, "member", TEST_PASSWORD)

        updated = await user_service.update_status(
            db_session, manager_user, test_user.id, UserStatus.SUSPENDED, "unpaid"
        )
        await db_session.commit()

        assert updated.status == UserStatus.SUSPENDED
        token = await refresh_token_db.get_by_jti(db_session, pair.refresh_jti)
        assert token.revoked_at is not None

    @pytest.mark.asyncio
    async def test_manager_cannot_manage_peer(self, db_session, user_service, manager_user):
        from sgms.core.enums import UserRole, UserStatus
        from sgms.core.exceptions.types import ForbiddenException

        peer = await create_user(
            db_session, email="peer@example.com", username="peer", role=UserRole.MANAGER
        )

        with pytest.raises(ForbiddenException):
            await user_service.update_status(
                db_session, manager_user, peer.id, UserStatus.INACTIVE
            )
        with pytest.raises(ForbiddenException):
            await user_service.delete_user(db_session, manager_user, peer.id)

    @pytest.mark.asyncio
    async def test_admin_can_manage_anyone_but_self(
        self, db_session, user_service, admin_user, manager_user
    ):
        from sgms.core.enums import UserStatus
        from sgms.core.exceptions.types import ForbiddenException

        updated = await user_service.update_status(
            db_session, admin_user, manager_user.id, UserStatus.INACTIVE
        )
        assert updated.status == UserStatus.INACTIVE

        with pytest.raises(ForbiddenException):
            await user_service.delete_user(db_session, admin_user, admin_user.id)

    @pytest.mark.asyncio
    async def test_delete_user(self, db_session, user_service, admin_user, test_user):
        from sgms.core.db.crud import user_db

        await user_service.delete_user(db_session, admin_user, test_user.id)
        await db_session.commit()

        assert await user_db.get_active_by_id(db_session, test_user.id) is None
        # Identity stays reserved
        assert await user_db.find_taken_field(db_session, email="member@example.com") == "email"
