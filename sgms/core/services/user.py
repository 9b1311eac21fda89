"""
Member profiles and administration.

Methods never commit; routers run them inside ``async with session.begin()``.
"""

from io import BytesIO
import os
from typing import Any, Sequence
from uuid import UUID

from fastapi import UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from sgms.core.config import Settings, settings as default_settings, user_logger
from sgms.core.db.crud import RefreshTokenDB, UserDB, refresh_token_db, user_db
from sgms.core.db.models import User
from sgms.core.enums import SortOrder, UserRole, UserSortField, UserStatus
from sgms.core.exceptions.types import (
    BadRequestException,
    ForbiddenException,
    UserAlreadyExistsException,
    UserNotFoundException,
)
from sgms.core.permissions import get_role_level, is_elevated
from sgms.core.services.cloudinary import CloudinaryService


class UserService:
    def __init__(
        self,
        config: Settings | None = None,
        users: UserDB = user_db,
        refresh_tokens: RefreshTokenDB = refresh_token_db,
        storage: type[CloudinaryService] = CloudinaryService,
    ):
        self.config = config or default_settings
        self.users = users
        self.refresh_tokens = refresh_tokens
        self.storage = storage

    async def _get_or_404(self, session: AsyncSession, user_id: UUID) -> User:
        user = await self.users.get_active_by_id(session, user_id)
        if user is None:
            raise UserNotFoundException()
        return user

    @staticmethod
    def _ensure_can_manage(actor: User, target: User, action: str) -> None:
        """Non-elevated actors may only manage accounts below their own level."""
        if actor.id == target.id:
            raise ForbiddenException(f"You cannot {action} your own account here.")
        if not is_elevated(actor.role) and get_role_level(target.role) >= get_role_level(
            actor.role
        ):
            raise ForbiddenException(
                f"You cannot {action} an account with an equal or higher role."
            )

    async def discard_avatar(self, public_id: str | None) -> None:
        """Best-effort removal of an image from the host. Failures are only logged."""
        if not public_id:
            return
        try:
            await self.storage.delete_file(public_id)
        except Exception as e:
            user_logger.warning(f"Could not delete avatar {public_id}: {e}")

    # =========================================================================
    # Own profile
    # =========================================================================

    async def get_profile(self, session: AsyncSession, user_id: UUID) -> User:
        return await self._get_or_404(session, user_id)

    async def update_profile(
        self, session: AsyncSession, user: User, changes: dict[str, Any]
    ) -> User:
        """
        Apply a partial profile update.

        Fields present in ``changes`` are written as given, so None clears an
        optional field. Email and username cannot be cleared. Changing the
        email marks it unverified.

        Raises:
            UserAlreadyExistsException: The new email or username is taken.
        """
        changes = dict(changes)
        for field in ("email", "username"):
            if field in changes and changes[field] is None:
                changes.pop(field)
        if not changes:
            return user

        email = changes.get("email")
        username = changes.get("username")
        if email == user.email:
            email = None
            changes.pop("email")
        if username == user.username:
            username = None
            changes.pop("username")

        taken = await self.users.find_taken_field(
            session, email=email, username=username, exclude_id=user.id
        )
        if taken:
            raise UserAlreadyExistsException(f"User with this {taken} already exists.")
        if email:
            changes["email_verified"] = False

        if not changes:
            return user
        updated = await self.users.update(session, user.id, changes, commit_self=False)
        user_logger.info(f"Profile updated: user_id={user.id}, fields={sorted(changes)}")
        return updated

    async def delete_account(self, session: AsyncSession, user: User) -> None:
        """Soft-delete the caller's account and sign them out everywhere."""
        await self.users.soft_delete(session, user.id, commit_self=False)
        await self.refresh_tokens.revoke_all_for_user(session, user.id, commit_self=False)
        user_logger.info(f"Account deleted by owner: user_id={user.id}")

    # =========================================================================
    # Avatar
    # =========================================================================

    async def upload_avatar(
        self, session: AsyncSession, user: User, file: UploadFile
    ) -> tuple[User, str | None]:
        """
        Store a new avatar on the image host and point the profile at it.

        The previous image is not touched here. Pass the returned public id to
        :meth:`discard_avatar` once the transaction has committed.

        Returns:
            tuple[User, str | None]: The updated user and the public id of the
            avatar it replaced, if any.

        Raises:
            BadRequestException: Unsupported extension, empty or oversized file.
            ExternalServiceException: The image host rejected the upload.
        """
        extension = os.path.splitext(file.filename or "")[1].lstrip(".").lower()
        allowed = [ext.lower() for ext in self.config.AVATAR_ALLOWED_EXTENSIONS]
        if extension not in allowed:
            raise BadRequestException(
                f"Unsupported file type. Allowed: {', '.join(allowed)}."
            )

        max_bytes = self.config.AVATAR_MAX_BYTES
        too_large = BadRequestException(
            f"File too large. Maximum size is {max_bytes // (1024 * 1024)} MB."
        )
        if file.size is not None and file.size > max_bytes:
            raise too_large
        content = await file.read(max_bytes + 1)
        if not content:
            raise BadRequestException("Uploaded file is empty.")
        if len(content) > max_bytes:
            raise too_large

        url, public_id = await self.storage.upload_file(
            BytesIO(content),
            folder=self.config.CLOUDINARY_AVATAR_FOLDER,
            resource_type="image",
        )
        replaced_public_id = user.avatar_public_id

        try:
            updated = await self.users.update(
                session,
                user.id,
                {"avatar_url": url, "avatar_public_id": public_id},
                commit_self=False,
            )
        except Exception:
            await self.discard_avatar(public_id)
            raise

        user_logger.info(f"Avatar uploaded: user_id={user.id}, public_id={public_id}")
        return updated, replaced_public_id

    async def delete_avatar(
        self, session: AsyncSession, user: User
    ) -> tuple[User, str | None]:
        """
        Clear the profile's avatar.

        Returns:
            tuple[User, str | None]: The updated user and the public id to
            hand to :meth:`discard_avatar` after commit.
        """
        if not user.avatar_url and not user.avatar_public_id:
            raise BadRequestException("No avatar to delete.")

        old_public_id = user.avatar_public_id
        updated = await self.users.update(
            session,
            user.id,
            {"avatar_url": None, "avatar_public_id": None},
            commit_self=False,
        )

        user_logger.info(f"Avatar removed: user_id={user.id}")
        return updated, old_public_id

    # =========================================================================
    # Administration
    # =========================================================================

    async def list_users(
        self,
        session: AsyncSession,
        page: int = 1,
        limit: int = 20,
        search: str | None = None,
        role: UserRole | None = None,
        status: UserStatus | None = None,
        sort_by: UserSortField = UserSortField.CREATED_AT,
        sort_order: SortOrder = SortOrder.DESC,
    ) -> tuple[Sequence[User], int]:
        return await self.users.search(
            session,
            page=page,
            limit=limit,
            search=search,
            role=role,
            status=status,
            sort_by=sort_by,
            sort_order=sort_order,
        )

    async def get_user(self, session: AsyncSession, user_id: UUID) -> User:
        return await self._get_or_404(session, user_id)

    async def update_role(
        self, session: AsyncSession, actor: User, user_id: UUID, role: UserRole
    ) -> User:
        target = await self._get_or_404(session, user_id)
        if actor.id == target.id:
            raise ForbiddenException("You cannot change your own role.")
        if target.role == role:
            return target

        previous = target.role
        updated = await self.users.update(session, target.id, {"role": role}, commit_self=False)
        user_logger.info(
            f"Role changed: user_id={target.id}, {previous.value} -> {role.value}, by={actor.id}"
        )
        return updated

    async def update_status(
        self,
        session: AsyncSession,
        actor: User,
        user_id: UUID,
        status: UserStatus,
        reason: str | None = None,
    ) -> User:
        """
        Activate, deactivate or suspend an account.

        Leaving ACTIVE revokes the account's refresh tokens.
        """
        target = await self._get_or_404(session, user_id)
        self._ensure_can_manage(actor, target, "change the status of")

        updated = await self.users.update(
            session, target.id, {"status": status}, commit_self=False
        )
        if status != UserStatus.ACTIVE:
            await self.refresh_tokens.revoke_all_for_user(
                session, target.id, commit_self=False
            )
        user_logger.info(
            f"Status changed: user_id={target.id}, -> {status.value}, by={actor.id}, reason={reason!r}"
        )
        return updated

    async def delete_user(self, session: AsyncSession, actor: User, user_id: UUID) -> None:
        target = await self._get_or_404(session, user_id)
        self._ensure_can_manage(actor, target, "delete")

        await self.users.soft_delete(session, target.id, commit_self=False)
        await self.refresh_tokens.revoke_all_for_user(session, target.id, commit_self=False)
        user_logger.info(f"User deleted: user_id={target.id}, by={actor.id}")


__all__ = ["UserService"]
