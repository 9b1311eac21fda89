"""
Profile and member administration router.

Endpoints on ``/users/me`` act on the signed-in user. The remaining
endpoints are guarded by role or permission checks.

All endpoints are prefixed with /users when mounted in the main app.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from sgms.core.db.models import User
from sgms.core.dependencies.auth import CurrentActiveUser
from sgms.core.dependencies.authorization import (
    require_min_role,
    require_owner_or_admin,
    require_permission,
    require_role,
)
from sgms.core.dependencies.db import get_async_session
from sgms.core.dependencies.services import UserServiceDep
from sgms.core.enums import SortOrder, UserRole, UserSortField, UserStatus
from sgms.core.permissions import get_role_level, get_role_permissions
from sgms.core.schemas.common import (
    ApiResponse,
    PaginatedData,
    paginated_response,
    success_response,
)
from sgms.core.schemas.user import (
    PermissionsResponse,
    UpdateProfileRequest,
    UpdateRoleRequest,
    UpdateStatusRequest,
    UserProfile,
)
from sgms.core.services.token import clear_auth_cookies


router = APIRouter()

SessionDep = Annotated[AsyncSession, Depends(get_async_session)]


# =============================================================================
# Own profile
# =============================================================================


@router.get(
    "/me",
    response_model=ApiResponse[UserProfile],
    summary="Get my profile",
)
async def get_my_profile(user: CurrentActiveUser) -> ApiResponse:
    return success_response(UserProfile.model_validate(user))


@router.patch(
    "/me",
    response_model=ApiResponse[UserProfile],
    summary="Update my profile",
    description="""
## Update Profile

Partial update: only the fields sent are changed. Changing the email marks
it as unverified.

### Error Responses

| Status | Reason |
|--------|--------|
| `400 Bad Request` | Invalid field values |
| `409 Conflict` | Email or username already in use |
""",
)
async def update_my_profile(
    request_data: UpdateProfileRequest,
    user: CurrentActiveUser,
    session: SessionDep,
    user_service: UserServiceDep,
) -> ApiResponse:
    async with session.begin():
        updated = await user_service.update_profile(
            session, user, request_data.model_dump(exclude_unset=True)
        )
    return success_response(
        UserProfile.model_validate(updated), message="Profile updated successfully."
    )


@router.delete(
    "/me",
    response_model=ApiResponse[None],
    summary="Delete my account",
    description="""
## Delete Account

Deactivate the signed-in account and sign it out everywhere. The email and
username stay reserved.
""",
)
async def delete_my_account(
    response: Response,
    user: CurrentActiveUser,
    session: SessionDep,
    user_service: UserServiceDep,
) -> ApiResponse:
    async with session.begin():
        await user_service.delete_account(session, user)
    clear_auth_cookies(response)
    return success_response(message="Account deleted successfully.")


@router.get(
    "/me/permissions",
    response_model=ApiResponse[PermissionsResponse],
    summary="Get my role and permissions",
)
async def get_my_permissions(user: CurrentActiveUser) -> ApiResponse:
    return success_response(
        PermissionsResponse(
            role=user.role,
            level=get_role_level(user.role),
            permissions=sorted(get_role_permissions(user.role)),
        )
    )


@router.put(
    "/me/avatar",
    response_model=ApiResponse[UserProfile],
    summary="Upload my avatar",
    description="""
## Upload Avatar

Multipart upload of an image (`jpg`, `jpeg`, `png` or `gif`, at most 5 MB).
Replaces any previous avatar.

### Error Responses

| Status | Reason |
|--------|--------|
| `400 Bad Request` | Unsupported type, empty or oversized file |
| `503 Service Unavailable` | Image host unavailable |
""",
)
async def upload_my_avatar(
    user: CurrentActiveUser,
    session: SessionDep,
    user_service: UserServiceDep,
    file: Annotated[UploadFile, File(description="Avatar image")],
) -> ApiResponse:
    async with session.begin():
        updated, replaced_public_id = await user_service.upload_avatar(session, user, file)
    await user_service.discard_avatar(replaced_public_id)
    return success_response(
        UserProfile.model_validate(updated), message="Avatar uploaded successfully."
    )


@router.delete(
    "/me/avatar",
    response_model=ApiResponse[UserProfile],
    summary="Remove my avatar",
)
async def delete_my_avatar(
    user: CurrentActiveUser,
    session: SessionDep,
    user_service: UserServiceDep,
) -> ApiResponse:
    async with session.begin():
        updated, old_public_id = await user_service.delete_avatar(session, user)
    await user_service.discard_avatar(old_public_id)
    return success_response(
        UserProfile.model_validate(updated), message="Avatar removed successfully."
    )


# =============================================================================
# Administration
# =============================================================================


@router.get(
    "/",
    response_model=ApiResponse[PaginatedData[UserProfile]],
    summary="List members",
    dependencies=[Depends(require_min_role(UserRole.MANAGER))],
    description="""
## List Members

Paginated member listing for **managers and above**.

### Query Parameters

| Parameter | Description |
|-----------|-------------|
| `page`, `limit` | Page number (from 1) and size (1-100) |
| `search` | Case-insensitive match on email, username, first or last name |
| `role`, `status` | Exact filters |
| `sort_by`, `sort_order` | Sort column and direction |
""",
)
async def list_users(
    session: SessionDep,
    user_service: UserServiceDep,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    search: Annotated[str | None, Query(max_length=100)] = None,
    role: UserRole | None = None,
    user_status: Annotated[UserStatus | None, Query(alias="status")] = None,
    sort_by: UserSortField = UserSortField.CREATED_AT,
    sort_order: SortOrder = SortOrder.DESC,
) -> ApiResponse:
    async with session.begin():
        users, total = await user_service.list_users(
            session,
            page=page,
            limit=limit,
            search=search,
            role=role,
            status=user_status,
            sort_by=sort_by,
            sort_order=sort_order,
        )
    return paginated_response(
        [UserProfile.model_validate(u) for u in users], page, limit, total
    )


@router.get(
    "/{user_id}",
    response_model=ApiResponse[UserProfile],
    summary="Get a member",
    dependencies=[Depends(require_owner_or_admin("user_id"))],
)
async def get_user(
    user_id: UUID,
    session: SessionDep,
    user_service: UserServiceDep,
) -> ApiResponse:
    """Members may read their own record; owners and admins may read any."""
    async with session.begin():
        user = await user_service.get_user(session, user_id)
    return success_response(UserProfile.model_validate(user))


@router.patch(
    "/{user_id}/role",
    response_model=ApiResponse[UserProfile],
    summary="Change a member's role",
)
async def update_user_role(
    user_id: UUID,
    request_data: UpdateRoleRequest,
    actor: Annotated[User, Depends(require_role(UserRole.ADMIN))],
    session: SessionDep,
    user_service: UserServiceDep,
) -> ApiResponse:
    async with session.begin():
        updated = await user_service.update_role(
            session, actor, user_id, request_data.role
        )
    return success_response(
        UserProfile.model_validate(updated), message="Role updated successfully."
    )


@router.patch(
    "/{user_id}/status",
    response_model=ApiResponse[UserProfile],
    summary="Change a member's status",
    description="""
## Change Status

Activate, deactivate or suspend an account. Leaving `active` signs the
member out everywhere. Requires the `users:update` permission; non-elevated
actors may only manage members below their own role.
""",
)
async def update_user_status(
    user_id: UUID,
    request_data: UpdateStatusRequest,
    actor: Annotated[User, Depends(require_permission("users:update"))],
    session: SessionDep,
    user_service: UserServiceDep,
) -> ApiResponse:
    async with session.begin():
        updated = await user_service.update_status(
            session, actor, user_id, request_data.status, request_data.reason
        )
    return success_response(
        UserProfile.model_validate(updated), message="Status updated successfully."
    )


@router.delete(
    "/{user_id}",
    response_model=ApiResponse[None],
    status_code=status.HTTP_200_OK,
    summary="Delete a member",
)
async def delete_user(
    user_id: UUID,
    actor: Annotated[User, Depends(require_permission("users:delete"))],
    session: SessionDep,
    user_service: UserServiceDep,
) -> ApiResponse:
    async with session.begin():
        await user_service.delete_user(session, actor, user_id)
    return success_response(message="User deleted successfully.")


__all__ = ["router"]
