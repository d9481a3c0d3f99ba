"""Profile and admin user-management endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from userauth.api.deps import get_admin_service, get_session_service
from userauth.api.gates import authenticate, authorize, current_subject, resolve_refresh
from userauth.schemas.auth import CurrentUser
from userauth.schemas.envelope import Envelope, ok
from userauth.schemas.users import (
    PasswordChangeRequest,
    UserPublic,
    UsersListResponse,
    UserUpdateRequest,
)
from userauth.services.admin import AdminService
from userauth.services.sessions import SessionService

router = APIRouter()

SESSION_GATES = [Depends(authenticate), Depends(resolve_refresh)]
ADMIN_GATES = [*SESSION_GATES, Depends(authorize(["admin"]))]
ADMIN_OR_SELF_GATES = [*SESSION_GATES, Depends(authorize(["admin"], allow_self=True))]


@router.get(
    "/me",
    response_model=Envelope,
    response_model_exclude_none=True,
    dependencies=SESSION_GATES,
)
def get_me(
    subject: Annotated[CurrentUser, Depends(current_subject)],
    sessions: Annotated[SessionService, Depends(get_session_service)],
) -> dict:
    """Current user's profile, re-read from the directory."""
    user = sessions.get_profile(subject.id)
    return ok(UserPublic.model_validate(user))


@router.put(
    "/me/password",
    response_model=Envelope,
    response_model_exclude_none=True,
    dependencies=SESSION_GATES,
)
def change_password(
    body: PasswordChangeRequest,
    subject: Annotated[CurrentUser, Depends(current_subject)],
    sessions: Annotated[SessionService, Depends(get_session_service)],
) -> dict:
    sessions.update_password(subject.id, body.current_password, body.new_password)
    return ok(message="Password updated successfully")


@router.get(
    "",
    response_model=Envelope,
    response_model_exclude_none=True,
    dependencies=ADMIN_GATES,
)
def list_users(
    admin: Annotated[AdminService, Depends(get_admin_service)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1)] = 10,
    search: Annotated[str | None, Query(max_length=100)] = None,
) -> dict:
    """List users (admin only); limit is capped server-side."""
    result = admin.list_users(page=page, limit=limit, search=search)
    return ok(
        UsersListResponse(
            users=[UserPublic.model_validate(u) for u in result.users],
            total=result.total,
            page=result.page,
            limit=result.limit,
            pages=result.pages,
        )
    )


@router.get(
    "/{user_id}",
    response_model=Envelope,
    response_model_exclude_none=True,
    dependencies=ADMIN_OR_SELF_GATES,
)
def get_user(
    user_id: int,
    admin: Annotated[AdminService, Depends(get_admin_service)],
) -> dict:
    """Fetch one user (admin, or the user themselves)."""
    return ok(UserPublic.model_validate(admin.get_user(user_id)))


@router.patch(
    "/{user_id}",
    response_model=Envelope,
    response_model_exclude_none=True,
    dependencies=ADMIN_GATES,
)
def update_user(
    user_id: int,
    body: UserUpdateRequest,
    admin: Annotated[AdminService, Depends(get_admin_service)],
) -> dict:
    user = admin.update_user(user_id, body.model_dump(exclude_unset=True))
    return ok(UserPublic.model_validate(user), message="User updated successfully")


@router.delete(
    "/{user_id}",
    response_model=Envelope,
    response_model_exclude_none=True,
    dependencies=ADMIN_GATES,
)
def delete_user(
    user_id: int,
    subject: Annotated[CurrentUser, Depends(current_subject)],
    admin: Annotated[AdminService, Depends(get_admin_service)],
) -> dict:
    admin.delete_user(user_id, current_user_id=subject.id)
    return ok(message="User deleted successfully")
