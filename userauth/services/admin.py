"""Admin user management: paginated listing, update and delete."""

import logging
from dataclasses import dataclass
from typing import Any

from userauth.core.errors import AppError, ErrorKind
from userauth.core.security import PASSWORD_MIN_LEN, hash_password
from userauth.models import User
from userauth.services.directory import UserDirectory

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10

# Fields an admin may change on a user record.
UPDATABLE_FIELDS = frozenset(
    {
        "username",
        "email",
        "password",
        "role",
        "is_active",
        "profile_picture",
        "thumbnail",
        "description",
    }
)


@dataclass(frozen=True)
class UserPage:
    users: list[User]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.total else 0


class AdminService:
    def __init__(self, directory: UserDirectory, page_size_max: int = 100) -> None:
        self.directory = directory
        self.page_size_max = page_size_max

    def list_users(
        self, page: int | None = None, limit: int | None = None, search: str | None = None
    ) -> UserPage:
        """Page through users; limit is clamped to [1, page_size_max]."""
        page = max(page or 1, 1)
        limit = min(max(limit or DEFAULT_PAGE_SIZE, 1), self.page_size_max)
        users, total = self.directory.search(search, offset=(page - 1) * limit, limit=limit)
        return UserPage(users=users, total=total, page=page, limit=limit)

    def get_user(self, user_id: int) -> User:
        user = self.directory.get(user_id)
        if user is None:
            raise AppError(ErrorKind.USER_NOT_FOUND, {"userId": user_id})
        return user

    def delete_user(self, user_id: int, current_user_id: int | None) -> None:
        if current_user_id is not None and user_id == current_user_id:
            raise AppError(
                ErrorKind.FORBIDDEN,
                {"reason": "self_delete"},
                message="You cannot delete your own account",
            )
        user = self.get_user(user_id)
        self.directory.delete(user)
        logger.info(
            "User deleted",
            extra={"user_id": user_id, "deleted_by": current_user_id},
        )

    def update_user(self, user_id: int, fields: dict[str, Any]) -> User:
        """Apply an admin patch, re-checking uniqueness of changed username/email."""
        changes = {key: value for key, value in fields.items() if value is not None}
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise AppError(
                ErrorKind.VALIDATION_ERROR,
                {"fields": sorted(unknown)},
                message=f"Unknown fields: {', '.join(sorted(unknown))}",
            )
        if not changes:
            raise AppError(
                ErrorKind.VALIDATION_ERROR,
                message="At least one field must be provided",
            )

        user = self.get_user(user_id)

        email = changes.get("email")
        if email is not None:
            email = email.strip().lower()
            changes["email"] = email
        new_email = email if email is not None and email != user.email else None
        new_username = changes.get("username")
        if new_username == user.username:
            new_username = None
        if new_email or new_username:
            field = self.directory.find_conflict(
                email=new_email, username=new_username, exclude_id=user.id
            )
            if field is not None:
                raise AppError(ErrorKind.USER_EXISTS, {"field": field})

        password = changes.pop("password", None)
        if password is not None:
            if len(password) < PASSWORD_MIN_LEN:
                raise AppError(
                    ErrorKind.VALIDATION_ERROR,
                    {"field": "password", "minLength": PASSWORD_MIN_LEN},
                    message=f"Password must be at least {PASSWORD_MIN_LEN} characters",
                )
            changes["password_hash"] = hash_password(password)

        updated = self.directory.update(user, **changes)
        if changes.get("is_active") is False:
            # Deactivation ends any live session.
            self.directory.clear_refresh_token(updated.id)
        logger.info(
            "User updated",
            extra={"user_id": user_id, "changed_fields": sorted(fields)},
        )
        return updated
