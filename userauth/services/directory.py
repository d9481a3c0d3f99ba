"""User directory: the only path between services and the users table."""

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, TypeVar

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from userauth.core.errors import AppError, ErrorKind
from userauth.models import User

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Columns a caller may set through create/update.
WRITABLE_FIELDS = frozenset(
    {
        "username",
        "email",
        "password_hash",
        "auth_provider",
        "external_id",
        "role",
        "is_active",
        "profile_picture",
        "thumbnail",
        "description",
        "last_login",
    }
)


class UserDirectory:
    """
    Persistence collaborator for user records.

    Uniqueness violations surface as USER_EXISTS, model shape violations as
    VALIDATION_ERROR, any other database failure as INTERNAL_ERROR.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def _run(self, operation: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except AppError:
            self.session.rollback()
            raise
        except IntegrityError as e:
            self.session.rollback()
            logger.warning("Directory uniqueness violation", extra={"operation": operation})
            raise AppError.wrap(e, operation=operation, kind=ErrorKind.USER_EXISTS) from e
        except ValueError as e:
            self.session.rollback()
            raise AppError(
                ErrorKind.VALIDATION_ERROR,
                {"operation": operation, "rawError": str(e)},
                message=str(e),
            ) from e
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.exception("Directory operation failed", extra={"operation": operation})
            raise AppError.wrap(e, operation=operation) from e

    def get(self, user_id: int) -> User | None:
        return self._run("get_user", lambda: self.session.get(User, user_id))

    def find_by_login(self, login: str) -> User | None:
        """Look up by email (case-insensitive) or exact username."""
        needle = (login or "").strip()

        def _find() -> User | None:
            return (
                self.session.query(User)
                .filter(or_(User.email == needle.lower(), User.username == needle))
                .first()
            )

        return self._run("find_user", _find)

    def find_by_external_id(self, provider: str, external_id: str) -> User | None:
        def _find() -> User | None:
            return (
                self.session.query(User)
                .filter(User.auth_provider == provider, User.external_id == external_id)
                .first()
            )

        return self._run("find_user_by_external_id", _find)

    def find_conflict(
        self, email: str | None, username: str | None, exclude_id: int | None = None
    ) -> str | None:
        """Return the field name ("email" or "username") already taken by another user."""
        email = (email or "").strip().lower() or None
        username = (username or "").strip() or None
        clauses = []
        if email:
            clauses.append(User.email == email)
        if username:
            clauses.append(User.username == username)
        if not clauses:
            return None

        def _find() -> str | None:
            query = self.session.query(User).filter(or_(*clauses))
            if exclude_id is not None:
                query = query.filter(User.id != exclude_id)
            existing = query.first()
            if existing is None:
                return None
            return "email" if email and existing.email == email else "username"

        return self._run("find_conflict", _find)

    def create(self, **fields: Any) -> User:
        def _create() -> User:
            user = User(**_writable(fields))
            self.session.add(user)
            self.session.commit()
            self.session.refresh(user)
            return user

        return self._run("create_user", _create)

    def update(self, user: User, **fields: Any) -> User:
        def _update() -> User:
            for key, value in _writable(fields).items():
                setattr(user, key, value)
            self.session.commit()
            self.session.refresh(user)
            return user

        return self._run("update_user", _update)

    def delete(self, user: User) -> None:
        def _delete() -> None:
            self.session.delete(user)
            self.session.commit()

        self._run("delete_user", _delete)

    def search(self, search: str | None, offset: int, limit: int) -> tuple[list[User], int]:
        """Case-insensitive substring match over username and email, newest first."""

        def _search() -> tuple[list[User], int]:
            query = self.session.query(User)
            term = (search or "").strip().lower()
            if term:
                pattern = f"%{_escape_like(term)}%"
                query = query.filter(
                    or_(
                        func.lower(User.username).like(pattern, escape="\\"),
                        func.lower(User.email).like(pattern, escape="\\"),
                    )
                )
            total = query.count()
            users = (
                query.order_by(User.created_at.desc(), User.id.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
            return users, total

        return self._run("search_users", _search)

    def store_refresh_token(self, user_id: int, token: str, login: bool = False) -> None:
        """Overwrite the stored refresh token (and stamp last_login on login)."""
        values: dict[str, Any] = {User.refresh_token: token}
        if login:
            values[User.last_login] = datetime.now(UTC)

        def _store() -> None:
            self.session.query(User).filter(User.id == user_id).update(
                values, synchronize_session=False
            )
            self.session.commit()

        self._run("store_refresh_token", _store)

    def swap_refresh_token(self, user_id: int, expected: str, new: str) -> bool:
        """
        Atomically replace the stored refresh token only if it still equals expected.

        A single conditional UPDATE; of two concurrent callers presenting the same
        token exactly one sees rowcount 1.
        """

        def _swap() -> bool:
            updated = (
                self.session.query(User)
                .filter(User.id == user_id, User.refresh_token == expected)
                .update({User.refresh_token: new}, synchronize_session=False)
            )
            self.session.commit()
            return updated == 1

        return self._run("swap_refresh_token", _swap)

    def clear_refresh_token(self, user_id: int) -> int:
        def _clear() -> int:
            cleared = (
                self.session.query(User)
                .filter(User.id == user_id, User.refresh_token.isnot(None))
                .update({User.refresh_token: None}, synchronize_session=False)
            )
            self.session.commit()
            return cleared

        return self._run("clear_refresh_token", _clear)


def _writable(fields: dict[str, Any]) -> dict[str, Any]:
    unknown = set(fields) - WRITABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown user fields: {', '.join(sorted(unknown))}")
    return fields


def _escape_like(term: str) -> str:
    """Make % and _ in a search term match literally under escape='\\'."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
