"""Tests for userauth.services.sessions against an in-memory directory."""

import unittest

from support import EXPIRED, make_session_factory, make_sessions, make_tokens, register
from userauth.core.errors import AppError, ErrorKind
from userauth.core.security import verify_password
from userauth.models import User
from userauth.schemas.users import UserPublic
from userauth.services.directory import UserDirectory
from userauth.services.identity import VerifiedIdentity


class SessionTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.tokens = make_tokens()
        self.sessions = make_sessions(self.db, self.tokens)
        self.directory = UserDirectory(self.db)

    def tearDown(self) -> None:
        self.db.close()

    def assertKind(self, kind: ErrorKind, fn, *args, **kwargs) -> AppError:
        with self.assertRaises(AppError) as ctx:
            fn(*args, **kwargs)
        self.assertIs(ctx.exception.kind, kind, ctx.exception.details)
        return ctx.exception


class TestRegister(SessionTestCase):
    def test_creates_user_with_hashed_password(self) -> None:
        user = register(self.sessions)
        self.assertIsNotNone(user.id)
        self.assertEqual(user.role, "user")
        self.assertTrue(user.is_active)
        self.assertTrue(verify_password("secret1", user.password_hash))
        projection = UserPublic.model_validate(user).model_dump()
        self.assertNotIn("password_hash", projection)
        self.assertNotIn("refresh_token", projection)

    def test_email_is_normalized(self) -> None:
        user = register(self.sessions, email="  Alice@X.com ")
        self.assertEqual(user.email, "alice@x.com")

    def test_missing_fields_are_listed(self) -> None:
        err = self.assertKind(
            ErrorKind.MISSING_FIELDS,
            self.sessions.register,
            username="alice",
            email=None,
            password="secret1",
            confirm_password=None,
        )
        self.assertEqual(err.details["fields"], ["email", "confirmPassword"])

    def test_password_mismatch(self) -> None:
        self.assertKind(
            ErrorKind.PASSWORD_MISMATCH,
            self.sessions.register,
            username="alice",
            email="a@x.com",
            password="secret1",
            confirm_password="secret2",
        )

    def test_duplicate_email(self) -> None:
        register(self.sessions)
        err = self.assertKind(
            ErrorKind.USER_EXISTS, register, self.sessions, username="bob", email="a@x.com"
        )
        self.assertEqual(err.details["field"], "email")

    def test_duplicate_username(self) -> None:
        register(self.sessions)
        err = self.assertKind(
            ErrorKind.USER_EXISTS, register, self.sessions, username="alice", email="b@x.com"
        )
        self.assertEqual(err.details["field"], "username")

    def test_shape_rejected_by_directory(self) -> None:
        self.assertKind(ErrorKind.VALIDATION_ERROR, register, self.sessions, email="not-an-email")
        self.assertKind(ErrorKind.VALIDATION_ERROR, register, self.sessions, username="al")

    def test_short_password(self) -> None:
        self.assertKind(ErrorKind.VALIDATION_ERROR, register, self.sessions, password="12345")


class TestLoginWithPassword(SessionTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.user = register(self.sessions)

    def test_login_issues_pair_and_persists_refresh_token(self) -> None:
        result = self.sessions.login_with_password("a@x.com", "secret1")
        claims = self.tokens.verify_access(result.tokens.access_token)
        self.assertEqual(claims["data"]["userId"], self.user.id)
        self.assertEqual(claims["data"]["role"], "user")
        self.assertTrue(claims["data"]["isActive"])
        stored = self.directory.get(self.user.id)
        self.assertEqual(stored.refresh_token, result.tokens.refresh_token)
        self.assertIsNotNone(stored.last_login)

    def test_login_by_username(self) -> None:
        result = self.sessions.login_with_password("alice", "secret1")
        self.assertEqual(result.user.id, self.user.id)

    def test_wrong_password(self) -> None:
        self.assertKind(ErrorKind.INVALID_CREDENTIALS, self.sessions.login_with_password, "a@x.com", "nope!!")

    def test_unknown_user(self) -> None:
        self.assertKind(ErrorKind.INVALID_CREDENTIALS, self.sessions.login_with_password, "z@x.com", "secret1")

    def test_missing_password(self) -> None:
        self.assertKind(ErrorKind.MISSING_FIELDS, self.sessions.login_with_password, "a@x.com", None)

    def test_inactive_account_is_forbidden(self) -> None:
        self.directory.update(self.user, is_active=False)
        err = self.assertKind(ErrorKind.FORBIDDEN, self.sessions.login_with_password, "a@x.com", "secret1")
        self.assertEqual(err.details["reason"], "account_inactive")

    def test_local_account_without_hash_is_removed(self) -> None:
        self.directory.update(self.user, password_hash=None)
        self.assertKind(ErrorKind.INVALID_CREDENTIALS, self.sessions.login_with_password, "a@x.com", "secret1")
        self.assertIsNone(self.directory.find_by_login("a@x.com"))

    def test_federated_account_without_hash_is_kept(self) -> None:
        fed = self.directory.create(
            username="gina", email="g@x.com", password_hash=None, auth_provider="google"
        )
        self.assertKind(ErrorKind.INVALID_CREDENTIALS, self.sessions.login_with_password, "g@x.com", "secret1")
        self.assertIsNotNone(self.directory.get(fed.id))


class TestRefresh(SessionTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.user = register(self.sessions)
        self.login = self.sessions.login_with_password("a@x.com", "secret1")

    def test_rotation_invalidates_previous_token(self) -> None:
        old = self.login.tokens.refresh_token
        rotated = self.sessions.refresh(old)
        self.assertNotEqual(rotated.tokens.refresh_token, old)

        err = self.assertKind(ErrorKind.INVALID_TOKEN, self.sessions.refresh, old)
        self.assertEqual(err.details["issue"], "token_mismatch")

        again = self.sessions.refresh(rotated.tokens.refresh_token)
        self.assertEqual(
            self.directory.get(self.user.id).refresh_token, again.tokens.refresh_token
        )

    def test_new_access_token_reflects_current_record(self) -> None:
        self.directory.update(self.user, role="admin")
        result = self.sessions.refresh(self.login.tokens.refresh_token)
        claims = self.tokens.verify_access(result.tokens.access_token)
        self.assertEqual(claims["data"]["role"], "admin")

    def test_missing_token(self) -> None:
        err = self.assertKind(ErrorKind.INVALID_TOKEN, self.sessions.refresh, None)
        self.assertEqual(err.details["issue"], "missing_token")

    def test_bare_scheme_is_missing_token(self) -> None:
        err = self.assertKind(ErrorKind.INVALID_TOKEN, self.sessions.refresh, "Bearer ")
        self.assertEqual(err.details["issue"], "missing_token")

    def test_signed_but_revoked_token(self) -> None:
        self.sessions.logout(self.login.tokens.refresh_token)
        err = self.assertKind(ErrorKind.INVALID_TOKEN, self.sessions.refresh, self.login.tokens.refresh_token)
        self.assertEqual(err.details["issue"], "token_mismatch")

    def test_expired_token(self) -> None:
        expired_tokens = make_tokens(refresh_ttl=EXPIRED)
        stale = expired_tokens.issue_refresh({"userId": self.user.id})
        self.assertKind(ErrorKind.TOKEN_EXPIRED, self.sessions.refresh, stale)

    def test_deleted_user(self) -> None:
        token = self.login.tokens.refresh_token
        self.directory.delete(self.directory.get(self.user.id))
        self.assertKind(ErrorKind.USER_NOT_FOUND, self.sessions.refresh, token)

    def test_compare_and_set_has_one_winner(self) -> None:
        token = self.login.tokens.refresh_token
        self.assertTrue(self.directory.swap_refresh_token(self.user.id, token, "first"))
        self.assertFalse(self.directory.swap_refresh_token(self.user.id, token, "second"))
        self.assertEqual(self.directory.get(self.user.id).refresh_token, "first")


class TestLogout(SessionTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.user = register(self.sessions)
        self.login = self.sessions.login_with_password("a@x.com", "secret1")

    def test_no_token_is_noop(self) -> None:
        self.assertFalse(self.sessions.logout(None))
        self.assertIsNotNone(self.directory.get(self.user.id).refresh_token)

    def test_idempotent(self) -> None:
        token = self.login.tokens.refresh_token
        self.assertTrue(self.sessions.logout(token))
        self.assertFalse(self.sessions.logout(token))
        self.assertIsNone(self.directory.get(self.user.id).refresh_token)

    def test_expired_token_still_logs_out(self) -> None:
        stale = make_tokens(refresh_ttl=EXPIRED).issue_refresh({"userId": self.user.id})
        self.assertTrue(self.sessions.logout(stale))
        self.assertIsNone(self.directory.get(self.user.id).refresh_token)

    def test_garbage_token_is_tolerated(self) -> None:
        self.assertFalse(self.sessions.logout("garbage"))


class TestUpdatePassword(SessionTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.user = register(self.sessions)

    def test_changes_password(self) -> None:
        self.sessions.update_password(self.user.id, "secret1", "newsecret")
        self.sessions.login_with_password("a@x.com", "newsecret")
        self.assertKind(ErrorKind.INVALID_CREDENTIALS, self.sessions.login_with_password, "a@x.com", "secret1")

    def test_wrong_current_password(self) -> None:
        self.assertKind(ErrorKind.INVALID_CREDENTIALS, self.sessions.update_password, self.user.id, "wrong1", "newsecret")

    def test_short_new_password(self) -> None:
        self.assertKind(ErrorKind.VALIDATION_ERROR, self.sessions.update_password, self.user.id, "secret1", "123")

    def test_unknown_user(self) -> None:
        self.assertKind(ErrorKind.USER_NOT_FOUND, self.sessions.update_password, 999, "secret1", "newsecret")


class TestFederatedLogin(SessionTestCase):
    def _identity(self, **overrides) -> VerifiedIdentity:
        values = {"external_id": "g-123", "email": "fed@x.com", "name": "Fed User", "avatar": None}
        values.update(overrides)
        return VerifiedIdentity(**values)

    def test_provisions_new_user_without_password(self) -> None:
        result = self.sessions.login_with_federated_identity(self._identity())
        user = self.directory.get(result.user.id)
        self.assertIsNone(user.password_hash)
        self.assertEqual(user.username, "Fed_User")
        self.assertEqual(user.auth_provider, "google")
        self.assertEqual(user.profile_picture, "https://example.com/default.png")
        self.assertEqual(user.refresh_token, result.tokens.refresh_token)

    def test_existing_email_reuses_account(self) -> None:
        existing = register(self.sessions, email="fed@x.com")
        result = self.sessions.login_with_federated_identity(self._identity())
        self.assertEqual(result.user.id, existing.id)
        self.assertEqual(self.db.query(User).count(), 1)

    def test_returning_user_matched_by_external_id(self) -> None:
        first = self.sessions.login_with_federated_identity(self._identity())
        second = self.sessions.login_with_federated_identity(self._identity(email="renamed@x.com"))
        self.assertEqual(first.user.id, second.user.id)

    def test_username_collision_gets_suffix(self) -> None:
        register(self.sessions, username="Fed_User", email="other@x.com")
        result = self.sessions.login_with_federated_identity(self._identity())
        self.assertTrue(result.user.username.startswith("Fed_User"))
        self.assertNotEqual(result.user.username, "Fed_User")

    def test_requires_email(self) -> None:
        self.assertKind(ErrorKind.MISSING_FIELDS, self.sessions.login_with_federated_identity, self._identity(email=None))


if __name__ == "__main__":
    unittest.main()
