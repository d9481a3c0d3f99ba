"""Tests for userauth.services.admin: pagination clamp, search, self-delete guard, updates."""

import unittest

from support import make_session_factory, make_sessions, register
from userauth.core.errors import AppError, ErrorKind
from userauth.core.security import verify_password
from userauth.services.admin import AdminService
from userauth.services.directory import UserDirectory


class AdminTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.sessions = make_sessions(self.db)
        self.directory = UserDirectory(self.db)
        self.admin = AdminService(self.directory, page_size_max=5)
        self.alice = register(self.sessions, "alice", "alice@x.com")
        self.bob = register(self.sessions, "bob", "bob@example.org")

    def tearDown(self) -> None:
        self.db.close()


class TestListUsers(AdminTestCase):
    def test_limit_is_clamped(self) -> None:
        for i in range(7):
            register(self.sessions, f"user{i}", f"user{i}@x.com")
        page = self.admin.list_users(page=1, limit=1000)
        self.assertEqual(page.limit, 5)
        self.assertEqual(len(page.users), 5)
        self.assertEqual(page.total, 9)
        self.assertEqual(page.pages, 2)

    def test_page_below_one_is_first_page(self) -> None:
        page = self.admin.list_users(page=0, limit=0)
        self.assertEqual(page.page, 1)
        self.assertEqual(page.limit, 5)

    def test_search_is_case_insensitive_substring(self) -> None:
        page = self.admin.list_users(search="EXAMPLE")
        self.assertEqual([u.username for u in page.users], ["bob"])
        page = self.admin.list_users(search="LiC")
        self.assertEqual([u.username for u in page.users], ["alice"])

    def test_search_wildcards_match_literally(self) -> None:
        register(self.sessions, "carol", "c_d@x.com")
        register(self.sessions, "dave", "cxd@x.com")
        page = self.admin.list_users(search="c_d")
        self.assertEqual([u.username for u in page.users], ["carol"])
        page = self.admin.list_users(search="%")
        self.assertEqual(page.total, 0)


class TestDeleteUser(AdminTestCase):
    def test_self_delete_is_forbidden(self) -> None:
        self.directory.update(self.alice, role="admin")
        with self.assertRaises(AppError) as ctx:
            self.admin.delete_user(self.alice.id, current_user_id=self.alice.id)
        self.assertIs(ctx.exception.kind, ErrorKind.FORBIDDEN)
        self.assertIsNotNone(self.directory.get(self.alice.id))

    def test_delete_other_user(self) -> None:
        self.admin.delete_user(self.bob.id, current_user_id=self.alice.id)
        self.assertIsNone(self.directory.get(self.bob.id))

    def test_delete_missing_user(self) -> None:
        with self.assertRaises(AppError) as ctx:
            self.admin.delete_user(999, current_user_id=self.alice.id)
        self.assertIs(ctx.exception.kind, ErrorKind.USER_NOT_FOUND)


class TestUpdateUser(AdminTestCase):
    def test_conflicting_email(self) -> None:
        with self.assertRaises(AppError) as ctx:
            self.admin.update_user(self.bob.id, {"email": "ALICE@x.com"})
        self.assertIs(ctx.exception.kind, ErrorKind.USER_EXISTS)
        self.assertEqual(ctx.exception.details["field"], "email")

    def test_conflicting_username(self) -> None:
        with self.assertRaises(AppError) as ctx:
            self.admin.update_user(self.bob.id, {"username": "alice"})
        self.assertEqual(ctx.exception.details["field"], "username")

    def test_unchanged_values_do_not_conflict(self) -> None:
        user = self.admin.update_user(self.bob.id, {"email": "bob@example.org", "description": "hi"})
        self.assertEqual(user.description, "hi")

    def test_password_is_rehashed(self) -> None:
        user = self.admin.update_user(self.bob.id, {"password": "brandnew"})
        self.assertTrue(verify_password("brandnew", user.password_hash))

    def test_deactivation_revokes_refresh_token(self) -> None:
        self.sessions.login_with_password("bob", "secret1")
        self.admin.update_user(self.bob.id, {"is_active": False})
        stored = self.directory.get(self.bob.id)
        self.assertFalse(stored.is_active)
        self.assertIsNone(stored.refresh_token)

    def test_empty_patch(self) -> None:
        with self.assertRaises(AppError) as ctx:
            self.admin.update_user(self.bob.id, {})
        self.assertIs(ctx.exception.kind, ErrorKind.VALIDATION_ERROR)

    def test_unknown_field(self) -> None:
        with self.assertRaises(AppError) as ctx:
            self.admin.update_user(self.bob.id, {"refresh_token": "x"})
        self.assertIs(ctx.exception.kind, ErrorKind.VALIDATION_ERROR)


if __name__ == "__main__":
    unittest.main()
