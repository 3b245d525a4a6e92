"""Tests for password hashing and role checks."""

from types import SimpleNamespace

import pytest
from flask import g

from security.password import check_credentials, hash_password, verify_password
from security.rbac import ADMIN, USER, require_roles, role_names


class TestPasswords:
    def test_round_trip(self, app):
        hashed = hash_password("correct-horse")
        assert hashed != "correct-horse"
        assert verify_password("correct-horse", hashed)
        assert not verify_password("wrong", hashed)

    def test_uses_configured_rounds(self, app):
        # bcrypt encodes the cost factor in the hash prefix
        assert hash_password("correct-horse").startswith("$2b$04$")

    def test_empty_password_rejected(self, app):
        with pytest.raises(ValueError):
            hash_password("")

    def test_malformed_hash(self):
        assert not verify_password("correct-horse", "not-a-bcrypt-hash")

    def test_check_credentials(self, app, make_user):
        user = make_user("sam@example.com", password="correct-horse")
        assert check_credentials(user, "correct-horse")
        assert not check_credentials(user, "nope")
        assert not check_credentials(None, "correct-horse")
        assert not check_credentials(None, "")


class TestRoles:
    def _user(self, *names):
        return SimpleNamespace(roles=[SimpleNamespace(name=n) for n in names])

    def test_role_names(self):
        assert role_names(self._user(USER, ADMIN)) == {USER, ADMIN}
        assert role_names(None) == set()

    def test_require_roles(self, app):
        @require_roles(ADMIN)
        def view():
            return "ok"

        with app.test_request_context("/"):
            g.user = None
            assert view()[1] == 401
            g.user = self._user(USER)
            assert view()[1] == 403
            g.user = self._user(USER, ADMIN)
            assert view() == "ok"
