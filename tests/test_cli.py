"""Tests for the flask CLI maintenance commands."""

from models.account_unlock import AccountUnlock
from models.blocked_ip import BlockedIp
from models.user import User


class TestCommands:
    def test_make_admin(self, app, make_user):
        make_user("sam@example.com")
        result = app.test_cli_runner().invoke(args=["make-admin", "Sam@Example.com"])
        assert "promoted to ADMIN" in result.output
        assert "ADMIN" in {r.name for r in User.query.filter_by(email="sam@example.com").one().roles}

    def test_make_admin_unknown(self, app):
        result = app.test_cli_runner().invoke(args=["make-admin", "ghost@example.com"])
        assert "User not found" in result.output

    def test_cleanup_sessions(self, app, make_user, sessions, clock):
        user = make_user("sam@example.com")
        sessions.create_session(user.id, "10.0.0.1", "Mozilla/5.0 (X11; Linux x86_64) Firefox/120.0")
        clock.advance(hours=3)
        result = app.test_cli_runner().invoke(args=["cleanup-sessions"])
        assert "Terminated 1 expired session(s)" in result.output

    def test_unlock_account(self, app):
        result = app.test_cli_runner().invoke(args=["unlock-account", "alice@example.com", "--reason", "helpdesk"])
        assert result.exit_code == 0
        marker = AccountUnlock.query.one()
        assert marker.unlocked_by == "cli"
        assert marker.reason == "helpdesk"

    def test_block_and_unblock_ip(self, app):
        runner = app.test_cli_runner()
        assert "5.5.5.5 blocked" in runner.invoke(args=["block-ip", "5.5.5.5"]).output
        assert BlockedIp.query.count() == 1
        assert "5.5.5.5 unblocked" in runner.invoke(args=["block-ip", "5.5.5.5", "--unblock"]).output
        assert BlockedIp.query.count() == 0

    def test_block_invalid_ip(self, app):
        result = app.test_cli_runner().invoke(args=["block-ip", "nonsense"])
        assert result.exit_code != 0
