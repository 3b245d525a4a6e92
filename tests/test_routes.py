"""HTTP tests for the auth and admin security blueprints."""

import pytest

from app import create_app
from config import TestingConfig
from models import db
from models.audit_log import AuditLog
from models.failed_login_attempt import FailedLoginAttempt
from models.user_session import UserSession
from security.services import get_failed_login_tracker

PASSWORD = "correct-horse"


def auth(token):
    return {"Authorization": f"Bearer {token}"}


def _bad_login(client, email, ip="10.0.0.1"):
    return client.post(
        "/auth/login",
        json={"email": email, "password": "wrong-password"},
        environ_base={"REMOTE_ADDR": ip},
    )


@pytest.fixture
def admin_token(make_user, login):
    make_user("admin@example.com", roles=("USER", "ADMIN"))
    return login("admin@example.com", ip="10.0.0.99")


class TestHealthAndHeaders:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.get_json() == {"status": "ok"}
        assert resp.headers["X-Frame-Options"] == "DENY"
        assert resp.headers["X-Content-Type-Options"] == "nosniff"


class TestRegister:
    def test_register(self, client):
        resp = client.post("/auth/register", json={"email": "New@Example.com", "password": PASSWORD})
        assert resp.status_code == 201

    def test_duplicate(self, client, make_user):
        make_user("new@example.com")
        resp = client.post("/auth/register", json={"email": "new@example.com", "password": PASSWORD})
        assert resp.status_code == 409

    def test_short_password(self, client):
        resp = client.post("/auth/register", json={"email": "new@example.com", "password": "short"})
        assert resp.status_code == 400

    def test_admin_code(self, app, client, login):
        app.config["ADMIN_SIGNUP_CODE"] = "let-me-in"
        client.post("/auth/register",
                    json={"email": "boss@example.com", "password": PASSWORD, "admin_code": "let-me-in"})
        token = login("boss@example.com")
        roles = client.get("/auth/me", headers=auth(token)).get_json()["roles"]
        assert set(roles) == {"USER", "ADMIN"}


class TestLogin:
    def test_login_and_me(self, client, make_user, login):
        make_user("sam@example.com")
        token = login("sam@example.com")

        resp = client.get("/auth/me", headers=auth(token))
        body = resp.get_json()
        assert resp.status_code == 200
        assert body["email"] == "sam@example.com"
        assert body["session"]["is_active"]
        assert body["session"]["browser"] == "Firefox"

    def test_wrong_password_is_logged(self, client, make_user):
        make_user("sam@example.com")
        resp = _bad_login(client, "sam@example.com")
        assert resp.status_code == 401
        attempt = FailedLoginAttempt.query.one()
        assert attempt.identity == "sam@example.com"
        assert attempt.failure_reason == "Invalid password"

    def test_unknown_user_is_logged(self, client):
        assert _bad_login(client, "ghost@example.com").status_code == 401
        assert FailedLoginAttempt.query.one().failure_reason == "Unknown user"

    def test_invalid_email(self, client):
        resp = client.post("/auth/login", json={"email": "nope", "password": PASSWORD})
        assert resp.status_code == 400
        assert FailedLoginAttempt.query.count() == 0

    def test_lockout(self, client, make_user, clock):
        make_user("alice@example.com")
        codes = [_bad_login(client, "alice@example.com").status_code for _ in range(5)]
        assert codes == [401, 401, 401, 401, 429]

        # Correct password is refused while locked, and nothing more is logged
        resp = client.post("/auth/login", json={"email": "alice@example.com", "password": PASSWORD})
        assert resp.status_code == 429
        assert resp.get_json()["retry_after_seconds"] == 30 * 60
        assert FailedLoginAttempt.query.count() == 5

        clock.advance(minutes=30)
        resp = client.post("/auth/login", json={"email": "alice@example.com", "password": PASSWORD})
        assert resp.status_code == 200

    def test_blocked_ip(self, client, make_user, tracker):
        make_user("sam@example.com")
        tracker.block_ip("5.5.5.5")
        resp = client.post("/auth/login", json={"email": "sam@example.com", "password": PASSWORD},
                           environ_base={"REMOTE_ADDR": "5.5.5.5"})
        assert resp.status_code == 403

    def test_expired_session_is_rejected(self, client, make_user, login, clock):
        make_user("sam@example.com")
        token = login("sam@example.com")
        clock.advance(minutes=121)
        assert client.get("/auth/me", headers=auth(token)).status_code == 401


class TestLogout:
    def test_logout(self, client, make_user, login):
        make_user("sam@example.com")
        token = login("sam@example.com")
        assert client.post("/auth/logout", headers=auth(token)).status_code == 200
        assert client.get("/auth/me", headers=auth(token)).status_code == 401
        assert UserSession.query.one().termination_reason == "Logged out"

    def test_logout_all_keep_current(self, client, make_user, login):
        make_user("sam@example.com")
        old = login("sam@example.com")
        current = login("sam@example.com")

        resp = client.post("/auth/logout_all", json={"keep_current": True}, headers=auth(current))
        assert resp.get_json()["terminated_sessions"] == 1
        assert client.get("/auth/me", headers=auth(old)).status_code == 401
        assert client.get("/auth/me", headers=auth(current)).status_code == 200

    def test_cookie_auth_requires_csrf(self, client, make_user, login):
        make_user("sam@example.com")
        login("sam@example.com")

        # The login response left the session and CSRF cookies on the client
        assert client.post("/auth/logout").status_code == 403

        csrf = client.get_cookie("csrf_token").value
        assert client.post("/auth/logout", headers={"X-CSRF-Token": csrf}).status_code == 200

    def test_list_and_terminate_own_sessions(self, client, make_user, login):
        make_user("sam@example.com")
        other = login("sam@example.com")
        token = login("sam@example.com")

        sessions = client.get("/auth/sessions", headers=auth(token)).get_json()
        assert len(sessions) == 2
        target = next(s for s in sessions if not s["current"])

        resp = client.post(f"/auth/sessions/{target['id']}/terminate", headers=auth(token))
        assert resp.status_code == 200
        assert client.get("/auth/me", headers=auth(other)).status_code == 401

    def test_cannot_terminate_someone_elses_session(self, client, make_user, login):
        make_user("sam@example.com")
        make_user("eve@example.com")
        login("sam@example.com")
        eve = login("eve@example.com")
        sam_session = UserSession.query.order_by(UserSession.id).first()

        resp = client.post(f"/auth/sessions/{sam_session.id}/terminate", headers=auth(eve))
        assert resp.status_code == 404


class TestAdminSecurity:
    def test_requires_admin(self, app, client, make_user, login):
        make_user("sam@example.com")
        token = login("sam@example.com")
        assert client.get("/admin/security/failed-logins", headers=auth(token)).status_code == 403
        assert app.test_client().get("/admin/security/failed-logins").status_code == 401

    def test_failed_login_summary(self, client, admin_token):
        for _ in range(3):
            _bad_login(client, "alice@example.com", ip="1.2.3.4")

        body = client.get("/admin/security/failed-logins", headers=auth(admin_token)).get_json()
        assert body["total_attempts"] == 3
        assert body["top_targeted_accounts"] == [{"identity": "alice@example.com", "attempts": 3}]
        assert len(body["recent_attempts"]) == 3

    def test_failed_login_summary_bad_date(self, client, admin_token):
        resp = client.get("/admin/security/failed-logins?from=yesterday", headers=auth(admin_token))
        assert resp.status_code == 400

    def test_attempt_listing(self, client, admin_token):
        _bad_login(client, "alice@example.com")
        rows = client.get("/admin/security/failed-logins/attempts", headers=auth(admin_token)).get_json()
        assert rows[0]["identity"] == "alice@example.com"
        assert rows[0]["risk_factors"] == []

    def test_lockout_status_and_unlock(self, client, make_user, admin_token):
        make_user("alice@example.com")
        for _ in range(5):
            _bad_login(client, "alice@example.com")

        status = client.get("/admin/security/failed-logins/lockout-status?identity=alice@example.com",
                            headers=auth(admin_token)).get_json()
        assert status["is_locked"]
        assert status["failed_attempts"] == 5

        resp = client.post("/admin/security/failed-logins/unlock",
                           json={"identity": "alice@example.com", "reason": "verified by phone"},
                           headers=auth(admin_token))
        assert resp.status_code == 200

        resp = client.post("/auth/login", json={"email": "alice@example.com", "password": PASSWORD})
        assert resp.status_code == 200
        assert FailedLoginAttempt.query.count() == 5

    def test_unlock_requires_identity(self, client, admin_token):
        resp = client.post("/admin/security/failed-logins/unlock", json={}, headers=auth(admin_token))
        assert resp.status_code == 400

    def test_suspicious_ips(self, client, admin_token):
        for i in range(10):
            _bad_login(client, f"u{i}@example.com", ip="6.6.6.6")
        body = client.get("/admin/security/suspicious-ips", headers=auth(admin_token)).get_json()
        assert body == ["6.6.6.6"]

    def test_blocked_ip_crud(self, client, admin_token):
        resp = client.post("/admin/security/blocked-ips", json={"ip": "5.5.5.5", "reason": "spray"},
                           headers=auth(admin_token))
        assert resp.status_code == 201

        listed = client.get("/admin/security/blocked-ips", headers=auth(admin_token)).get_json()
        assert [r["ip"] for r in listed] == ["5.5.5.5"]

        assert client.delete("/admin/security/blocked-ips/5.5.5.5", headers=auth(admin_token)).status_code == 200
        assert client.delete("/admin/security/blocked-ips/5.5.5.5", headers=auth(admin_token)).status_code == 404
        assert AuditLog.query.filter_by(action="IP_UNBLOCKED").count() == 1

    def test_block_invalid_ip(self, client, admin_token):
        resp = client.post("/admin/security/blocked-ips", json={"ip": "bogus"}, headers=auth(admin_token))
        assert resp.status_code == 400

    def test_session_admin(self, client, make_user, login, admin_token):
        sam = make_user("sam@example.com")
        token = login("sam@example.com")
        sam_session = UserSession.query.filter_by(user_id=sam.id).one()

        data = client.get("/admin/security/sessions", headers=auth(admin_token)).get_json()
        assert data["total_active_sessions"] == 2

        active = client.get(f"/admin/security/sessions/active?user_id={sam.id}", headers=auth(admin_token))
        assert [s["id"] for s in active.get_json()] == [sam_session.id]

        resp = client.post(f"/admin/security/sessions/{sam_session.id}/mark-suspicious",
                           json={"reason": "odd hours"}, headers=auth(admin_token))
        assert resp.status_code == 200

        resp = client.post(f"/admin/security/sessions/{sam_session.id}/terminate",
                           json={"reason": "compromised"}, headers=auth(admin_token))
        assert resp.get_json()["terminated"] is True
        assert client.get("/auth/me", headers=auth(token)).status_code == 401

        history = client.get(f"/admin/security/sessions/user/{sam.id}", headers=auth(admin_token)).get_json()
        assert history[0]["termination_reason"] == "Terminated by admin: admin@example.com - compromised"
        assert history[0]["is_suspicious"]

    def test_terminate_unknown_session(self, client, admin_token):
        resp = client.post("/admin/security/sessions/424242/terminate", headers=auth(admin_token))
        assert resp.status_code == 404

    def test_terminate_all_spares_acting_admin(self, client, login, admin_token):
        other = login("admin@example.com")
        admin_id = client.get("/auth/me", headers=auth(admin_token)).get_json()["id"]

        resp = client.post("/admin/security/sessions/terminate-all",
                           json={"user_id": admin_id}, headers=auth(admin_token))
        assert resp.get_json()["terminated_sessions"] == 1
        assert client.get("/auth/me", headers=auth(admin_token)).status_code == 200
        assert client.get("/auth/me", headers=auth(other)).status_code == 401

    def test_session_summary(self, client, admin_token):
        body = client.get("/admin/security/sessions/summary?hours=12", headers=auth(admin_token)).get_json()
        assert body["hours"] == 12
        assert body["sessions_created"] == 1


class TestClientAddress:
    """The client IP comes from the socket peer unless a trusted proxy count is configured."""

    def test_forwarded_header_is_ignored_without_trusted_proxy(self, client, make_user, tracker):
        make_user("sam@example.com")
        tracker.block_ip("5.5.5.5")

        resp = client.post(
            "/auth/login",
            json={"email": "sam@example.com", "password": "wrong-password"},
            headers={"X-Forwarded-For": "8.8.4.4"},
            environ_base={"REMOTE_ADDR": "5.5.5.5"},
        )
        assert resp.status_code == 403
        assert FailedLoginAttempt.query.count() == 0

    def test_failed_attempt_recorded_under_peer_address(self, client):
        client.post(
            "/auth/login",
            json={"email": "sam@example.com", "password": "wrong-password"},
            headers={"X-Forwarded-For": "8.8.4.4"},
            environ_base={"REMOTE_ADDR": "7.7.7.7"},
        )
        assert FailedLoginAttempt.query.one().ip == "7.7.7.7"

    def test_trusted_proxy_hop_is_used(self, clock, geo):
        class BehindProxy(TestingConfig):
            TRUSTED_PROXY_COUNT = 1

        proxied = create_app(BehindProxy, geolocation=geo, clock=clock)
        with proxied.app_context():
            get_failed_login_tracker().block_ip("5.5.5.5")
            client = proxied.test_client()

            # Only the entry appended by our proxy counts; the client-supplied one is ignored
            resp = client.post(
                "/auth/login",
                json={"email": "sam@example.com", "password": "wrong-password"},
                headers={"X-Forwarded-For": "8.8.4.4, 5.5.5.5"},
                environ_base={"REMOTE_ADDR": "10.0.0.2"},
            )
            assert resp.status_code == 403

            client.post(
                "/auth/login",
                json={"email": "sam@example.com", "password": "wrong-password"},
                headers={"X-Forwarded-For": "5.5.5.5, 9.9.9.9"},
                environ_base={"REMOTE_ADDR": "10.0.0.2"},
            )
            assert FailedLoginAttempt.query.one().ip == "9.9.9.9"

            db.session.remove()
            db.drop_all()
