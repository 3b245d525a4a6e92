"""Pytest configuration and shared fixtures."""

import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from app import create_app  # noqa: E402
from config import TestingConfig  # noqa: E402
from models import db  # noqa: E402
from models.user import User, Role  # noqa: E402
from security.geolocation import GeoLocation, GeolocationProvider  # noqa: E402
from security.password import hash_password  # noqa: E402
from security.services import get_failed_login_tracker, get_session_manager  # noqa: E402


class FrozenClock:
    """Callable clock that only moves when a test moves it."""

    def __init__(self, now=None):
        self.now = now or datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeGeolocation(GeolocationProvider):
    """Table-driven provider: answers come from dicts keyed by IP."""

    def __init__(self):
        self.locations = {}
        self.suspicious = set()
        self.vpn = set()
        self.calls = []

    def get_location(self, ip):
        self.calls.append(ip)
        return self.locations.get(ip)

    def is_location_suspicious(self, ip, user_id=None):
        return ip in self.suspicious

    def is_vpn_or_proxy(self, ip):
        return ip in self.vpn


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def geo():
    return FakeGeolocation()


@pytest.fixture
def app(clock, geo):
    app = create_app(TestingConfig, geolocation=geo, clock=clock)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def tracker(app):
    return get_failed_login_tracker()


@pytest.fixture
def sessions(app):
    return get_session_manager()


@pytest.fixture
def make_user(app):
    def _make(email="user@example.com", password="correct-horse", roles=("USER",)):
        user = User(email=email, password_hash=hash_password(password))
        for role in Role.query.filter(Role.name.in_(roles)).all():
            user.roles.append(role)
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture
def login(client):
    """Logs in over HTTP and returns the bearer token."""
    def _login(email, password="correct-horse", ip="10.0.0.1"):
        resp = client.post(
            "/auth/login",
            json={"email": email, "password": password},
            headers={"User-Agent": "Mozilla/5.0 (X11; Linux x86_64) Firefox/120.0"},
            environ_base={"REMOTE_ADDR": ip},
        )
        assert resp.status_code == 200, resp.get_json()
        return resp.get_json()["token"]
    return _login
