from flask import current_app

from security.bruteforce import FailedLoginTracker
from security.geolocation import build_geolocation_provider
from security.policy import SecurityPolicy
from security.session import SessionManager
from utils.clock import utcnow


def init_security(app, geolocation=None, clock=None):
    """Builds the policy and both trackers from app.config and hangs them on app.extensions."""
    clock = clock or utcnow
    policy = SecurityPolicy.from_config(app.config)
    geolocation = geolocation or build_geolocation_provider(app.config, clock=clock)

    app.extensions["security_policy"] = policy
    app.extensions["failed_login_tracker"] = FailedLoginTracker(policy, geolocation, clock=clock)
    app.extensions["session_manager"] = SessionManager(policy, geolocation, clock=clock)


def get_failed_login_tracker() -> FailedLoginTracker:
    return current_app.extensions["failed_login_tracker"]


def get_session_manager() -> SessionManager:
    return current_app.extensions["session_manager"]
