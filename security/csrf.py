import secrets
from flask import request, jsonify, current_app, g

CSRF_COOKIE = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"

STATE_CHANGING_METHODS = ("POST", "PUT", "PATCH", "DELETE")

# Endpoints that run before a session exists
CSRF_EXEMPT_PATHS = frozenset({"/auth/login", "/auth/register", "/health"})


def issue_csrf_token(resp):
    """Double-submit token: the client echoes this cookie back in X-CSRF-Token."""
    resp.set_cookie(
        CSRF_COOKIE,
        secrets.token_urlsafe(32),
        httponly=False,  # must be readable by client JS
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        path="/",
    )
    return resp


def uses_cookie_auth() -> bool:
    # Browsers attach cookies on their own; a Bearer header has to be set by the caller
    return not request.headers.get("Authorization", "").startswith("Bearer ")


def require_csrf():
    cookie_token = request.cookies.get(CSRF_COOKIE)
    header_token = request.headers.get(CSRF_HEADER)
    if not cookie_token or not header_token or not secrets.compare_digest(cookie_token, header_token):
        return jsonify(error="CSRF validation failed"), 403
    return None


def csrf_protect():
    """before_request hook. Runs after the session has been loaded onto g."""
    if request.method not in STATE_CHANGING_METHODS or request.path in CSRF_EXEMPT_PATHS:
        return None
    if getattr(g, "user", None) is None or not uses_cookie_auth():
        return None
    return require_csrf()
