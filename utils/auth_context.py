from functools import wraps
from flask import current_app, g, jsonify, request

from models import db
from models.user import User
from security.services import get_session_manager
from utils.blocklist import normalize_ip


def client_ip() -> str:
    # ProxyFix (TRUSTED_PROXY_COUNT) rewrites remote_addr when we sit behind a proxy
    return normalize_ip(request.remote_addr) or "unknown"


def session_token_from_request():
    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        return auth[len("Bearer "):].strip() or None
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "auth_session")
    return request.cookies.get(cookie_name)


def load_current_user():
    """Validates (and renews) the request's session, then loads its owner onto g."""
    g.user = None
    g.session = None
    g.session_token = None

    token = session_token_from_request()
    if not token:
        return

    manager = get_session_manager()
    if not manager.validate_session(token):
        return

    sess = manager.get_session_by_token(token)
    g.session = sess
    g.session_token = token
    g.user = db.session.get(User, sess.user_id)

def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            return jsonify(error="Authentication required"), 401
        return fn(*args, **kwargs)
    return wrapper
