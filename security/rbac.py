from functools import wraps
from flask import g, jsonify

USER = "USER"
ADMIN = "ADMIN"

DEFAULT_ROLES = (USER, ADMIN)


def role_names(user) -> set:
    if user is None:
        return set()
    return {r.name for r in user.roles}


def require_roles(*required: str):
    """
    Usage: @require_roles(ADMIN)

    401 without a live session, 403 when the session's user holds none of the roles.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return jsonify(error="Authentication required"), 401

            if not role_names(user).intersection(required):
                return jsonify(error="Forbidden"), 403

            return fn(*args, **kwargs)
        return wrapper
    return decorator


require_admin = require_roles(ADMIN)
