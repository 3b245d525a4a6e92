from flask import Blueprint, request, jsonify, current_app, g

from models import db
from models.user import User, Role
from models.user_session import UserSession
from routes.serializers import session_json
from security.csrf import issue_csrf_token
from security.password import check_credentials, hash_password
from security.rbac import ADMIN, USER
from security.services import get_failed_login_tracker, get_session_manager
from security.validation import ValidationError
from utils.audit import log_event
from utils.auth_context import login_required, client_ip
from utils.blocklist import normalize_identity


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

MIN_PASSWORD_LEN = 8


def _is_valid_email(email: str) -> bool:
    return isinstance(email, str) and "@" in email and len(email) <= 255


def _set_session_cookie(resp, raw_token: str):
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "auth_session")
    max_age = current_app.extensions["security_policy"].session_timeout.total_seconds()
    resp.set_cookie(
        cookie_name,
        raw_token,
        httponly=True,
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        max_age=int(max_age),
        path="/",
    )
    return resp


@auth_bp.post("/register")
def register():
    data = request.get_json(silent=True) or {}
    email = normalize_identity(data.get("email"))
    password = data.get("password") or ""

    if not _is_valid_email(email):
        return jsonify(error="Invalid email"), 400
    if len(password) < MIN_PASSWORD_LEN:
        return jsonify(error=f"Password must be at least {MIN_PASSWORD_LEN} characters"), 400

    if User.query.filter_by(email=email).first():
        log_event("REGISTER_FAIL_EMAIL_EXISTS", metadata={"email": email})
        return jsonify(error="Email already registered"), 409

    user = User(email=email, password_hash=hash_password(password))
    db.session.add(user)
    db.session.flush()

    role_names = [USER]
    signup_code = current_app.config.get("ADMIN_SIGNUP_CODE")
    if signup_code and data.get("admin_code") == signup_code:
        role_names.append(ADMIN)
    for role in Role.query.filter(Role.name.in_(role_names)).all():
        user.roles.append(role)

    db.session.commit()
    log_event("REGISTER_SUCCESS", user_id=user.id)

    return jsonify(message="Registered successfully", id=user.id), 201


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    email = normalize_identity(data.get("email"))
    password = data.get("password") or ""
    ip = client_ip()
    user_agent = request.headers.get("User-Agent")

    if not _is_valid_email(email):
        return jsonify(error="Invalid email"), 400

    tracker = get_failed_login_tracker()

    if tracker.is_ip_blocked(ip):
        log_event("LOGIN_BLOCKED_IP", metadata={"email": email})
        return jsonify(error="Access denied"), 403

    # Lockout is decided before the password is looked at, so a locked
    # account answers the same way whether or not the password is right.
    status = tracker.get_account_lockout_status(email)
    if status.is_locked:
        seconds_left = status.seconds_remaining(tracker.clock())
        log_event("LOGIN_LOCKED", metadata={"email": email, "seconds_left": seconds_left})
        return jsonify(error="Account temporarily locked. Try again later.", retry_after_seconds=seconds_left), 429

    user = User.query.filter_by(email=email).first()
    if not check_credentials(user, password):
        try:
            attempt = tracker.log_attempt(
                email, ip, user_agent,
                failure_reason="Unknown user" if not user else "Invalid password",
            )
        except ValidationError:
            return jsonify(error="Invalid request"), 400

        locked_now = tracker.is_account_locked(email)
        log_event(
            "LOGIN_FAIL",
            user_id=user.id if user else None,
            metadata={"email": email, "suspicious": attempt.is_suspicious, "locked_now": locked_now},
        )
        if locked_now:
            lockout_minutes = int(tracker.policy.lockout_duration.total_seconds() // 60)
            return jsonify(error="Too many failed attempts. Account locked.", lockout_minutes=lockout_minutes), 429
        return jsonify(error="Invalid credentials"), 401

    try:
        raw_token = get_session_manager().create_session(user.id, ip, user_agent)
    except ValidationError:
        return jsonify(error="Invalid request"), 400

    resp = _set_session_cookie(jsonify(message="Login OK", token=raw_token), raw_token)
    resp = issue_csrf_token(resp)
    log_event("LOGIN_SUCCESS", user_id=user.id)
    return resp, 200


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(
        id=g.user.id,
        email=g.user.email,
        roles=[r.name for r in g.user.roles],
        session=session_json(g.session),
    ), 200


@auth_bp.post("/logout")
@login_required
def logout():
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "auth_session")

    get_session_manager().terminate_session(g.session_token, "Logged out")
    log_event("LOGOUT", user_id=g.user.id)

    resp = jsonify(message="Logged out")
    resp.delete_cookie(cookie_name, path="/")
    return resp, 200


@auth_bp.post("/logout_all")
@login_required
def logout_all():
    data = request.get_json(silent=True) or {}
    keep_current = bool(data.get("keep_current"))
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "auth_session")

    count = get_session_manager().terminate_all_user_sessions(
        g.user.id,
        "Logged out everywhere",
        exclude_token=g.session_token if keep_current else None,
    )
    log_event("LOGOUT_ALL", user_id=g.user.id, metadata={"terminated_sessions": count})

    resp = jsonify(message="Logged out everywhere", terminated_sessions=count)
    if not keep_current:
        resp.delete_cookie(cookie_name, path="/")
    return resp, 200


@auth_bp.get("/sessions")
@login_required
def my_sessions():
    rows = get_session_manager().get_user_sessions(g.user.id, active_only=True)
    return jsonify([
        dict(session_json(s), current=(s.id == g.session.id))
        for s in rows
    ]), 200


@auth_bp.post("/sessions/<int:session_id>/terminate")
@login_required
def terminate_my_session(session_id: int):
    row = db.session.get(UserSession, session_id)
    if not row or row.user_id != g.user.id or not row.is_active:
        return jsonify(error="Session not found"), 404

    get_session_manager().terminate_session_by_id(session_id, "Terminated by user")
    log_event("SESSION_TERMINATE", user_id=g.user.id, entity="session", entity_id=session_id)
    return jsonify(message="Session terminated"), 200
