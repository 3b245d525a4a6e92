from datetime import datetime

from flask import Blueprint, jsonify, g, request

from models import db
from models.blocked_ip import BlockedIp
from models.user_session import UserSession
from routes.serializers import attempt_json, session_json, summary_json
from security.rbac import require_admin
from security.services import get_failed_login_tracker, get_session_manager
from security.validation import ValidationError
from utils.audit import log_event

security_bp = Blueprint("security", __name__, url_prefix="/admin/security")


def _parse_datetime(value):
    if not value:
        return None
    return datetime.fromisoformat(value)


def _int_arg(name: str, default: int, low: int = 1, high: int = 1000) -> int:
    try:
        value = int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default
    return min(max(value, low), high)


# --- failed logins ---------------------------------------------------------

@security_bp.get("/failed-logins")
@require_admin
def failed_login_summary():
    try:
        from_ = _parse_datetime(request.args.get("from"))
        to = _parse_datetime(request.args.get("to"))
    except ValueError:
        return jsonify(error="Invalid date. Use ISO 8601"), 400

    summary = get_failed_login_tracker().get_failed_login_summary(from_, to)
    return jsonify(summary_json(summary)), 200


@security_bp.get("/failed-logins/attempts")
@require_admin
def failed_login_attempts():
    page = _int_arg("page", 1, high=100000)
    page_size = _int_arg("page_size", 50, high=200)
    rows = get_failed_login_tracker().get_failed_login_attempts(page, page_size)
    return jsonify([attempt_json(a) for a in rows]), 200


@security_bp.get("/failed-logins/lockout-status")
@require_admin
def lockout_status():
    identity = (request.args.get("identity") or "").strip()
    if not identity:
        return jsonify(error="identity is required"), 400
    status = get_failed_login_tracker().get_account_lockout_status(identity)
    return jsonify(status.to_dict()), 200


@security_bp.post("/failed-logins/unlock")
@require_admin
def unlock_account():
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip() or None
    try:
        marker = get_failed_login_tracker().unlock_account(
            data.get("identity"), unlocked_by=g.user.email, reason=reason
        )
    except ValidationError as exc:
        return jsonify(error=str(exc)), 400

    return jsonify(message="Account unlocked", identity=marker.identity,
                   unlocked_at=marker.unlocked_at.isoformat()), 200


@security_bp.get("/suspicious-ips")
@require_admin
def suspicious_ips():
    limit = _int_arg("limit", 10, high=100)
    return jsonify(get_failed_login_tracker().get_suspicious_ips(limit)), 200


# --- ip blocklist ----------------------------------------------------------

@security_bp.get("/blocked-ips")
@require_admin
def list_blocked_ips():
    rows = BlockedIp.query.order_by(BlockedIp.created_at.desc()).limit(200).all()
    return jsonify([
        {
            "id": r.id,
            "ip": r.ip,
            "reason": r.reason,
            "blocked_by": r.blocked_by,
            "created_at": r.created_at.isoformat(),
        }
        for r in rows
    ]), 200


@security_bp.post("/blocked-ips")
@require_admin
def block_ip():
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip() or None
    try:
        row = get_failed_login_tracker().block_ip(data.get("ip"), reason=reason, blocked_by=g.user.email)
    except ValidationError as exc:
        return jsonify(error=str(exc)), 400
    return jsonify(id=row.id, ip=row.ip, reason=row.reason), 201


@security_bp.delete("/blocked-ips/<ip>")
@require_admin
def unblock_ip(ip: str):
    if not get_failed_login_tracker().unblock_ip(ip, unblocked_by=g.user.email):
        return jsonify(error="Not found"), 404
    return jsonify(message="Unblocked"), 200


# --- sessions --------------------------------------------------------------

@security_bp.get("/sessions")
@require_admin
def session_management():
    data = get_session_manager().get_session_management_data()
    data["active_sessions"] = [session_json(s) for s in data["active_sessions"]]
    data["recent_sessions"] = [session_json(s) for s in data["recent_sessions"]]
    return jsonify(data), 200


@security_bp.get("/sessions/active")
@require_admin
def active_sessions():
    user_id = request.args.get("user_id", type=int)
    rows = get_session_manager().get_active_sessions(user_id=user_id)
    return jsonify([session_json(s) for s in rows]), 200


@security_bp.get("/sessions/user/<int:user_id>")
@require_admin
def user_sessions(user_id: int):
    active_only = (request.args.get("active_only") or "").lower() in ("1", "true", "yes")
    rows = get_session_manager().get_user_sessions(user_id, active_only=active_only)
    return jsonify([session_json(s) for s in rows]), 200


@security_bp.get("/sessions/summary")
@require_admin
def session_summary():
    hours = _int_arg("hours", 24, high=24 * 90)
    return jsonify(get_session_manager().get_session_security_summary(hours)), 200


@security_bp.post("/sessions/<int:session_id>/terminate")
@require_admin
def terminate_session(session_id: int):
    if not db.session.get(UserSession, session_id):
        return jsonify(error="Session not found"), 404

    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip()
    full_reason = f"Terminated by admin: {g.user.email}" + (f" - {reason}" if reason else "")

    terminated = get_session_manager().terminate_session_by_id(session_id, full_reason)
    log_event("ADMIN_SESSION_TERMINATE", user_id=g.user.id, entity="session", entity_id=session_id,
              metadata={"reason": reason, "terminated": terminated})
    return jsonify(message="Session terminated" if terminated else "Session already ended",
                   terminated=terminated), 200


@security_bp.post("/sessions/terminate-all")
@require_admin
def terminate_all_sessions():
    data = request.get_json(silent=True) or {}
    user_id = data.get("user_id")
    if not isinstance(user_id, int):
        return jsonify(error="user_id must be an integer"), 400

    reason = (data.get("reason") or "").strip()
    full_reason = f"All sessions terminated by admin: {g.user.email}" + (f" - {reason}" if reason else "")
    # Never log the acting admin out of the session they are using
    exclude = g.session_token if user_id == g.user.id else None

    count = get_session_manager().terminate_all_user_sessions(user_id, full_reason, exclude_token=exclude)
    log_event("ADMIN_SESSION_TERMINATE_ALL", user_id=g.user.id, entity="user", entity_id=user_id,
              metadata={"reason": reason, "terminated_sessions": count})
    return jsonify(message="Sessions terminated", terminated_sessions=count), 200


@security_bp.post("/sessions/<int:session_id>/mark-suspicious")
@require_admin
def mark_session_suspicious(session_id: int):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip() or "No reason given"

    marked = get_session_manager().mark_session_suspicious_by_id(
        session_id, f"Marked by admin: {g.user.email} - {reason}"
    )
    if not marked:
        return jsonify(error="Active session not found"), 404

    log_event("ADMIN_SESSION_MARK_SUSPICIOUS", user_id=g.user.id, entity="session", entity_id=session_id,
              metadata={"reason": reason})
    return jsonify(message="Session marked as suspicious"), 200
