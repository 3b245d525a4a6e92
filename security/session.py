"""
Server-side session lifecycle.

Sessions are Created -> Active (renewed on every validated request) ->
Terminated. Termination is one conditional UPDATE on `is_active = true`, so
it happens exactly once no matter how many callers race for it.
"""
import hashlib
import secrets
from datetime import datetime, timedelta
from typing import Optional

from flask import current_app
from sqlalchemy import func

from models import db
from models.user import User
from models.user_session import UserSession
from security.geolocation import GeolocationProvider
from security.policy import SecurityPolicy
from security.validation import ValidationError, validate_ip
from utils.clock import utcnow

SESSION_LIMIT_REASON = "Session limit exceeded — oldest session terminated"
SESSION_EXPIRED_REASON = "Session expired"
CLEANUP_REASON = "Automatic cleanup"

UNKNOWN = "Unknown"


def _hash_token(token: str) -> str:
    # SHA-256 is fine for hashing random session tokens
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_session_token() -> str:
    # 32 random bytes = 256 bits, URL-safe base64 without padding
    return secrets.token_urlsafe(32)


def parse_user_agent(user_agent: Optional[str]) -> tuple[str, str, str]:
    """Returns (device_type, browser, operating_system) from substring heuristics."""
    if not user_agent:
        return UNKNOWN, UNKNOWN, UNKNOWN

    if "Tablet" in user_agent or "iPad" in user_agent:
        device = "Tablet"
    elif "Mobile" in user_agent or "Android" in user_agent or "iPhone" in user_agent:
        device = "Mobile"
    else:
        device = "Desktop"

    # Edge and Chrome both advertise "Chrome" and "Safari"; check the most specific first
    if "Edg" in user_agent:
        browser = "Edge"
    elif "Chrome" in user_agent or "CriOS" in user_agent:
        browser = "Chrome"
    elif "Firefox" in user_agent or "FxiOS" in user_agent:
        browser = "Firefox"
    elif "Safari" in user_agent:
        browser = "Safari"
    else:
        browser = UNKNOWN

    if "Windows" in user_agent:
        os_name = "Windows"
    elif "iPhone" in user_agent or "iPad" in user_agent or "iOS" in user_agent:
        os_name = "iOS"
    elif "Mac" in user_agent:
        os_name = "macOS"
    elif "Android" in user_agent:
        os_name = "Android"
    elif "Linux" in user_agent:
        os_name = "Linux"
    else:
        os_name = UNKNOWN

    return device, browser, os_name


class SessionManager:
    def __init__(self, policy: SecurityPolicy, geolocation: GeolocationProvider, clock=utcnow):
        self.policy = policy
        self.geolocation = geolocation
        self.clock = clock

    def _terminate_where(self, reason: str, now: datetime, *criteria) -> int:
        """Ends matching sessions that are still active. Returns how many it ended."""
        return (
            UserSession.query
            .filter(UserSession.is_active.is_(True), *criteria)
            .update(
                {
                    UserSession.is_active: False,
                    UserSession.terminated_at: now,
                    UserSession.termination_reason: reason[:255],
                },
                synchronize_session=False,
            )
        )

    # --- creation ----------------------------------------------------------

    def create_session(self, user_id: int, ip: str, user_agent: Optional[str] = None) -> str:
        """
        Issues a new session and returns the raw token (only its hash is stored).

        Count, evict and insert run inside one transaction that holds the
        owner's `users` row lock, so concurrent logins for the same user from
        any number of app instances cannot overshoot the cap.
        """
        ip = validate_ip(ip)

        # Slow lookups happen before the lock is taken
        location = self.geolocation.get_location(ip)
        location_suspicious = self.geolocation.is_location_suspicious(ip, user_id=user_id)
        device_type, browser, operating_system = parse_user_agent(user_agent)

        raw_token = generate_session_token()
        try:
            owner = (
                db.session.query(User)
                .filter(User.id == user_id)
                .with_for_update()
                .one_or_none()
            )
            if owner is None:
                raise ValidationError(f"Unknown user {user_id}")

            now = self.clock()
            evicted = self._evict_over_limit(user_id, now)

            notes = []
            if location_suspicious:
                notes.append("Suspicious location")
            recent = self.policy.rapid_session_window.evaluate(
                UserSession.query.filter(UserSession.user_id == user_id),
                UserSession.created_at,
                now,
            )
            if recent.exceeded:
                notes.append(f"Rapid session creation ({recent.count} in window)")
            if self.policy.is_unusual_user_agent(user_agent):
                notes.append("Unusual or missing user agent")

            row = UserSession(
                user_id=user_id,
                token_hash=_hash_token(raw_token),
                ip=ip,
                user_agent=user_agent[:255] if user_agent else None,
                created_at=now,
                last_activity=now,
                expires_at=now + self.policy.session_timeout,
                is_active=True,
                country=location.country if location else None,
                city=location.city if location else None,
                country_code=location.country_code if location else None,
                latitude=location.latitude if location else None,
                longitude=location.longitude if location else None,
                device_type=device_type,
                browser=browser,
                operating_system=operating_system,
                is_suspicious=bool(notes),
                security_notes="; ".join(notes) or None,
            )
            db.session.add(row)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        current_app.logger.info(
            "Session created for user %s from %s. Suspicious: %s. Evicted: %s",
            user_id, ip, row.is_suspicious, evicted,
        )
        return raw_token

    def _evict_over_limit(self, user_id: int, now: datetime) -> int:
        """Frees one slot by ending the least-recently-active sessions. Caller holds the user lock."""
        active = (
            UserSession.query
            .filter(UserSession.user_id == user_id, UserSession.is_active.is_(True))
            .order_by(UserSession.last_activity.asc(), UserSession.id.asc())
            .all()
        )
        overflow = len(active) - self.policy.max_concurrent_sessions + 1
        if overflow <= 0:
            return 0

        ids = [s.id for s in active[:overflow]]
        evicted = self._terminate_where(SESSION_LIMIT_REASON, now, UserSession.id.in_(ids))
        current_app.logger.info("Evicted %s session(s) for user %s: limit reached", evicted, user_id)
        return evicted

    # --- validation --------------------------------------------------------

    def validate_session(self, token: Optional[str]) -> bool:
        session = self.get_session_by_token(token)
        if session is None or not session.is_active:
            return False

        now = self.clock()
        if session.expires_at <= now:
            self.terminate_session(token, SESSION_EXPIRED_REASON)
            return False

        return self.update_session_activity(token, now)

    def update_session_activity(self, token: str, now: Optional[datetime] = None) -> bool:
        """
        Slides expiry forward from now. Concurrent renewals are last-write-wins.
        A session already past its expiry stays expired, even before cleanup ends it.
        """
        now = now or self.clock()
        updated = (
            UserSession.query
            .filter(
                UserSession.token_hash == _hash_token(token),
                UserSession.is_active.is_(True),
                UserSession.expires_at > now,
            )
            .update(
                {
                    UserSession.last_activity: now,
                    UserSession.expires_at: now + self.policy.session_timeout,
                },
                synchronize_session=False,
            )
        )
        db.session.commit()
        return updated > 0

    # --- termination -------------------------------------------------------

    def terminate_session(self, token: Optional[str], reason: str) -> bool:
        if not token:
            return False
        ended = self._terminate_where(reason, self.clock(), UserSession.token_hash == _hash_token(token))
        db.session.commit()

        if ended:
            current_app.logger.info("Session terminated. Reason: %s", reason)
        else:
            current_app.logger.warning("Session not found or already terminated (reason given: %s)", reason)
        return bool(ended)

    def terminate_session_by_id(self, session_id: int, reason: str) -> bool:
        ended = self._terminate_where(reason, self.clock(), UserSession.id == session_id)
        db.session.commit()
        if not ended:
            current_app.logger.warning("Session %s not found or already terminated", session_id)
        return bool(ended)

    def terminate_all_user_sessions(self, user_id: int, reason: str, exclude_token: Optional[str] = None) -> int:
        criteria = [UserSession.user_id == user_id]
        if exclude_token:
            criteria.append(UserSession.token_hash != _hash_token(exclude_token))

        ended = self._terminate_where(reason, self.clock(), *criteria)
        db.session.commit()
        current_app.logger.warning(
            "All sessions terminated for user %s. Reason: %s. Count: %s", user_id, reason, ended
        )
        return ended

    def cleanup_expired_sessions(self) -> int:
        """Batch-ends every active session past its expiry. Meant for an external scheduler."""
        now = self.clock()
        ended = self._terminate_where(CLEANUP_REASON, now, UserSession.expires_at <= now)
        db.session.commit()
        if ended:
            current_app.logger.info("Cleaned up %s expired sessions", ended)
        return ended

    # --- suspicious flagging -----------------------------------------------

    def _mark_suspicious(self, session: Optional[UserSession], reason: str) -> bool:
        # Ended sessions are an audit trail and are left untouched
        if session is None or not session.is_active:
            return False
        session.is_suspicious = True
        notes = f"{session.security_notes}; {reason}" if session.security_notes else reason
        session.security_notes = notes[:500]
        db.session.commit()
        current_app.logger.warning("Session %s marked as suspicious. Reason: %s", session.id, reason)
        return True

    def mark_session_suspicious(self, token: str, reason: str) -> bool:
        return self._mark_suspicious(self.get_session_by_token(token), reason)

    def mark_session_suspicious_by_id(self, session_id: int, reason: str) -> bool:
        return self._mark_suspicious(db.session.get(UserSession, session_id), reason)

    def is_suspicious_session(self, token: str) -> bool:
        session = self.get_session_by_token(token)
        return bool(session and session.is_suspicious)

    # --- queries -----------------------------------------------------------

    def get_session_by_token(self, token: Optional[str]) -> Optional[UserSession]:
        if not token:
            return None
        return UserSession.query.filter_by(token_hash=_hash_token(token)).first()

    def get_active_sessions(self, user_id: Optional[int] = None, limit: int = 100) -> list[UserSession]:
        q = UserSession.query.filter(UserSession.is_active.is_(True))
        if user_id is not None:
            q = q.filter(UserSession.user_id == user_id)
        return q.order_by(UserSession.last_activity.desc(), UserSession.id.desc()).limit(limit).all()

    def get_user_sessions(self, user_id: int, active_only: bool = False, limit: int = 50) -> list[UserSession]:
        if active_only:
            return self.get_active_sessions(user_id=user_id, limit=limit)
        return (
            UserSession.query
            .filter(UserSession.user_id == user_id)
            .order_by(UserSession.created_at.desc(), UserSession.id.desc())
            .limit(limit)
            .all()
        )

    def get_recent_terminated_sessions(self, limit: int = 50) -> list[UserSession]:
        return (
            UserSession.query
            .filter(UserSession.is_active.is_(False))
            .order_by(UserSession.terminated_at.desc(), UserSession.id.desc())
            .limit(limit)
            .all()
        )

    def get_active_session_count(self, user_id: int) -> int:
        return UserSession.query.filter(
            UserSession.user_id == user_id, UserSession.is_active.is_(True)
        ).count()

    def is_session_limit_exceeded(self, user_id: int) -> bool:
        return self.get_active_session_count(user_id) >= self.policy.max_concurrent_sessions

    def get_session_security_summary(self, hours: int = 24) -> dict:
        since = self.clock() - timedelta(hours=hours)
        created = UserSession.query.filter(UserSession.created_at >= since)
        n = func.count(UserSession.id)

        locations = (
            db.session.query(UserSession.country, UserSession.city, n)
            .filter(UserSession.created_at >= since, UserSession.country.isnot(None))
            .group_by(UserSession.country, UserSession.city)
            .all()
        )
        devices = (
            db.session.query(UserSession.device_type, n)
            .filter(UserSession.created_at >= since)
            .group_by(UserSession.device_type)
            .all()
        )

        return {
            "hours": hours,
            "total_active_sessions": UserSession.query.filter(UserSession.is_active.is_(True)).count(),
            "sessions_created": created.count(),
            "unique_users": created.with_entities(func.count(func.distinct(UserSession.user_id))).scalar() or 0,
            "suspicious_sessions": created.filter(UserSession.is_suspicious.is_(True)).count(),
            "expired_sessions": created.filter(
                UserSession.termination_reason.in_([SESSION_EXPIRED_REASON, CLEANUP_REASON])
            ).count(),
            "unique_locations": len(locations),
            # Rarely seen places are worth a second look
            "unusual_locations": sorted(
                f"{country}, {city or UNKNOWN}" for country, city, count in locations if count <= 2
            ),
            "device_types": {(device or UNKNOWN): count for device, count in devices},
        }

    def get_session_management_data(self) -> dict:
        active = self.get_active_sessions(limit=20)
        return {
            "total_active_sessions": UserSession.query.filter(UserSession.is_active.is_(True)).count(),
            "max_concurrent_sessions": self.policy.max_concurrent_sessions,
            "session_timeout_minutes": int(self.policy.session_timeout.total_seconds() // 60),
            "active_sessions": active,
            "recent_sessions": self.get_recent_terminated_sessions(20),
            "security_summary": self.get_session_security_summary(),
        }
