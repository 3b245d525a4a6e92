"""
Failed-login tracking and account lockout.

Every failed credential check is appended to `failed_login_attempts` with its
risk assessment. Lockout is never stored: it is recomputed from that log on
each call, so it cannot drift from the evidence.
"""
import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.account_unlock import AccountUnlock
from models.blocked_ip import BlockedIp
from models.failed_login_attempt import FailedLoginAttempt
from security.geolocation import GeolocationProvider
from security.policy import SecurityPolicy
from security.validation import canonical_ip, validate_identity, validate_ip
from utils.audit import log_event
from utils.blocklist import normalize_identity
from utils.clock import utcnow

RAPID_ATTEMPTS = "Rapid successive attempts"
MULTIPLE_ACCOUNTS = "Multiple accounts targeted from same IP"
SUSPICIOUS_GEOLOCATION = "Suspicious geolocation"
VPN_OR_PROXY = "VPN or Proxy detected"
UNUSUAL_USER_AGENT = "Unusual or missing user agent"

# Any one of these is enough to flag an attempt
HIGH_RISK_FACTORS = frozenset({MULTIPLE_ACCOUNTS, VPN_OR_PROXY})

LOCKOUT_REASON = "Exceeded maximum failed login attempts"


@dataclass(frozen=True)
class AccountLockoutStatus:
    identity: str
    is_locked: bool
    failed_attempts: int
    max_attempts: int
    lockout_duration: timedelta
    lockout_until: Optional[datetime] = None
    last_attempt: Optional[datetime] = None

    def seconds_remaining(self, now: datetime) -> int:
        if not self.is_locked or self.lockout_until is None:
            return 0
        return max(int((self.lockout_until - now).total_seconds()), 1)

    def to_dict(self) -> dict:
        return {
            "identity": self.identity,
            "is_locked": self.is_locked,
            "failed_attempts": self.failed_attempts,
            "max_attempts": self.max_attempts,
            "lockout_duration_minutes": int(self.lockout_duration.total_seconds() // 60),
            "lockout_until": self.lockout_until.isoformat() if self.lockout_until else None,
            "last_attempt": self.last_attempt.isoformat() if self.last_attempt else None,
        }


def is_suspicious_attempt(risk_factors, ip_attempt_count: int, suspicious_threshold: int) -> bool:
    """Two or more factors, one high-risk factor, or a noisy source IP."""
    factors = set(risk_factors)
    if len(factors) >= 2:
        return True
    if factors & HIGH_RISK_FACTORS:
        return True
    return ip_attempt_count >= suspicious_threshold


class FailedLoginTracker:
    def __init__(self, policy: SecurityPolicy, geolocation: GeolocationProvider, clock=utcnow):
        self.policy = policy
        self.geolocation = geolocation
        self.clock = clock

    # --- queries -----------------------------------------------------------

    def _last_unlock(self, identity: str) -> Optional[datetime]:
        return (
            db.session.query(func.max(AccountUnlock.unlocked_at))
            .filter(AccountUnlock.identity == identity)
            .scalar()
        )

    def _identity_attempts(self, identity: str):
        """Attempts for an identity that still count toward a lockout."""
        q = FailedLoginAttempt.query.filter(FailedLoginAttempt.identity == identity)
        unlocked_at = self._last_unlock(identity)
        if unlocked_at is not None:
            q = q.filter(FailedLoginAttempt.attempt_time > unlocked_at)
        return q

    def _ip_attempts(self, ip: str):
        return FailedLoginAttempt.query.filter(FailedLoginAttempt.ip == ip)

    # --- risk assessment ---------------------------------------------------

    def assess_risk_factors(self, identity: str, ip: str, user_agent: Optional[str], now: datetime) -> list[str]:
        """Risk labels for an attempt about to be recorded (the attempt itself is counted)."""
        factors = []
        ts = FailedLoginAttempt.attempt_time

        rapid = self.policy.rapid_attempt_window.evaluate(
            self._identity_attempts(identity), ts, now, pending=1
        )
        if rapid.exceeded:
            factors.append(RAPID_ATTEMPTS)

        # Distinct identities from this ip, other than the current one, plus the current one
        others = self._ip_attempts(ip).filter(FailedLoginAttempt.identity != identity)
        accounts = self.policy.multi_account_window.evaluate(
            others, ts, now, distinct=FailedLoginAttempt.identity, pending=1
        )
        if accounts.exceeded:
            factors.append(MULTIPLE_ACCOUNTS)

        if self.geolocation.is_location_suspicious(ip):
            factors.append(SUSPICIOUS_GEOLOCATION)

        if self.geolocation.is_vpn_or_proxy(ip):
            factors.append(VPN_OR_PROXY)

        if self.policy.is_unusual_user_agent(user_agent):
            factors.append(UNUSUAL_USER_AGENT)

        return factors

    # --- operations --------------------------------------------------------

    def log_attempt(self, identity: str, ip: str, user_agent: Optional[str] = None,
                    failure_reason: Optional[str] = None) -> FailedLoginAttempt:
        """
        Records one failed credential check.

        Geolocation, risk scoring, the insert and the lockout check run as one
        unit: the row is written with its assessment already attached, and the
        lockout signal is committed in the same transaction.
        """
        identity = validate_identity(identity)
        ip = validate_ip(ip)
        now = self.clock()

        location = self.geolocation.get_location(ip)
        risk_factors = self.assess_risk_factors(identity, ip, user_agent, now)
        ip_window = self.policy.suspicious_ip_window.evaluate(
            self._ip_attempts(ip), FailedLoginAttempt.attempt_time, now, pending=1
        )
        suspicious = is_suspicious_attempt(risk_factors, ip_window.count, self.policy.suspicious_threshold)

        attempt = FailedLoginAttempt(
            identity=identity,
            ip=ip,
            user_agent=user_agent[:255] if user_agent else None,
            attempt_time=now,
            failure_reason=failure_reason[:255] if failure_reason else None,
            country=location.country if location else None,
            city=location.city if location else None,
            country_code=location.country_code if location else None,
            latitude=location.latitude if location else None,
            longitude=location.longitude if location else None,
            is_suspicious=suspicious,
            risk_factors_json=json.dumps(risk_factors),
        )

        try:
            db.session.add(attempt)
            db.session.flush()
            locked = self.should_lock_account(identity)
            if locked:
                self._signal_lockout(identity, ip, now)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise

        current_app.logger.warning(
            "Failed login attempt for %s from %s. Suspicious: %s. Risk factors: %s",
            identity, ip, suspicious, ", ".join(risk_factors) or "none",
        )
        return attempt

    def _signal_lockout(self, identity: str, ip: str, now: datetime) -> None:
        until = now + self.policy.lockout_duration
        log_event(
            "ACCOUNT_LOCKED",
            entity="identity",
            entity_id=identity,
            metadata={"reason": LOCKOUT_REASON, "ip": ip, "lockout_until": until.isoformat()},
            commit=False,
        )
        current_app.logger.warning("Account %s locked until %s. Reason: %s", identity, until, LOCKOUT_REASON)

    def get_account_lockout_status(self, identity: str) -> AccountLockoutStatus:
        """
        Locked while some attempt inside the last LOCKOUT_DURATION closed a
        TIME_WINDOW holding MAX_FAILED_ATTEMPTS attempts. The lockout runs until
        that attempt + LOCKOUT_DURATION.
        """
        identity = normalize_identity(identity)
        now = self.clock()
        policy = self.policy
        window = policy.lockout_window
        ts = FailedLoginAttempt.attempt_time

        q = self._identity_attempts(identity)
        horizon = now - (policy.lockout_duration + policy.time_window)
        times = [
            t for (t,) in q.with_entities(ts).filter(ts > horizon, ts <= now).all()
        ]
        last_attempt = max(times) if times else None

        breach = window.latest_breach(times)
        if breach is not None and breach.anchor + policy.lockout_duration > now:
            return AccountLockoutStatus(
                identity=identity,
                is_locked=True,
                failed_attempts=breach.count,
                max_attempts=policy.max_failed_attempts,
                lockout_duration=policy.lockout_duration,
                lockout_until=breach.anchor + policy.lockout_duration,
                last_attempt=last_attempt,
            )

        return AccountLockoutStatus(
            identity=identity,
            is_locked=False,
            failed_attempts=window.count(q, ts, now),
            max_attempts=policy.max_failed_attempts,
            lockout_duration=policy.lockout_duration,
            last_attempt=last_attempt,
        )

    def is_account_locked(self, identity: str) -> bool:
        return self.get_account_lockout_status(identity).is_locked

    def should_lock_account(self, identity: str) -> bool:
        identity = normalize_identity(identity)
        return self.policy.lockout_window.evaluate(
            self._identity_attempts(identity), FailedLoginAttempt.attempt_time, self.clock()
        ).exceeded

    def unlock_account(self, identity: str, unlocked_by: Optional[str] = None,
                       reason: Optional[str] = None) -> AccountUnlock:
        """
        Lifts a lockout by writing an unlock marker. The attempt rows stay in
        place for later investigation; they just stop counting.
        """
        identity = validate_identity(identity)
        marker = AccountUnlock(
            identity=identity,
            unlocked_by=unlocked_by,
            reason=reason,
            unlocked_at=self.clock(),
        )
        db.session.add(marker)
        log_event(
            "ACCOUNT_UNLOCKED",
            entity="identity",
            entity_id=identity,
            metadata={"unlocked_by": unlocked_by, "reason": reason},
            commit=False,
        )
        db.session.commit()
        current_app.logger.info("Account %s unlocked by %s", identity, unlocked_by)
        return marker

    def is_ip_suspicious(self, ip: str) -> bool:
        ip = canonical_ip(ip)
        return self.policy.suspicious_ip_window.evaluate(
            self._ip_attempts(ip), FailedLoginAttempt.attempt_time, self.clock()
        ).exceeded

    def get_suspicious_ips(self, limit: int = 10) -> list[str]:
        window = self.policy.suspicious_ip_window
        attempts = func.count(FailedLoginAttempt.id)
        rows = (
            window.within(
                db.session.query(FailedLoginAttempt.ip, attempts),
                FailedLoginAttempt.attempt_time,
                self.clock(),
            )
            .group_by(FailedLoginAttempt.ip)
            .having(attempts >= window.threshold)
            .order_by(attempts.desc(), FailedLoginAttempt.ip)
            .limit(limit)
            .all()
        )
        return [ip for ip, _ in rows]

    def _top(self, column, start: datetime, end: datetime, limit: int):
        n = func.count(FailedLoginAttempt.id)
        return (
            db.session.query(column, n)
            .filter(FailedLoginAttempt.attempt_time >= start, FailedLoginAttempt.attempt_time <= end)
            .group_by(column)
            .order_by(n.desc(), column)
            .limit(limit)
            .all()
        )

    def get_failed_login_summary(self, from_: Optional[datetime] = None, to: Optional[datetime] = None) -> dict:
        to = to or self.clock()
        from_ = from_ or to - timedelta(hours=24)

        base = FailedLoginAttempt.query.filter(
            FailedLoginAttempt.attempt_time >= from_,
            FailedLoginAttempt.attempt_time <= to,
        )
        unique_ips = base.with_entities(func.count(func.distinct(FailedLoginAttempt.ip))).scalar() or 0
        recent = (
            base.order_by(FailedLoginAttempt.attempt_time.desc(), FailedLoginAttempt.id.desc())
            .limit(10)
            .all()
        )

        return {
            "from": from_,
            "to": to,
            "total_attempts": base.count(),
            "unique_ips": unique_ips,
            "suspicious_attempts": base.filter(FailedLoginAttempt.is_suspicious.is_(True)).count(),
            "top_targeted_accounts": [
                (identity, n) for identity, n in self._top(FailedLoginAttempt.identity, from_, to, 5)
            ],
            "top_attacking_ips": [(ip, n) for ip, n in self._top(FailedLoginAttempt.ip, from_, to, 5)],
            "recent_attempts": recent,
        }

    def get_failed_login_attempts(self, page: int = 1, page_size: int = 50) -> list[FailedLoginAttempt]:
        page = max(page, 1)
        page_size = min(max(page_size, 1), 200)
        return (
            FailedLoginAttempt.query
            .order_by(FailedLoginAttempt.attempt_time.desc(), FailedLoginAttempt.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )

    # --- ip blocklist ------------------------------------------------------

    def is_ip_blocked(self, ip: str) -> bool:
        ip = canonical_ip(ip)
        if not ip:
            return False
        return BlockedIp.query.filter_by(ip=ip).first() is not None

    def block_ip(self, ip: str, reason: Optional[str] = None, blocked_by: Optional[str] = None) -> BlockedIp:
        ip = validate_ip(ip)
        row = BlockedIp.query.filter_by(ip=ip).first()
        if row:
            return row

        row = BlockedIp(ip=ip, reason=reason, blocked_by=blocked_by, created_at=self.clock())
        db.session.add(row)
        log_event(
            "IP_BLOCKED",
            entity="ip",
            entity_id=ip,
            metadata={"reason": reason, "blocked_by": blocked_by},
            commit=False,
        )
        db.session.commit()
        current_app.logger.warning("IP %s blocked by %s. Reason: %s", ip, blocked_by, reason)
        return row

    def unblock_ip(self, ip: str, unblocked_by: Optional[str] = None) -> bool:
        ip = canonical_ip(ip)
        row = BlockedIp.query.filter_by(ip=ip).first()
        if not row:
            return False

        db.session.delete(row)
        log_event(
            "IP_UNBLOCKED",
            entity="ip",
            entity_id=ip,
            metadata={"unblocked_by": unblocked_by},
            commit=False,
        )
        db.session.commit()
        current_app.logger.info("IP %s unblocked by %s", ip, unblocked_by)
        return True
