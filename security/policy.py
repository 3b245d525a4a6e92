from dataclasses import dataclass
from datetime import timedelta

from security.sliding_window import SlidingWindow


@dataclass(frozen=True)
class SecurityPolicy:
    """Thresholds and windows for lockout, risk scoring and sessions."""

    max_failed_attempts: int = 5
    lockout_duration: timedelta = timedelta(minutes=30)
    time_window: timedelta = timedelta(minutes=15)

    suspicious_threshold: int = 10
    suspicious_ip_window_size: timedelta = timedelta(hours=24)
    rapid_attempt_window_size: timedelta = timedelta(seconds=60)
    rapid_attempt_threshold: int = 3
    multi_account_window_size: timedelta = timedelta(hours=1)
    multi_account_threshold: int = 5
    min_user_agent_length: int = 10

    max_concurrent_sessions: int = 5
    session_timeout: timedelta = timedelta(minutes=120)
    rapid_session_window_size: timedelta = timedelta(seconds=60)
    rapid_session_threshold: int = 3

    def __post_init__(self):
        if self.max_concurrent_sessions < 1:
            raise ValueError("max_concurrent_sessions must be at least 1")
        if self.lockout_duration <= timedelta(0) or self.session_timeout <= timedelta(0):
            raise ValueError("lockout_duration and session_timeout must be positive")

    @classmethod
    def from_config(cls, config) -> "SecurityPolicy":
        defaults = cls()

        def minutes(key, default):
            return timedelta(minutes=config.get(key, default.total_seconds() / 60))

        def seconds(key, default):
            return timedelta(seconds=config.get(key, default.total_seconds()))

        return cls(
            max_failed_attempts=config.get("MAX_FAILED_ATTEMPTS", defaults.max_failed_attempts),
            lockout_duration=minutes("LOCKOUT_DURATION_MINUTES", defaults.lockout_duration),
            time_window=minutes("TIME_WINDOW_MINUTES", defaults.time_window),
            suspicious_threshold=config.get("SUSPICIOUS_THRESHOLD", defaults.suspicious_threshold),
            suspicious_ip_window_size=timedelta(
                hours=config.get("SUSPICIOUS_IP_WINDOW_HOURS", defaults.suspicious_ip_window_size.total_seconds() / 3600)
            ),
            rapid_attempt_window_size=seconds("RAPID_ATTEMPT_WINDOW_SECONDS", defaults.rapid_attempt_window_size),
            rapid_attempt_threshold=config.get("RAPID_ATTEMPT_THRESHOLD", defaults.rapid_attempt_threshold),
            multi_account_window_size=minutes("MULTI_ACCOUNT_WINDOW_MINUTES", defaults.multi_account_window_size),
            multi_account_threshold=config.get("MULTI_ACCOUNT_THRESHOLD", defaults.multi_account_threshold),
            min_user_agent_length=config.get("MIN_USER_AGENT_LENGTH", defaults.min_user_agent_length),
            max_concurrent_sessions=config.get("MAX_CONCURRENT_SESSIONS", defaults.max_concurrent_sessions),
            session_timeout=minutes("SESSION_TIMEOUT_MINUTES", defaults.session_timeout),
            rapid_session_window_size=seconds("RAPID_SESSION_WINDOW_SECONDS", defaults.rapid_session_window_size),
            rapid_session_threshold=config.get("RAPID_SESSION_THRESHOLD", defaults.rapid_session_threshold),
        )

    # Each use site gets its own window/threshold pair

    @property
    def lockout_window(self) -> SlidingWindow:
        return SlidingWindow(self.time_window, self.max_failed_attempts)

    @property
    def rapid_attempt_window(self) -> SlidingWindow:
        return SlidingWindow(self.rapid_attempt_window_size, self.rapid_attempt_threshold)

    @property
    def multi_account_window(self) -> SlidingWindow:
        return SlidingWindow(self.multi_account_window_size, self.multi_account_threshold)

    @property
    def suspicious_ip_window(self) -> SlidingWindow:
        return SlidingWindow(self.suspicious_ip_window_size, self.suspicious_threshold)

    @property
    def rapid_session_window(self) -> SlidingWindow:
        return SlidingWindow(self.rapid_session_window_size, self.rapid_session_threshold)

    def is_unusual_user_agent(self, user_agent) -> bool:
        return not user_agent or len(user_agent) < self.min_user_agent_length
