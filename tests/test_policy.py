"""Tests for SecurityPolicy defaults and config loading."""

from datetime import timedelta

import pytest

from security.policy import SecurityPolicy


class TestDefaults:
    def test_lockout_defaults(self):
        policy = SecurityPolicy()
        assert policy.max_failed_attempts == 5
        assert policy.lockout_duration == timedelta(minutes=30)
        assert policy.time_window == timedelta(minutes=15)

    def test_session_defaults(self):
        policy = SecurityPolicy()
        assert policy.max_concurrent_sessions == 5
        assert policy.session_timeout == timedelta(minutes=120)

    def test_windows_pair_duration_and_threshold(self):
        policy = SecurityPolicy()
        assert policy.lockout_window.duration == timedelta(minutes=15)
        assert policy.lockout_window.threshold == 5
        assert policy.multi_account_window.duration == timedelta(hours=1)
        assert policy.suspicious_ip_window.threshold == 10
        assert policy.rapid_attempt_window.duration == timedelta(seconds=60)


class TestFromConfig:
    def test_overrides(self):
        policy = SecurityPolicy.from_config({
            "MAX_FAILED_ATTEMPTS": 3,
            "LOCKOUT_DURATION_MINUTES": 10,
            "SUSPICIOUS_IP_WINDOW_HOURS": 6,
            "RAPID_SESSION_WINDOW_SECONDS": 30,
            "MAX_CONCURRENT_SESSIONS": 2,
        })
        assert policy.max_failed_attempts == 3
        assert policy.lockout_duration == timedelta(minutes=10)
        assert policy.suspicious_ip_window_size == timedelta(hours=6)
        assert policy.rapid_session_window_size == timedelta(seconds=30)
        assert policy.max_concurrent_sessions == 2

    def test_missing_keys_fall_back_to_defaults(self):
        assert SecurityPolicy.from_config({}) == SecurityPolicy()

    def test_invalid_session_cap(self):
        with pytest.raises(ValueError):
            SecurityPolicy(max_concurrent_sessions=0)


class TestUserAgent:
    @pytest.mark.parametrize("ua", [None, "", "curl/8"])
    def test_unusual(self, ua):
        assert SecurityPolicy().is_unusual_user_agent(ua)

    def test_normal(self):
        assert not SecurityPolicy().is_unusual_user_agent("Mozilla/5.0 (Windows NT 10.0)")
