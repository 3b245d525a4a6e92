import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _int_env(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as auth_security.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "auth_security.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Session cookie name for our auth token
    AUTH_COOKIE_NAME = "auth_session"

    # Session/cookie security defaults
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"

    # Number of reverse proxies in front of the app whose X-Forwarded-For entries
    # are trusted. 0 means the socket peer address is the client.
    TRUSTED_PROXY_COUNT = _int_env("TRUSTED_PROXY_COUNT", 0)

    # Account lockout
    MAX_FAILED_ATTEMPTS = _int_env("MAX_FAILED_ATTEMPTS", 5)
    LOCKOUT_DURATION_MINUTES = _int_env("LOCKOUT_DURATION_MINUTES", 30)
    TIME_WINDOW_MINUTES = _int_env("TIME_WINDOW_MINUTES", 15)

    # Risk factors on failed attempts
    SUSPICIOUS_THRESHOLD = _int_env("SUSPICIOUS_THRESHOLD", 10)   # attempts per IP
    SUSPICIOUS_IP_WINDOW_HOURS = _int_env("SUSPICIOUS_IP_WINDOW_HOURS", 24)
    RAPID_ATTEMPT_WINDOW_SECONDS = _int_env("RAPID_ATTEMPT_WINDOW_SECONDS", 60)
    RAPID_ATTEMPT_THRESHOLD = _int_env("RAPID_ATTEMPT_THRESHOLD", 3)
    MULTI_ACCOUNT_WINDOW_MINUTES = _int_env("MULTI_ACCOUNT_WINDOW_MINUTES", 60)
    MULTI_ACCOUNT_THRESHOLD = _int_env("MULTI_ACCOUNT_THRESHOLD", 5)
    MIN_USER_AGENT_LENGTH = _int_env("MIN_USER_AGENT_LENGTH", 10)

    # Sessions
    MAX_CONCURRENT_SESSIONS = _int_env("MAX_CONCURRENT_SESSIONS", 5)
    SESSION_TIMEOUT_MINUTES = _int_env("SESSION_TIMEOUT_MINUTES", 120)
    RAPID_SESSION_WINDOW_SECONDS = _int_env("RAPID_SESSION_WINDOW_SECONDS", 60)
    RAPID_SESSION_THRESHOLD = _int_env("RAPID_SESSION_THRESHOLD", 3)

    # Geolocation lookups (ip-api.com compatible JSON endpoint)
    GEOLOCATION_ENABLED = os.getenv("GEOLOCATION_ENABLED", "true").lower() == "true"
    GEOLOCATION_URL = os.getenv("GEOLOCATION_URL", "http://ip-api.com/json/{ip}")
    GEOLOCATION_TIMEOUT_SECONDS = float(os.getenv("GEOLOCATION_TIMEOUT_SECONDS", "2.0"))
    GEOLOCATION_HISTORY_DAYS = _int_env("GEOLOCATION_HISTORY_DAYS", 30)
    GEOLOCATION_FAILURE_TTL_SECONDS = _int_env("GEOLOCATION_FAILURE_TTL_SECONDS", 60)
    HIGH_RISK_COUNTRIES = [
        c.strip().upper()
        for c in os.getenv(
            "HIGH_RISK_COUNTRIES",
            "CN,RU,KP,IR,SY,AF,IQ,LY,SO,SD,YE,MM",
        ).split(",")
        if c.strip()
    ]

    # Password hashing cost
    BCRYPT_ROUNDS = _int_env("BCRYPT_ROUNDS", 12)

    # Admin signup (set in environment for production)
    ADMIN_SIGNUP_CODE = os.getenv("ADMIN_SIGNUP_CODE")

    # Basic app settings
    DEBUG = False


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    GEOLOCATION_ENABLED = False
    BCRYPT_ROUNDS = 4
