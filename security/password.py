import bcrypt
from flask import current_app, has_app_context

DEFAULT_ROUNDS = 12

# Burned on unknown identities so they take as long as a wrong password
_DUMMY_HASH = None


def _rounds() -> int:
    if not has_app_context():
        return DEFAULT_ROUNDS
    return current_app.config.get("BCRYPT_ROUNDS", DEFAULT_ROUNDS)


def hash_password(plain_password: str) -> str:
    if not isinstance(plain_password, str) or len(plain_password) == 0:
        raise ValueError("Password must be a non-empty string")

    salt = bcrypt.gensalt(rounds=_rounds())
    return bcrypt.hashpw(plain_password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    if not plain_password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False


def check_credentials(user, plain_password: str) -> bool:
    """Password check that costs the same whether or not the user exists."""
    global _DUMMY_HASH
    if user is None:
        if _DUMMY_HASH is None:
            _DUMMY_HASH = hash_password("not-a-real-password")
        verify_password(plain_password or "x", _DUMMY_HASH)
        return False
    return verify_password(plain_password, user.password_hash)
