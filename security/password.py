import bcrypt
from flask import current_app

MIN_PASSWORD_LENGTH = 8


def hash_password(plain_password: str, rounds: int = None) -> str:
    if not isinstance(plain_password, str) or not plain_password:
        raise ValueError("Password must be a non-empty string")
    if rounds is None:
        rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    return bcrypt.hashpw(plain_password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    if not plain_password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False


def password_problem(password, email=None, dni=None):
    """Reason the password is not acceptable for this account, or None."""
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must have at least {MIN_PASSWORD_LENGTH} characters"

    lowered = password.lower()
    if dni and dni.lower() in lowered:
        return "Password must not contain your DNI"

    local_part = (email or "").split("@", 1)[0].lower()
    if len(local_part) >= 4 and local_part in lowered:
        return "Password must not contain your email address"
    return None
