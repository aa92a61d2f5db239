from werkzeug.security import check_password_hash, generate_password_hash

from leaddesk.core.config import get_settings

HASH_METHOD = "pbkdf2:sha256"


def hash_password(password: str, iterations: int | None = None) -> str:
    rounds = iterations or get_settings().password_hash_iterations
    return generate_password_hash(password, method=f"{HASH_METHOD}:{rounds}", salt_length=16)


def verify_password(password: str, encoded: str) -> bool:
    if not encoded or not encoded.startswith(HASH_METHOD):
        return False
    return check_password_hash(encoded, password)
