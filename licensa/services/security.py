import hmac
import uuid


def generate_license_key() -> str:
    # uuid4 draws from os.urandom, 122 random bits per key
    return str(uuid.uuid4())


def verify_admin_password(provided: str, expected: str) -> bool:
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def mask_key(key: str) -> str:
    if len(key) < 12:
        return "***"
    return f"{key[:8]}..."
