"""Password and reset-token hashing utilities.

Learn: Uses bcrypt for password hashing. bcrypt salts automatically and
the work factor (rounds=12) makes brute force expensive. Passwords are
truncated to 72 bytes (bcrypt's limit).

Reset tokens are different: they are long random values, so a fast
sha256 digest is enough. Only the digest is stored; the raw token
travels by email and is hashed again when presented.
"""

import hashlib
import secrets

import bcrypt

BCRYPT_ROUNDS = 12
RESET_TOKEN_BYTES = 32


def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """Hash a password with bcrypt."""
    pw_bytes = password.encode("utf-8")[:72]
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(pw_bytes, salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its bcrypt hash."""
    try:
        pw_bytes = password.encode("utf-8")[:72]
        return bcrypt.checkpw(pw_bytes, password_hash.encode("utf-8"))
    except (ValueError, TypeError):
        return False


def generate_reset_token() -> str:
    """Random hex token to email to the user."""
    return secrets.token_hex(RESET_TOKEN_BYTES)


def hash_reset_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()
