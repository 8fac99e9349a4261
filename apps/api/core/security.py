"""
Security utilities for authentication.

Provides:
- Password hashing (bcrypt, salted)
- Opaque session token generation

Passwords are never stored or compared in plaintext.
"""
import secrets
from functools import lru_cache

import bcrypt

from core.config import settings

# bcrypt only looks at the first 72 bytes
MAX_PASSWORD_BYTES = 72

SESSION_TOKEN_BYTES = 32


def get_password_hash(password: str) -> str:
    """Hash a password."""
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash."""
    try:
        return bcrypt.checkpw(
            plain_password.encode('utf-8'),
            hashed_password.encode('utf-8')
        )
    except ValueError:
        # Malformed stored hash
        return False


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return get_password_hash(secrets.token_urlsafe(16))


def burn_password_check(plain_password: str) -> None:
    """Spend the same work as a real check when the user does not exist."""
    verify_password(plain_password, _dummy_hash())


def generate_session_token() -> str:
    """Create an opaque, unguessable session token."""
    return secrets.token_urlsafe(SESSION_TOKEN_BYTES)
