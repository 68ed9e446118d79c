"""
Authentication utilities: Password hashing and JWT token management
"""

import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional
from passlib.context import CryptContext
from config.settings import settings

# Password hashing context
pwd_context = CryptContext(
    schemes=["argon2"],
    deprecated="auto"
)

# JWT configuration
ALGORITHM = "HS256"
TOKEN_TTL = timedelta(days=7)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def _signing_key() -> str:
    if not settings.jwt_secret_key:
        raise ValueError("JWT_SECRET_KEY is not set. Cannot sign or verify tokens.")
    return settings.jwt_secret_key


def create_jwt(user_id: str, expires_in: timedelta = TOKEN_TTL) -> str:
    """
    Issue a session token for a user.

    Args:
        user_id: Subject of the token
        expires_in: Lifetime; a negative value yields an already-expired token

    Raises:
        ValueError: If JWT_SECRET_KEY is not set
    """
    issued_at = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "iat": issued_at,
        "exp": issued_at + expires_in,
    }
    return jwt.encode(payload, _signing_key(), algorithm=ALGORITHM)


def decode_jwt(token: str) -> Optional[dict]:
    """Claims of a valid token, or None if it is expired or tampered with."""
    key = _signing_key()
    try:
        return jwt.decode(token, key, algorithms=[ALGORITHM])
    except jwt.InvalidTokenError:
        return None
