"""
Security helpers - session JWTs and random tokens.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from jose import JWTError, jwt


def generate_token(length: int = 32) -> str:
    """Random URL-safe token."""
    return secrets.token_urlsafe(length)


def encode_session_jwt(
    claims: Dict[str, Any],
    secret: str,
    algorithm: str = "HS256",
    max_age: int = 30 * 24 * 60 * 60,
) -> Tuple[str, datetime]:
    """
    Sign a session token.

    Returns the encoded token and its absolute expiry (now + max_age).
    """
    now = datetime.now(timezone.utc)
    expires = now + timedelta(seconds=max_age)

    to_encode = {
        **claims,
        "iat": now,
        "exp": expires,
    }

    encoded_jwt = jwt.encode(to_encode, secret, algorithm=algorithm)
    return str(encoded_jwt), expires


def decode_session_jwt(token: str, secret: str, algorithm: str = "HS256") -> Optional[Dict[str, Any]]:
    """Decode a session token; None if invalid or expired."""
    if not token:
        return None
    try:
        return jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError:
        return None
