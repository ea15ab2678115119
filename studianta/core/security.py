"""
Studianta - Security Module
Bearer tokens carry the authenticated user id as `sub`. Tokens are issued by
the auth provider; `create_access_token` exists for tooling and tests.
"""
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from studianta.core.config import settings

ACCESS_TOKEN_TYPE = "access"


def create_access_token(
    user_id: uuid.UUID | str,
    expires_delta: timedelta | None = None,
) -> str:
    """Sign an access token for `user_id`."""
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))

    claims = {
        "sub": str(user_id),
        "exp": expire,
        "iat": now,
        "type": ACCESS_TOKEN_TYPE,
    }
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> dict[str, Any] | None:
    """Decoded payload, or None for a bad signature or an expired token."""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None


def user_id_from_token(token: str) -> uuid.UUID | None:
    """
    Resolve the user id of a valid access token.

    Returns:
        The subject as a UUID, or None when the token is invalid, is not an
        access token, or its subject is not a UUID
    """
    payload = decode_token(token)
    if payload is None or payload.get("type") != ACCESS_TOKEN_TYPE:
        return None

    try:
        return uuid.UUID(str(payload.get("sub")))
    except ValueError:
        return None
