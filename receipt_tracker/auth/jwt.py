"""JWT access tokens.

HS256 tokens signed with JWT_SECRET. Claims: sub (user_id), email, role,
name, iat, exp. The role claim is informational only; every request
re-reads the user so bans and role changes apply immediately.
"""

import os
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from jose import JWTError, jwt
from pydantic import BaseModel, EmailStr, ValidationError

from receipt_tracker.models.user import User, UserRole

ALGORITHM = "HS256"
DEFAULT_SECRET = "dev-secret-key-change-in-production"


def _secret_key() -> str:
    return os.getenv("JWT_SECRET", DEFAULT_SECRET)


def _token_lifetime() -> timedelta:
    return timedelta(hours=int(os.getenv("ACCESS_TOKEN_EXPIRE_HOURS", "24")))


class TokenData(BaseModel):
    """Claims read back from a verified token."""
    user_id: UUID
    email: EmailStr
    role: UserRole
    name: Optional[str] = None


def create_access_token(user: User, expires_delta: Optional[timedelta] = None) -> str:
    """Sign an access token for user.

    Args:
        user: Authenticated user
        expires_delta: Token lifetime. If None, uses ACCESS_TOKEN_EXPIRE_HOURS (24)
    """
    issued_at = datetime.utcnow()
    claims = {
        "sub": str(user.user_id),
        "email": user.email,
        "role": user.role.value,
        "name": user.name,
        "iat": issued_at,
        "exp": issued_at + (expires_delta if expires_delta is not None else _token_lifetime()),
    }
    return jwt.encode(claims, _secret_key(), algorithm=ALGORITHM)


def verify_access_token(token: str) -> Optional[TokenData]:
    """Return the token's claims, or None if it is invalid, expired or incomplete."""
    try:
        payload = jwt.decode(token, _secret_key(), algorithms=[ALGORITHM])
    except JWTError:
        return None

    try:
        return TokenData(
            user_id=payload.get("sub"),
            email=payload.get("email"),
            role=payload.get("role"),
            name=payload.get("name"),
        )
    except ValidationError:
        return None
