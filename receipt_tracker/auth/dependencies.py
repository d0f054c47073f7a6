"""Request authentication for the receipt API.

``get_current_user`` resolves the bearer token to a stored user on every
request, so a ban or role change takes effect without waiting for the token
to expire. Services receive that user as their explicit ``actor``.
"""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from receipt_tracker.api.dependencies import get_user_repository
from receipt_tracker.auth.jwt import verify_access_token
from receipt_tracker.models.user import User
from receipt_tracker.repositories.user_repository import UserRepository

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    repo: UserRepository = Depends(get_user_repository),
) -> User:
    """Raises 401 for a missing/invalid token or unknown user, 403 when banned."""
    if credentials is None:
        raise _unauthorized("Not authenticated")

    token_data = verify_access_token(credentials.credentials)
    if token_data is None:
        raise _unauthorized("Invalid or expired token")

    user = repo.get_user_by_id(token_data.user_id)
    if user is None:
        raise _unauthorized("User not found")
    if user.is_banned():
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is suspended")

    request.state.user = user
    return user


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return current_user
