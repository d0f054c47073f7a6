"""Authentication API Routes

Endpoints:
- POST /api/auth/login  - Exchange email/password for a bearer token
- GET  /api/auth/me     - Profile of the token's user
"""

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from receipt_tracker.api.dependencies import get_user_service
from receipt_tracker.auth.dependencies import get_current_user
from receipt_tracker.auth.jwt import create_access_token
from receipt_tracker.models.user import User, UserResponse
from receipt_tracker.services.user_service import UserService

router = APIRouter(prefix="/api/auth", tags=["auth"])


class Credentials(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


@router.post("/login", response_model=TokenResponse)
def login(
    credentials: Credentials,
    service: UserService = Depends(get_user_service),
) -> TokenResponse:
    """401 for unknown email or wrong password, 403 for a banned account.

    Example:
        POST /api/auth/login
        {"email": "erin@example.com", "password": "password123"}
    """
    user = service.authenticate(credentials.email, credentials.password)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    if user.is_banned():
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is suspended")

    return TokenResponse(access_token=create_access_token(user), user=UserResponse.from_user(user))


@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.from_user(current_user)
