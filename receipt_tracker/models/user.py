"""User model for authentication and the admin user panel.

Design Decisions:
- UUID for user_id
- Email as unique login identifier
- Two roles: EMPLOYEE submits receipts, ADMIN reviews them and manages users
- Password stored as bcrypt hash
- Bans are either indefinite (is_active=False) or time-boxed (banned_until)
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class UserRole(str, Enum):
    """User role types for access control.

    EMPLOYEE: Can upload, submit and edit own pending receipts
    ADMIN: Can review all receipts, change status, reimburse, manage users
    """
    EMPLOYEE = "EMPLOYEE"
    ADMIN = "ADMIN"


class User(BaseModel):
    """User domain model for authentication and identity.

    Attributes:
        user_id: Unique identifier (UUID)
        name: Display name
        email: Unique email address (used for login and the email channel)
        password_hash: Bcrypt hashed password
        role: User role (EMPLOYEE, ADMIN)
        is_active: False when the account is banned indefinitely
        banned_until: End of a time-boxed ban (None when not banned)
        created_at: Account creation timestamp
    """

    user_id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password_hash: str = Field(..., description="Bcrypt hash of password")
    role: UserRole = Field(default=UserRole.EMPLOYEE)
    is_active: bool = Field(default=True)
    banned_until: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def is_banned(self, now: Optional[datetime] = None) -> bool:
        """True if the account may not sign in right now."""
        if not self.is_active:
            return True
        if self.banned_until is None:
            return False
        return (now or datetime.utcnow()) < self.banned_until


class UserCreate(BaseModel):
    """Request model for creating a new user."""
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8, description="Plain password (will be hashed)")
    role: UserRole = Field(default=UserRole.EMPLOYEE)

    @field_validator("email")
    @classmethod
    def _lowercase_email(cls, value: str) -> str:
        return value.lower()


class UserUpdate(BaseModel):
    """Admin edit of a user profile. Omitted fields are left unchanged."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    role: Optional[UserRole] = None


class UserResponse(BaseModel):
    """Public user info for the admin panel and login response (no password hash)."""

    model_config = ConfigDict(from_attributes=True)

    user_id: UUID
    name: str
    email: str
    role: UserRole
    is_active: bool
    banned_until: Optional[datetime] = None
    banned: bool = False
    created_at: datetime

    @classmethod
    def from_user(cls, user: User) -> UserResponse:
        response = cls.model_validate(user)
        response.banned = user.is_banned()
        return response
