"""User administration: create, edit, ban and unban accounts."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID

from receipt_tracker.auth.password import hash_password, password_needs_rehash, verify_password
from receipt_tracker.models.audit import AuditEventType
from receipt_tracker.models.user import User, UserCreate, UserUpdate
from receipt_tracker.repositories.user_repository import UserRepository
from receipt_tracker.services.audit_logger import AuditLogger
from receipt_tracker.utils.helpers.exceptions import UserConflictError, UserNotFoundError

logger = logging.getLogger(__name__)


class UserService:
    def __init__(
        self,
        repository: Optional[UserRepository] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.repository = repository or UserRepository()
        self.audit_logger = audit_logger or AuditLogger()

    def authenticate(self, email: str, password: str) -> Optional[User]:
        """Return the user for valid credentials, None otherwise.

        Banned users are returned; the caller decides how to refuse them.
        """
        user = self.repository.get_user_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            return None
        if password_needs_rehash(user.password_hash):
            user.password_hash = hash_password(password)
            self.repository.set_password_hash(user.user_id, user.password_hash)
            logger.info("Upgraded password hash for user %s", user.user_id)
        return user

    def list_users(self) -> List[User]:
        return self.repository.list_users()

    def create_user(self, actor: User, request: UserCreate) -> User:
        if self.repository.get_user_by_email(request.email) is not None:
            raise UserConflictError(f"Email already registered: {request.email}")
        user = User(
            name=request.name,
            email=request.email,
            password_hash=hash_password(request.password),
            role=request.role,
        )
        try:
            self.repository.create_user(user)
        except sqlite3.IntegrityError as exc:
            raise UserConflictError(f"Email already registered: {request.email}") from exc

        self.audit_logger.log(
            event_type=AuditEventType.USER_CREATED,
            actor=str(actor.user_id),
            data={"user_id": user.user_id, "email": user.email, "role": user.role},
        )
        return user

    def update_user(self, actor: User, user_id: UUID, changes: UserUpdate) -> User:
        self._get(user_id)
        if changes.email is not None:
            existing = self.repository.get_user_by_email(changes.email)
            if existing is not None and existing.user_id != user_id:
                raise UserConflictError(f"Email already registered: {changes.email}")

        updated = self.repository.update_user(user_id, changes)
        self.audit_logger.log(
            event_type=AuditEventType.USER_UPDATED,
            actor=str(actor.user_id),
            data={"user_id": user_id, "changes": changes.model_dump(exclude_none=True)},
        )
        return updated

    def ban_user(self, actor: User, user_id: UUID, hours: Optional[int] = None) -> User:
        """Ban indefinitely (hours=None) or until now + hours."""
        self._get(user_id)
        if hours is None:
            updated = self.repository.set_ban(user_id, is_active=False, banned_until=None)
        else:
            until = datetime.utcnow() + timedelta(hours=hours)
            updated = self.repository.set_ban(user_id, is_active=True, banned_until=until)
        logger.info("User %s banned by %s (hours=%s)", user_id, actor.user_id, hours)
        self.audit_logger.log(
            event_type=AuditEventType.USER_BANNED,
            actor=str(actor.user_id),
            data={"user_id": user_id, "hours": hours, "banned_until": updated.banned_until},
        )
        return updated

    def unban_user(self, actor: User, user_id: UUID) -> User:
        self._get(user_id)
        updated = self.repository.set_ban(user_id, is_active=True, banned_until=None)
        self.audit_logger.log(
            event_type=AuditEventType.USER_UNBANNED,
            actor=str(actor.user_id),
            data={"user_id": user_id},
        )
        return updated

    def _get(self, user_id: UUID) -> User:
        user = self.repository.get_user_by_id(user_id)
        if user is None:
            raise UserNotFoundError(f"User not found: {user_id}")
        return user
