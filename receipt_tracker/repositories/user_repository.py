"""SQLite persistence for users.

Emails are stored lower-cased under a UNIQUE constraint, so login and the
email channel match senders case-insensitively.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from receipt_tracker.models.user import User, UserRole, UserUpdate
from receipt_tracker.repositories.receipt_repository import default_db_path

_USER_COLUMNS = "user_id, name, email, password_hash, role, is_active, banned_until, created_at"


class UserRepository:
    """Accounts table living next to receipts and categories."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or default_db_path()
        self._init_schema()

    def _init_schema(self) -> None:
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    user_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    role TEXT NOT NULL,
                    is_active INTEGER NOT NULL,
                    banned_until TEXT,
                    created_at TEXT NOT NULL
                )
            """)
            conn.commit()
        finally:
            conn.close()

    def create_user(self, user: User) -> User:
        """Create a new user.

        Args:
            user: User object to create

        Returns:
            The created user (same instance)

        Raises:
            sqlite3.IntegrityError: If email already exists
        """
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute(f"""
                INSERT INTO users ({_USER_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                str(user.user_id),
                user.name,
                user.email.lower(),
                user.password_hash,
                user.role.value,
                1 if user.is_active else 0,
                user.banned_until.isoformat() if user.banned_until else None,
                user.created_at.isoformat(),
            ))
            conn.commit()
            return user
        finally:
            conn.close()

    def get_user_by_email(self, email: str) -> Optional[User]:
        """Get user by email address (case-insensitive)."""
        return self._fetch_one("email = ?", (email.strip().lower(),))

    def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        """Get user by user_id."""
        return self._fetch_one("user_id = ?", (str(user_id),))

    def list_users(self) -> List[User]:
        conn = sqlite3.connect(self.db_path)
        try:
            rows = conn.execute(
                f"SELECT {_USER_COLUMNS} FROM users ORDER BY name COLLATE NOCASE"
            ).fetchall()
            return [self._row_to_user(row) for row in rows]
        finally:
            conn.close()

    def update_user(self, user_id: UUID, changes: UserUpdate) -> Optional[User]:
        """Apply profile changes; returns the updated user or None if missing.

        Raises:
            sqlite3.IntegrityError: If the new email belongs to another user
        """
        fields = changes.model_dump(exclude_none=True)
        if "email" in fields:
            fields["email"] = fields["email"].lower()
        if "role" in fields:
            fields["role"] = UserRole(fields["role"]).value
        if fields:
            assignments = ", ".join(f"{column} = ?" for column in fields)
            conn = sqlite3.connect(self.db_path)
            try:
                conn.execute(
                    f"UPDATE users SET {assignments} WHERE user_id = ?",
                    [*fields.values(), str(user_id)],
                )
                conn.commit()
            finally:
                conn.close()
        return self.get_user_by_id(user_id)

    def set_password_hash(self, user_id: UUID, password_hash: str) -> None:
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("UPDATE users SET password_hash = ? WHERE user_id = ?", (password_hash, str(user_id)))
            conn.commit()
        finally:
            conn.close()

    def set_ban(self, user_id: UUID, is_active: bool, banned_until: Optional[datetime]) -> Optional[User]:
        """Persist ban state. is_active=False is an indefinite ban."""
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute(
                "UPDATE users SET is_active = ?, banned_until = ? WHERE user_id = ?",
                (
                    1 if is_active else 0,
                    banned_until.isoformat() if banned_until else None,
                    str(user_id),
                ),
            )
            conn.commit()
        finally:
            conn.close()
        return self.get_user_by_id(user_id)

    def _fetch_one(self, where: str, params: tuple) -> Optional[User]:
        conn = sqlite3.connect(self.db_path)
        try:
            row = conn.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE {where}",
                params,
            ).fetchone()
            return self._row_to_user(row) if row else None
        finally:
            conn.close()

    @staticmethod
    def _row_to_user(row: tuple) -> User:
        return User(
            user_id=UUID(row[0]),
            name=row[1],
            email=row[2],
            password_hash=row[3],
            role=UserRole(row[4]),
            is_active=bool(row[5]),
            banned_until=datetime.fromisoformat(row[6]) if row[6] else None,
            created_at=datetime.fromisoformat(row[7]),
        )
