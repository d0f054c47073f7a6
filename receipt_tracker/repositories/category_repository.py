"""SQLite persistence for the static category lookup."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Iterable, List, Optional
from uuid import uuid4

from receipt_tracker.models.category import Category
from receipt_tracker.repositories.receipt_repository import default_db_path


class CategoryRepository:
    """Categories table (id, name). Names are unique case-insensitively."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or default_db_path()
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        conn = self._connect()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS categories (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL UNIQUE COLLATE NOCASE,
                    created_at TEXT NOT NULL
                )
            """)
            conn.commit()
        finally:
            conn.close()

    def create(self, name: str, category_id: Optional[str] = None) -> Category:
        """Insert a category.

        Raises:
            sqlite3.IntegrityError: If the name (any case) already exists
        """
        category = Category(id=category_id or str(uuid4()), name=name.strip(), created_at=datetime.utcnow())
        conn = self._connect()
        try:
            conn.execute(
                "INSERT INTO categories (id, name, created_at) VALUES (?, ?, ?)",
                (category.id, category.name, category.created_at.isoformat()),
            )
            conn.commit()
            return category
        finally:
            conn.close()

    def seed(self, names: Iterable[str]) -> int:
        """Insert any names not already present; returns how many were added."""
        added = 0
        for name in names:
            if not name or self.get_by_name(name) is not None:
                continue
            self.create(name)
            added += 1
        return added

    def get(self, category_id: str) -> Optional[Category]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT id, name, created_at FROM categories WHERE id = ?",
                (category_id,),
            ).fetchone()
            return self._row_to_category(row) if row else None
        finally:
            conn.close()

    def get_by_name(self, name: str) -> Optional[Category]:
        """Case-insensitive exact match on the category name."""
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT id, name, created_at FROM categories WHERE name = ? COLLATE NOCASE",
                (name.strip(),),
            ).fetchone()
            return self._row_to_category(row) if row else None
        finally:
            conn.close()

    def list_all(self) -> List[Category]:
        conn = self._connect()
        try:
            rows = conn.execute("SELECT id, name, created_at FROM categories ORDER BY name").fetchall()
            return [self._row_to_category(row) for row in rows]
        finally:
            conn.close()

    @staticmethod
    def _row_to_category(row: sqlite3.Row) -> Category:
        return Category(
            id=row["id"],
            name=row["name"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )
