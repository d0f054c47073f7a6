"""Receipt Persistence Layer

SQLite-based repository for Receipt rows.

Design Decisions:
- Connection-per-operation pattern (no shared connections)
- Amounts stored as canonical two-place text so SQL equality is exact
  decimal equality (the duplicate check depends on it)
- No business logic: status guards and the commit workflow live in services
"""

from __future__ import annotations

import sqlite3
from datetime import date, datetime
from pathlib import Path
from typing import Any, List, Optional
from uuid import uuid4

from receipt_tracker.models.receipt import (
    DuplicateCandidate,
    Receipt,
    ReceiptCreate,
    ReceiptStatus,
    SubmissionSource,
    amount_to_db,
)
from receipt_tracker.utils.helpers.exceptions import ReceiptNotFoundError

_COLUMNS = (
    "id, user_id, receipt_date, amount, category_id, description, status, image_path, "
    "needs_reconciliation, submission_source, created_at, updated_at"
)

# Columns update() is allowed to touch.
_UPDATABLE = {"receipt_date", "amount", "category_id", "description", "status", "image_path", "needs_reconciliation"}


def default_db_path() -> str:
    """receipt_tracker/data/receipts.db, created on demand."""
    data_dir = Path(__file__).parent.parent / "data"
    data_dir.mkdir(exist_ok=True)
    return str(data_dir / "receipts.db")


class ReceiptRepository:
    """SQLite-based persistence for Receipt objects.

    Storage Strategy:
        - Single table: receipts (shares the database file with categories
          and users)
        - Automatic schema creation on first use
        - Index on (user_id, receipt_date, amount) for the duplicate query

    Thread Safety:
        - Connection-per-operation pattern
        - SQLite handles concurrency via file locks
    """

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or default_db_path()

        # For :memory: databases, keep a persistent connection
        # (otherwise each new connection creates a fresh empty database)
        self._memory_conn = None
        if self.db_path == ":memory:":
            self._memory_conn = sqlite3.connect(":memory:", check_same_thread=False)

        self._init_schema()

    def _get_connection(self) -> sqlite3.Connection:
        if self._memory_conn is not None:
            conn = self._memory_conn
        else:
            conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _release(self, conn: sqlite3.Connection) -> None:
        if conn is not self._memory_conn:
            conn.close()

    def _init_schema(self) -> None:
        conn = self._get_connection()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS receipts (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    receipt_date TEXT NOT NULL,
                    amount TEXT NOT NULL,
                    category_id TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL,
                    image_path TEXT NOT NULL,
                    needs_reconciliation INTEGER NOT NULL DEFAULT 0,
                    submission_source TEXT NOT NULL DEFAULT 'web',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_receipts_duplicate
                ON receipts(user_id, receipt_date, amount)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_receipts_status
                ON receipts(status)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_receipts_image_path
                ON receipts(image_path)
            """)
            conn.commit()
        finally:
            self._release(conn)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, fields: ReceiptCreate, image_path: str) -> Receipt:
        """Insert a PENDING receipt and return it with its generated id.

        Args:
            fields: Validated receipt fields
            image_path: Storage path the row points at; never empty

        Raises:
            ValueError: If image_path is empty
            sqlite3.Error: If the write fails
        """
        if not image_path:
            raise ValueError("image_path must not be empty")

        now = datetime.utcnow()
        receipt = Receipt(
            id=str(uuid4()),
            user_id=fields.user_id,
            receipt_date=fields.receipt_date,
            amount=fields.amount,
            category_id=fields.category_id,
            description=fields.description,
            status=ReceiptStatus.PENDING,
            image_path=image_path,
            submission_source=fields.submission_source,
            created_at=now,
            updated_at=now,
        )
        conn = self._get_connection()
        try:
            conn.execute(f"""
                INSERT INTO receipts ({_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                receipt.id,
                receipt.user_id,
                receipt.receipt_date.isoformat(),
                amount_to_db(receipt.amount),
                receipt.category_id,
                receipt.description,
                receipt.status.value,
                receipt.image_path,
                0,
                receipt.submission_source.value,
                receipt.created_at.isoformat(),
                receipt.updated_at.isoformat(),
            ))
            conn.commit()
            return receipt
        finally:
            self._release(conn)

    def update(self, receipt_id: str, **changes: Any) -> Receipt:
        """Apply column changes to one receipt and return the stored row.

        Raises:
            ValueError: On an unknown column
            ReceiptNotFoundError: If no row has this id
        """
        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update columns: {', '.join(sorted(unknown))}")

        assignments = []
        params: List[Any] = []
        for column, value in changes.items():
            assignments.append(f"{column} = ?")
            params.append(self._to_db(column, value))
        assignments.append("updated_at = ?")
        params.append(datetime.utcnow().isoformat())
        params.append(receipt_id)

        conn = self._get_connection()
        try:
            cursor = conn.execute(
                f"UPDATE receipts SET {', '.join(assignments)} WHERE id = ?",
                params,
            )
            conn.commit()
            if cursor.rowcount == 0:
                raise ReceiptNotFoundError(f"Receipt not found: {receipt_id}")
        finally:
            self._release(conn)

        updated = self.get(receipt_id)
        if updated is None:
            raise ReceiptNotFoundError(f"Receipt not found: {receipt_id}")
        return updated

    def delete(self, receipt_id: str) -> bool:
        """Hard-delete a row. Only the commit workflow's compensation uses this.

        Returns:
            True if a row was deleted, False if not found
        """
        conn = self._get_connection()
        try:
            cursor = conn.execute("DELETE FROM receipts WHERE id = ?", (receipt_id,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            self._release(conn)

    def update_status_bulk(self, from_status: ReceiptStatus, to_status: ReceiptStatus) -> int:
        """Set-based status change; returns the number of rows affected."""
        conn = self._get_connection()
        try:
            cursor = conn.execute("""
                UPDATE receipts
                SET status = ?, updated_at = ?
                WHERE status = ?
            """, (to_status.value, datetime.utcnow().isoformat(), from_status.value))
            conn.commit()
            return cursor.rowcount
        finally:
            self._release(conn)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, receipt_id: str) -> Optional[Receipt]:
        conn = self._get_connection()
        try:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM receipts WHERE id = ?",
                (receipt_id,),
            ).fetchone()
            return self._row_to_receipt(row) if row else None
        finally:
            self._release(conn)

    def get_by_image_path(self, image_path: str) -> Optional[Receipt]:
        conn = self._get_connection()
        try:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM receipts WHERE image_path = ?",
                (image_path,),
            ).fetchone()
            return self._row_to_receipt(row) if row else None
        finally:
            self._release(conn)

    def find_duplicates(self, user_id: str, receipt_date: date, amount: Any) -> List[DuplicateCandidate]:
        """Exact (user, date, amount) matches, oldest first."""
        conn = self._get_connection()
        try:
            rows = conn.execute("""
                SELECT id, description FROM receipts
                WHERE user_id = ? AND receipt_date = ? AND amount = ?
                ORDER BY created_at ASC
            """, (user_id, receipt_date.isoformat(), amount_to_db(amount))).fetchall()
            return [DuplicateCandidate(id=row["id"], description=row["description"] or "") for row in rows]
        finally:
            self._release(conn)

    def list_for_user(self, user_id: str) -> List[Receipt]:
        return self.list_all(user_id=user_id)

    def list_all(
        self,
        status: Optional[ReceiptStatus] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        user_id: Optional[str] = None,
        needs_reconciliation: Optional[bool] = None,
    ) -> List[Receipt]:
        """List receipts newest first, optionally filtered.

        Args:
            status: Only receipts in this status
            from_date: Receipt date on or after this day
            to_date: Receipt date on or before this day
            user_id: Only receipts owned by this user
            needs_reconciliation: Filter on the reconciliation flag
        """
        where: List[str] = []
        params: List[Any] = []
        if status is not None:
            where.append("status = ?")
            params.append(status.value)
        if from_date is not None:
            where.append("receipt_date >= ?")
            params.append(from_date.isoformat())
        if to_date is not None:
            where.append("receipt_date <= ?")
            params.append(to_date.isoformat())
        if user_id is not None:
            where.append("user_id = ?")
            params.append(user_id)
        if needs_reconciliation is not None:
            where.append("needs_reconciliation = ?")
            params.append(1 if needs_reconciliation else 0)

        query = f"SELECT {_COLUMNS} FROM receipts"
        if where:
            query += " WHERE " + " AND ".join(where)
        query += " ORDER BY created_at DESC"

        conn = self._get_connection()
        try:
            rows = conn.execute(query, params).fetchall()
            return [self._row_to_receipt(row) for row in rows]
        finally:
            self._release(conn)

    def list_unfinalized(self) -> List[Receipt]:
        """Flagged rows and rows whose image_path is not {user_id}/{id}.{ext}.

        The second group is every row still pointing at its upload path:
        commits in flight, and final updates that failed before the flag
        could be written.
        """
        conn = self._get_connection()
        try:
            rows = conn.execute(f"""
                SELECT {_COLUMNS} FROM receipts
                WHERE needs_reconciliation = 1
                   OR image_path NOT LIKE user_id || '/' || id || '.%'
                ORDER BY created_at DESC
            """).fetchall()
            return [self._row_to_receipt(row) for row in rows]
        finally:
            self._release(conn)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_db(column: str, value: Any) -> Any:
        if column == "amount":
            return amount_to_db(value)
        if column == "receipt_date":
            return value.isoformat() if isinstance(value, date) else str(value)
        if column == "status":
            return ReceiptStatus(value).value
        if column == "needs_reconciliation":
            return 1 if value else 0
        return value

    @staticmethod
    def _row_to_receipt(row: sqlite3.Row) -> Receipt:
        return Receipt(
            id=row["id"],
            user_id=row["user_id"],
            receipt_date=date.fromisoformat(row["receipt_date"]),
            amount=row["amount"],
            category_id=row["category_id"],
            description=row["description"] or "",
            status=ReceiptStatus(row["status"]),
            image_path=row["image_path"],
            needs_reconciliation=bool(row["needs_reconciliation"]),
            submission_source=SubmissionSource(row["submission_source"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
