"""Audit trail storage.

Events live in their own SQLite file (audit.db) so a slow audit write never
holds a lock on the receipts database in the middle of a commit. The table
is append-only: there is no update or delete path.
"""

from __future__ import annotations

import json
import sqlite3
import time
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional
from uuid import UUID

from receipt_tracker.models.audit import AuditEvent, AuditEventType

_EVENT_COLUMNS = "event_id, event_type, timestamp, actor, receipt_id, data_json, created_at"


def default_audit_db_path() -> str:
    data_dir = Path(__file__).parent.parent / "data"
    data_dir.mkdir(exist_ok=True)
    return str(data_dir / "audit.db")


class AuditRepository:
    """Write-once, read-many store for AuditEvent rows."""

    LOCK_RETRIES = 3
    LOCK_BACKOFF_SECONDS = 0.1

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or default_audit_db_path()
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        conn = self._connect()
        try:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS audit_events (
                    event_id TEXT PRIMARY KEY,
                    event_type TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    actor TEXT NOT NULL,
                    receipt_id TEXT,
                    data_json TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_audit_receipt ON audit_events(receipt_id, timestamp);
                CREATE INDEX IF NOT EXISTS idx_audit_type ON audit_events(event_type, timestamp);
                CREATE INDEX IF NOT EXISTS idx_audit_actor ON audit_events(actor);
            """)
        finally:
            conn.close()

    def save_event(self, event: AuditEvent) -> None:
        """Append one event, retrying briefly while another writer holds the lock.

        Raises:
            sqlite3.Error: Write failed (the AuditLogger swallows this)
        """
        row = (
            str(event.event_id),
            event.event_type.value,
            event.timestamp.isoformat(),
            event.actor,
            event.receipt_id,
            json.dumps(event.data),
            event.created_at.isoformat(),
        )
        attempt = 1
        while True:
            conn = self._connect()
            try:
                conn.execute(f"INSERT INTO audit_events ({_EVENT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)", row)
                conn.commit()
                return
            except sqlite3.OperationalError as exc:
                if "locked" not in str(exc).lower() or attempt >= self.LOCK_RETRIES:
                    raise
            finally:
                conn.close()
            time.sleep(self.LOCK_BACKOFF_SECONDS * attempt)
            attempt += 1

    def find_events(
        self,
        receipt_id: Optional[str] = None,
        event_type: Optional[AuditEventType] = None,
        actor: Optional[str] = None,
        limit: int = 200,
    ) -> List[AuditEvent]:
        """Events matching every given filter, newest first."""
        where: List[str] = []
        params: List[Any] = []
        if receipt_id is not None:
            where.append("receipt_id = ?")
            params.append(receipt_id)
        if event_type is not None:
            where.append("event_type = ?")
            params.append(AuditEventType(event_type).value)
        if actor is not None:
            where.append("actor = ?")
            params.append(actor)

        query = f"SELECT {_EVENT_COLUMNS} FROM audit_events"
        if where:
            query += " WHERE " + " AND ".join(where)
        query += " ORDER BY timestamp DESC, created_at DESC LIMIT ?"
        params.append(limit)

        conn = self._connect()
        try:
            return [self._row_to_event(row) for row in conn.execute(query, params).fetchall()]
        finally:
            conn.close()

    def get_events_for_receipt(self, receipt_id: str, limit: int = 200) -> List[AuditEvent]:
        return self.find_events(receipt_id=receipt_id, limit=limit)

    def get_events_by_type(self, event_type: AuditEventType, limit: int = 200) -> List[AuditEvent]:
        return self.find_events(event_type=event_type, limit=limit)

    def get_recent_events(self, limit: int = 200) -> List[AuditEvent]:
        return self.find_events(limit=limit)

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> AuditEvent:
        return AuditEvent(
            event_id=UUID(row["event_id"]),
            event_type=AuditEventType(row["event_type"]),
            timestamp=datetime.fromisoformat(row["timestamp"]),
            actor=row["actor"],
            receipt_id=row["receipt_id"],
            data=json.loads(row["data_json"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )
