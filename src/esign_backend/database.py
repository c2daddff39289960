"""
SQLite database for persistent document records.

This module provides the keyed record store behind the lifecycle manager.
Rows are written whole (insert-or-replace); the manager owns every
consistency rule, this layer only persists what it is given.
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional


# Default database path
DEFAULT_DB_PATH = Path("data/documents.db")


def _ensure_db_dir(db_path: Path) -> None:
    """Ensure the database directory exists."""
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _serialize_datetime(dt: datetime) -> str:
    """Serialize datetime to ISO format string."""
    return dt.isoformat() if dt else None


def _deserialize_datetime(s: str) -> Optional[datetime]:
    """Deserialize ISO format string to datetime."""
    if not s:
        return None
    return datetime.fromisoformat(s)


class DocumentDatabase:
    """
    SQLite database for document persistence.

    Thread-safe: every call opens its own connection and SQLite handles
    concurrent access with WAL mode.
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH):
        self.db_path = Path(db_path)
        _ensure_db_dir(self.db_path)
        self._init_db()

    @contextmanager
    def _get_connection(self):
        """Get a database connection with proper settings."""
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    id TEXT PRIMARY KEY,
                    original_name TEXT NOT NULL,
                    stored_blob_ref TEXT NOT NULL,
                    file_size INTEGER NOT NULL,
                    status TEXT NOT NULL,
                    fields TEXT,
                    annotated_blob_ref TEXT,
                    external_id TEXT,
                    signed_blob_ref TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    events TEXT
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_documents_created_at
                ON documents(created_at DESC)
            """)

    def save_document(self, data: Dict[str, Any]) -> None:
        """
        Save or replace a document record.

        Args:
            data: Dictionary with document fields; ``fields`` is a list of
                plain dicts or None, ``events`` a list of timestamp/message dicts
        """
        with self._get_connection() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO documents (
                    id, original_name, stored_blob_ref, file_size, status,
                    fields, annotated_blob_ref, external_id, signed_blob_ref,
                    created_at, updated_at, events
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                data["id"],
                data["original_name"],
                data["stored_blob_ref"],
                data["file_size"],
                data["status"],
                json.dumps(data["fields"]) if data.get("fields") is not None else None,
                data.get("annotated_blob_ref"),
                data.get("external_id"),
                data.get("signed_blob_ref"),
                _serialize_datetime(data["created_at"]),
                _serialize_datetime(data["updated_at"]),
                json.dumps([
                    {"timestamp": _serialize_datetime(e["timestamp"]), "message": e["message"]}
                    for e in data.get("events", [])
                ]),
            ))

    def get_document(self, document_id: str) -> Optional[Dict[str, Any]]:
        """
        Retrieve a document by ID.

        Returns:
            Document data dictionary or None if not found
        """
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM documents WHERE id = ?", (document_id,)
            ).fetchone()

            if not row:
                return None

            return self._row_to_dict(row)

    def list_documents(self) -> List[Dict[str, Any]]:
        """List all documents ordered by creation time (newest first)."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM documents ORDER BY created_at DESC"
            ).fetchall()

            return [self._row_to_dict(row) for row in rows]

    def delete_document(self, document_id: str) -> bool:
        """
        Delete a document record.

        Returns:
            True if deleted, False if not found
        """
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
            return cursor.rowcount > 0

    def _row_to_dict(self, row: sqlite3.Row) -> Dict[str, Any]:
        """Convert a database row to a document data dictionary."""
        events_raw = json.loads(row["events"] or "[]")
        events = [
            {
                "timestamp": _deserialize_datetime(e["timestamp"]),
                "message": e["message"],
            }
            for e in events_raw
        ]

        return {
            "id": row["id"],
            "original_name": row["original_name"],
            "stored_blob_ref": row["stored_blob_ref"],
            "file_size": row["file_size"],
            "status": row["status"],
            "fields": json.loads(row["fields"]) if row["fields"] is not None else None,
            "annotated_blob_ref": row["annotated_blob_ref"],
            "external_id": row["external_id"],
            "signed_blob_ref": row["signed_blob_ref"],
            "created_at": _deserialize_datetime(row["created_at"]),
            "updated_at": _deserialize_datetime(row["updated_at"]),
            "events": events,
        }
