"""
Document store using SQLite.

Stores complete note records (including embedded attachments) keyed by
note id. Every write supplies the whole record; there is no field-level
patch at this boundary.

The database file and schema are created lazily on first use. The schema
version is tracked in ``PRAGMA user_version`` so later releases can migrate
existing files in place.
"""

import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Optional

from .errors import StorageUnavailable
from .types import Note

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


class DocumentStore:
    """
    SQLite-backed store for note records.

    A single connection is shared by all callers in the process and is
    guarded by a lock, so operations issued from worker threads
    (``asyncio.to_thread``) never interleave inside a transaction.
    """

    def __init__(self, store_path: Path):
        """
        Args:
            store_path: Path to SQLite database file
        """
        self._db_path = Path(store_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._closed = False

    @property
    def path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        """Open the database on first use. Caller holds the lock."""
        if self._conn is not None:
            return self._conn
        if self._closed:
            raise StorageUnavailable(f"Note database {self._db_path} is closed")
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
            conn.row_factory = sqlite3.Row
            # WAL for concurrent readers across processes
            conn.execute("PRAGMA journal_mode=WAL")
            # Wait up to 5 seconds for locks instead of failing immediately
            conn.execute("PRAGMA busy_timeout=5000")
            self._migrate(conn)
        except (sqlite3.Error, OSError) as e:
            raise StorageUnavailable(f"Cannot open note database {self._db_path}: {e}") from e
        self._conn = conn
        logger.debug("Opened note database %s", self._db_path)
        return conn

    def _migrate(self, conn: sqlite3.Connection) -> None:
        """Bring the schema up to SCHEMA_VERSION."""
        version = conn.execute("PRAGMA user_version").fetchone()[0]
        if version > SCHEMA_VERSION:
            raise StorageUnavailable(
                f"Note database schema v{version} is newer than supported (v{SCHEMA_VERSION})"
            )
        if version == SCHEMA_VERSION:
            return

        with conn:
            if version < 1:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS notes (
                        id TEXT PRIMARY KEY,
                        record_json TEXT NOT NULL,
                        updated_at INTEGER NOT NULL
                    )
                """)
                conn.execute("""
                    CREATE INDEX IF NOT EXISTS idx_notes_updated
                    ON notes(updated_at)
                """)
            conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
        logger.info("Note database migrated v%d -> v%d", version, SCHEMA_VERSION)

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def put(self, note: Note) -> None:
        """
        Insert or fully replace the record keyed by ``note.id``.

        Idempotent: putting the same note twice leaves one identical record.

        Raises:
            StorageUnavailable: If the database cannot be opened or written
        """
        record_json = json.dumps(note.to_dict(), ensure_ascii=False)
        with self._lock:
            conn = self._connect()
            try:
                with conn:
                    conn.execute("""
                        INSERT OR REPLACE INTO notes (id, record_json, updated_at)
                        VALUES (?, ?, ?)
                    """, (note.id, record_json, note.updated_at))
            except sqlite3.Error as e:
                raise StorageUnavailable(f"Failed to save note {note.id}: {e}") from e

    def delete(self, id: str) -> None:
        """
        Delete a note record. Deleting an absent id is a no-op.

        Raises:
            StorageUnavailable: If the database cannot be opened or written
        """
        with self._lock:
            conn = self._connect()
            try:
                with conn:
                    conn.execute("DELETE FROM notes WHERE id = ?", (id,))
            except sqlite3.Error as e:
                raise StorageUnavailable(f"Failed to delete note {id}: {e}") from e

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get_all(self) -> list[Note]:
        """
        Return every stored note. Order is unspecified; callers re-sort.

        Raises:
            StorageUnavailable: If the database cannot be opened or read
        """
        with self._lock:
            conn = self._connect()
            try:
                rows = conn.execute("SELECT id, record_json FROM notes").fetchall()
            except sqlite3.Error as e:
                raise StorageUnavailable(f"Failed to read notes: {e}") from e
        return [self._row_to_note(row) for row in rows]

    def get(self, id: str) -> Optional[Note]:
        """
        Get a note by ID.

        Returns:
            Note if found, None otherwise
        """
        with self._lock:
            conn = self._connect()
            try:
                row = conn.execute(
                    "SELECT id, record_json FROM notes WHERE id = ?", (id,)
                ).fetchone()
            except sqlite3.Error as e:
                raise StorageUnavailable(f"Failed to read note {id}: {e}") from e
        if row is None:
            return None
        return self._row_to_note(row)

    def count(self) -> int:
        """Count stored notes."""
        with self._lock:
            conn = self._connect()
            try:
                return conn.execute("SELECT COUNT(*) FROM notes").fetchone()[0]
            except sqlite3.Error as e:
                raise StorageUnavailable(f"Failed to count notes: {e}") from e

    @staticmethod
    def _row_to_note(row: sqlite3.Row) -> Note:
        try:
            return Note.from_dict(json.loads(row["record_json"]))
        except (json.JSONDecodeError, ValueError, KeyError) as e:
            raise StorageUnavailable(f"Corrupt record for note {row['id']}: {e}") from e

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection. The store cannot be used afterwards."""
        with self._lock:
            self._closed = True
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        # __init__ may have failed before _lock existed
        if getattr(self, "_lock", None) is not None:
            self.close()
