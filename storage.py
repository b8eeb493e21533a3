# storage.py
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone

from models import NotFound, Status, StorageError

DEFAULT_DB_PATH = "commands.db"


class Storage:
    def __init__(self, db_path=DEFAULT_DB_PATH):
        self.db_path = str(db_path)
        self._lock = threading.Lock()
        try:
            self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        except sqlite3.Error as e:
            raise StorageError(f"cannot open {self.db_path}: {e}") from e
        self.conn.row_factory = sqlite3.Row

        with self._locked():
            # Readers do not block the single writer
            self.conn.execute("PRAGMA journal_mode=WAL;")
            self.conn.execute("PRAGMA synchronous=NORMAL;")
            self._init_schema()

    def _init_schema(self):
        self.conn.execute("""
        CREATE TABLE IF NOT EXISTS commands (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            payload BLOB NOT NULL,
            status INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """)

        self.conn.execute("""
        CREATE TABLE IF NOT EXISTS config (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """)

        self.conn.commit()

    @contextmanager
    def _locked(self):
        with self._lock:
            try:
                yield
            except sqlite3.Error as e:
                self.conn.rollback()
                raise StorageError(str(e)) from e

    def close(self):
        with self._lock:
            self.conn.close()

    def _now(self):
        return datetime.now(timezone.utc).isoformat()

    # ---------------- Queue operations ----------------
    def insert(self, encoded, status=Status.PENDING):
        """Append a row and return its id."""
        now = self._now()
        with self._locked():
            cur = self.conn.execute(
                "INSERT INTO commands (payload, status, created_at, updated_at) VALUES (?, ?, ?, ?)",
                (bytes(encoded), int(status), now, now),
            )
            self.conn.commit()
            return cur.lastrowid

    def fetch_oldest_pending(self, after_id=0):
        """Return ``(id, encoded)`` for the pending row with the smallest id
        above ``after_id``, or None when there is none."""
        with self._locked():
            row = self.conn.execute(
                "SELECT id, payload FROM commands WHERE status=? AND id>? ORDER BY id LIMIT 1",
                (int(Status.PENDING), after_id),
            ).fetchone()
        if row is None:
            return None
        payload = row["payload"]
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        return row["id"], payload

    def complete(self, command_id):
        with self._locked():
            updated = self.conn.execute(
                "UPDATE commands SET status=?, updated_at=? WHERE id=? AND status=?",
                (int(Status.COMPLETE), self._now(), command_id, int(Status.PENDING)),
            ).rowcount
            self.conn.commit()
        if updated != 1:
            raise NotFound(f"no pending command with id {command_id}")

    # ---------------- Inspection ----------------
    def get(self, command_id):
        with self._locked():
            row = self.conn.execute("SELECT * FROM commands WHERE id=?", (command_id,)).fetchone()
        if row is None:
            raise NotFound(f"no command with id {command_id}")
        return row

    def list_rows(self, status=None, limit=None, newest_first=False):
        sql = "SELECT * FROM commands"
        params = []
        if status is not None:
            sql += " WHERE status=?"
            params.append(int(status))
        sql += " ORDER BY id DESC" if newest_first else " ORDER BY id"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        with self._locked():
            return self.conn.execute(sql, params).fetchall()

    def count_by_status(self):
        counts = {s: 0 for s in Status}
        with self._locked():
            rows = self.conn.execute("SELECT status, COUNT(*) AS c FROM commands GROUP BY status").fetchall()
        for row in rows:
            counts[Status(row["status"])] = row["c"]
        return counts

    def pending_count(self):
        return self.count_by_status()[Status.PENDING]

    def is_empty(self):
        return self.pending_count() == 0

    # ---------------- Config helpers ----------------
    def get_config(self, key, default=None):
        with self._locked():
            row = self.conn.execute("SELECT value FROM config WHERE key=?", (key,)).fetchone()
        return row["value"] if row else default

    def set_config(self, key, value):
        now = self._now()
        with self._locked():
            self.conn.execute("""
                INSERT INTO config (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
            """, (key, str(value), now))
            self.conn.commit()

    def list_config(self):
        with self._locked():
            return self.conn.execute("SELECT key, value, updated_at FROM config ORDER BY key").fetchall()
