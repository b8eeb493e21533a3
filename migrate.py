# migrate.py
import logging
import sqlite3
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


def _columns(conn, table):
    return [row[1] for row in conn.execute(f"PRAGMA table_info({table})")]


def migrate(db_path):
    """Upgrade a legacy ``commands(id, command, status)`` table in place.

    Returns the list of changes applied; an up-to-date or missing table
    yields an empty list.
    """
    conn = sqlite3.connect(str(db_path))
    applied = []
    try:
        columns = _columns(conn, "commands")
        if not columns:
            return applied
        if "command" in columns and "payload" not in columns:
            conn.execute("ALTER TABLE commands RENAME COLUMN command TO payload;")
            applied.append("rename command -> payload")
        now = datetime.now(timezone.utc).isoformat()
        for column in ("created_at", "updated_at"):
            if column not in columns:
                conn.execute(f"ALTER TABLE commands ADD COLUMN {column} TEXT NOT NULL DEFAULT '{now}';")
                applied.append(f"add {column}")
        conn.execute("UPDATE commands SET status=0 WHERE status IS NULL;")
        conn.commit()
    finally:
        conn.close()
    for change in applied:
        logger.info("migrate %s: %s", db_path, change)
    return applied
