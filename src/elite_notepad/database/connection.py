"""SQLite connection management with context manager."""

import sqlite3
from contextlib import contextmanager
from pathlib import Path


class DatabaseConnection:
    """Opens short-lived SQLite connections on the local store file.

    Sync cycles write from worker threads while the caller reads, so the
    file runs in WAL mode and connections wait on a busy lock instead of
    failing straight away.
    """

    BUSY_TIMEOUT_SECONDS = 10.0

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def get_connection(self):
        """Yield a connection that auto-commits or rolls back.

        Everything executed inside one ``with`` block is a single
        transaction, so a batch either lands completely or not at all.
        """
        conn = sqlite3.connect(
            str(self.db_path), timeout=self.BUSY_TIMEOUT_SECONDS
        )
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA journal_mode = WAL")
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def execute(self, sql: str, params: tuple = ()):
        """Run a single statement and return the fetched rows."""
        with self.get_connection() as conn:
            return conn.execute(sql, params).fetchall()

    def table_columns(self, table: str) -> list[str]:
        """Column names of *table* in declaration order ([] if missing)."""
        rows = self.execute(f"PRAGMA table_info({table})")
        return [row["name"] for row in rows]
