"""Local Store — durable, indexed storage for teams, members and the sync queue.

One ``LocalStore`` is constructed per database file and handed to every
component that needs it.  ``open()`` is idempotent and safe to call from
several threads at once; the schema is created or migrated exactly once.

Every write runs under an internal lock inside a single SQLite
transaction, so batch writes (a pulled snapshot, a local change together
with its sync queue entries) are visible completely or not at all.
"""

import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Iterable, Optional

from .connection import DatabaseConnection
from .models import SyncQueueEntry, decode_payload, encode_payload
from .schema import initialize_database

logger = logging.getLogger(__name__)

# Primary key column per table
TABLE_KEYS = {
    "teams": "id",
    "members": "id",
    "sync_queue": "id",
    "meta": "key",
}

# Named secondary indexes: (table, index name) -> column
INDEXES = {
    ("teams", "by-user"): "user_id",
    ("members", "by-user"): "user_id",
    ("members", "by-team"): "team_id",
    ("sync_queue", "by-user"): "user_id",
}

_BOOL_COLUMNS = {
    "teams": {"is_yearly", "is_plus"},
    "members": {"is_paid", "is_pushed"},
}

_JSON_COLUMNS = {
    "members": {"subscriptions"},
    "sync_queue": {"payload"},
}


class StoreError(Exception):
    """The local database could not complete an operation."""


class LocalStore:
    """Owned handle on the local SQLite database."""

    def __init__(self, db_path: str | Path):
        self.db = DatabaseConnection(db_path)
        self._open_lock = threading.Lock()
        self._write_lock = threading.RLock()
        self._columns: Optional[dict[str, list[str]]] = None
        self.schema_version = 0

    # ── Lifecycle ───────────────────────────────────────────────

    @property
    def is_open(self) -> bool:
        return self._columns is not None

    def open(self) -> "LocalStore":
        """Create or migrate the schema once; later calls are no-ops."""
        if self._columns is not None:
            return self
        with self._open_lock:
            if self._columns is None:
                try:
                    self.schema_version = initialize_database(self.db)
                    columns = {
                        table: self.db.table_columns(table)
                        for table in TABLE_KEYS
                    }
                except sqlite3.Error as e:
                    raise StoreError(f"Cannot open local store: {e}") from e
                self._columns = columns
                logger.debug(
                    f"Opened local store {self.db.db_path} "
                    f"(schema v{self.schema_version})"
                )
        return self

    # ── Generic CRUD ────────────────────────────────────────────

    def put(self, table: str, record: dict):
        """Insert or wholesale-replace one record keyed by its primary id."""
        self.put_many(table, [record])

    def put_many(self, table: str, records: Iterable[dict]):
        """Upsert several records in one transaction."""
        records = list(records)
        if not records:
            return
        self._write(lambda conn: self._upsert(conn, table, records))

    def get(self, table: str, record_id) -> Optional[dict]:
        key = self._key(table)
        rows = self._read(
            f"SELECT * FROM {table} WHERE {key} = ?",  # noqa: S608
            (record_id,),
        )
        return self._decode(table, rows[0]) if rows else None

    def delete(self, table: str, record_id) -> bool:
        return self.delete_many(table, [record_id]) > 0

    def delete_many(self, table: str, ids: Iterable) -> int:
        """Delete records by id in one transaction; returns rows removed."""
        ids = list(ids)
        if not ids:
            return 0
        key = self._key(table)
        placeholders = ", ".join("?" for _ in ids)

        def _delete(conn):
            cursor = conn.execute(
                f"DELETE FROM {table} WHERE {key} IN ({placeholders})",  # noqa: S608
                tuple(ids),
            )
            return cursor.rowcount

        return self._write(_delete)

    def list_by_index(self, table: str, index: str, value) -> list[dict]:
        """All records whose indexed column equals *value*, in insertion order."""
        column = INDEXES.get((table, index))
        if column is None:
            raise ValueError(f"No index {index!r} on table {table!r}")
        rows = self._read(
            f"SELECT * FROM {table} WHERE {column} = ? ORDER BY rowid",  # noqa: S608
            (value,),
        )
        return [self._decode(table, r) for r in rows]

    # ── Teams and members ───────────────────────────────────────

    def list_teams(self, owner_id: str) -> list[dict]:
        return self.list_by_index("teams", "by-user", owner_id)

    def list_members(self, owner_id: str) -> list[dict]:
        return self.list_by_index("members", "by-user", owner_id)

    def list_team_members(self, team_id: str) -> list[dict]:
        return self.list_by_index("members", "by-team", team_id)

    def delete_members_by_team(self, team_id: str) -> int:
        def _delete(conn):
            return conn.execute(
                "DELETE FROM members WHERE team_id = ?", (team_id,)
            ).rowcount

        return self._write(_delete)

    def save_snapshot(self, teams: list[dict], members: list[dict]):
        """Write a pulled snapshot of teams and members atomically."""
        def _save(conn):
            self._upsert(conn, "teams", teams)
            self._upsert(conn, "members", members)

        self._write(_save)

    # ── Sync queue ──────────────────────────────────────────────

    def append(self, entry: SyncQueueEntry) -> int:
        """Add an entry to the sync queue and return its assigned id."""
        return self._write(lambda conn: self._insert_entry(conn, entry))

    def record_change(self, entries: list[SyncQueueEntry],
                      upserts: Iterable[tuple[str, dict]] = (),
                      deletes: Iterable[tuple[str, str]] = (),
                      team_deletes: Iterable[str] = ()):
        """Apply a local mutation and queue its sync entries as one unit.

        *upserts* are ``(table, record)`` pairs, *deletes* are
        ``(table, record_id)`` pairs and *team_deletes* are team ids removed
        together with their members.  If anything fails, neither the rows
        nor the queue entries are written.
        """
        upserts = list(upserts)
        deletes = list(deletes)
        team_deletes = list(team_deletes)

        def _apply(conn):
            for table, record in upserts:
                self._upsert(conn, table, [record])
            for table, record_id in deletes:
                conn.execute(
                    f"DELETE FROM {table} WHERE {self._key(table)} = ?",  # noqa: S608
                    (record_id,),
                )
            for team_id in team_deletes:
                conn.execute("DELETE FROM members WHERE team_id = ?", (team_id,))
                conn.execute("DELETE FROM teams WHERE id = ?", (team_id,))
            return [self._insert_entry(conn, entry) for entry in entries]

        try:
            return self._write(_apply)
        except StoreError:
            for entry in entries:
                entry.id = None
            raise

    def list_queue(self, owner_id: str) -> list[SyncQueueEntry]:
        """Queue entries for an owner in replay (id) order.

        Rows whose payload cannot be decoded are logged and left in
        place untouched; they are never returned for replay.
        """
        entries = []
        for row in self.list_by_index("sync_queue", "by-user", owner_id):
            try:
                payload = decode_payload(
                    row["table_name"], row["operation"], row["payload"]
                )
            except ValueError as e:
                logger.warning(f"Skipping unreadable queue entry {row['id']}: {e}")
                continue
            entries.append(SyncQueueEntry(
                id=row["id"],
                table=row["table_name"],
                record_id=row["record_id"],
                payload=payload,
                owner_id=row["user_id"],
                created_at=row["created_at"],
            ))
        return entries

    def queue_length(self, owner_id: str) -> int:
        rows = self._read(
            "SELECT COUNT(*) AS cnt FROM sync_queue WHERE user_id = ?",
            (owner_id,),
        )
        return rows[0]["cnt"] if rows else 0

    def has_queued(self, owner_id: str, table: str, record_id: str) -> bool:
        """Whether any queue entry for the owner references a record."""
        rows = self._read(
            "SELECT 1 FROM sync_queue WHERE user_id = ? "
            "AND table_name = ? AND record_id = ? LIMIT 1",
            (owner_id, table, record_id),
        )
        return bool(rows)

    # ── Meta ────────────────────────────────────────────────────

    def get_meta(self, key: str) -> Optional[str]:
        row = self.get("meta", key)
        return row["value"] if row else None

    def set_meta(self, key: str, value: str):
        self.put("meta", {"key": key, "value": value})

    # ── Internals ───────────────────────────────────────────────

    def _key(self, table: str) -> str:
        try:
            return TABLE_KEYS[table]
        except KeyError:
            raise ValueError(f"Unknown table: {table!r}") from None

    def _read(self, sql: str, params: tuple = ()):
        self.open()
        try:
            return self.db.execute(sql, params)
        except sqlite3.Error as e:
            raise StoreError(f"Local read failed: {e}") from e

    def _write(self, fn):
        """Run *fn(conn)* in one transaction under the write lock."""
        self.open()
        with self._write_lock:
            try:
                with self.db.get_connection() as conn:
                    return fn(conn)
            except sqlite3.Error as e:
                raise StoreError(f"Local write failed: {e}") from e

    def _insert_entry(self, conn, entry: SyncQueueEntry) -> int:
        cursor = conn.execute(
            "INSERT INTO sync_queue "
            "(table_name, operation, record_id, payload, user_id, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (entry.table, entry.operation, entry.record_id,
             json.dumps(encode_payload(entry.payload), default=str),
             entry.owner_id, entry.created_at),
        )
        entry.id = cursor.lastrowid
        return entry.id

    def _upsert(self, conn, table: str, records: list[dict]):
        self._key(table)
        known = self._columns[table]
        for record in records:
            encoded = self._encode(table, record)
            columns = [c for c in known if c in encoded]
            col_names = ", ".join(columns)
            placeholders = ", ".join("?" for _ in columns)
            conn.execute(
                f"INSERT OR REPLACE INTO {table} ({col_names}) "  # noqa: S608
                f"VALUES ({placeholders})",
                tuple(encoded[c] for c in columns),
            )

    def _encode(self, table: str, record: dict) -> dict:
        encoded = dict(record)
        for col in _BOOL_COLUMNS.get(table, ()):
            if col in encoded:
                encoded[col] = 1 if encoded[col] else 0
        for col in _JSON_COLUMNS.get(table, ()):
            value = encoded.get(col)
            if isinstance(value, (set, frozenset)):
                value = sorted(value)
            if value is not None:
                encoded[col] = json.dumps(value, default=str)
        return encoded

    def _decode(self, table: str, row) -> dict:
        decoded = {k: row[k] for k in row.keys()}
        for col in _BOOL_COLUMNS.get(table, ()):
            if col in decoded:
                decoded[col] = bool(decoded[col])
        for col in _JSON_COLUMNS.get(table, ()):
            value = decoded.get(col)
            if isinstance(value, str):
                try:
                    decoded[col] = json.loads(value)
                except json.JSONDecodeError:
                    decoded[col] = None
        return decoded
