"""Tests for schema creation and the v1 -> v2 migration."""

from elite_notepad.database.connection import DatabaseConnection
from elite_notepad.database.schema import SCHEMA_VERSION, initialize_database

_V1_STATEMENTS = [
    """CREATE TABLE teams (
        id TEXT PRIMARY KEY, user_id TEXT NOT NULL,
        team_name TEXT NOT NULL DEFAULT '', admin_email TEXT NOT NULL DEFAULT '',
        logo TEXT, created_at TEXT NOT NULL DEFAULT '', last_backup TEXT,
        is_yearly INTEGER NOT NULL DEFAULT 0, is_plus INTEGER NOT NULL DEFAULT 0
    )""",
    """CREATE TABLE members (
        id TEXT PRIMARY KEY, team_id TEXT NOT NULL DEFAULT '',
        user_id TEXT NOT NULL, email TEXT NOT NULL DEFAULT '',
        phone TEXT NOT NULL DEFAULT '', telegram TEXT, twofa_secret TEXT,
        password TEXT, e_pass TEXT, g_pass TEXT, join_date TEXT,
        is_paid INTEGER NOT NULL DEFAULT 0, paid_amount REAL,
        pending_amount REAL, subscriptions TEXT,
        created_at TEXT NOT NULL DEFAULT ''
    )""",
    """CREATE TABLE sync_queue (
        id INTEGER PRIMARY KEY AUTOINCREMENT, table_name TEXT NOT NULL,
        operation TEXT NOT NULL, record_id TEXT NOT NULL,
        payload TEXT NOT NULL DEFAULT '{}', user_id TEXT NOT NULL,
        created_at TEXT NOT NULL
    )""",
    "CREATE TABLE meta (key TEXT PRIMARY KEY, value TEXT)",
    """CREATE TABLE schema_version (
        version INTEGER PRIMARY KEY,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",
    "INSERT INTO schema_version (version) VALUES (1)",
]


def _columns(db, table):
    return {r["name"] for r in db.execute(f"PRAGMA table_info({table})")}


class TestFreshSchema:
    def test_creates_tables(self, tmp_path):
        db = DatabaseConnection(tmp_path / "fresh.db")
        assert initialize_database(db) == SCHEMA_VERSION
        tables = {
            r["name"] for r in db.execute(
                "SELECT name FROM sqlite_master WHERE type = 'table'"
            )
        }
        assert {"teams", "members", "sync_queue", "meta",
                "schema_version"} <= tables

    def test_members_have_v2_columns(self, tmp_path):
        db = DatabaseConnection(tmp_path / "fresh.db")
        initialize_database(db)
        assert {"is_pushed", "active_team_id"} <= _columns(db, "members")

    def test_initialize_twice_is_noop(self, tmp_path):
        db = DatabaseConnection(tmp_path / "twice.db")
        initialize_database(db)
        assert initialize_database(db) == SCHEMA_VERSION


class TestMigration:
    def test_v1_upgrades_and_keeps_rows(self, tmp_path):
        db = DatabaseConnection(tmp_path / "old.db")
        with db.get_connection() as conn:
            for stmt in _V1_STATEMENTS:
                conn.execute(stmt)
            conn.execute(
                "INSERT INTO teams (id, user_id, team_name) "
                "VALUES ('t1', 'u1', 'Alpha')"
            )
            conn.execute(
                "INSERT INTO members (id, team_id, user_id, email) "
                "VALUES ('m1', 't1', 'u1', 'a@x.com')"
            )

        assert initialize_database(db) == 2
        assert {"is_pushed", "active_team_id"} <= _columns(db, "members")

        rows = db.execute("SELECT * FROM members")
        assert len(rows) == 1
        assert rows[0]["email"] == "a@x.com"
        assert rows[0]["is_pushed"] == 0
        assert rows[0]["active_team_id"] is None
        assert db.execute("SELECT team_name FROM teams")[0]["team_name"] == "Alpha"
