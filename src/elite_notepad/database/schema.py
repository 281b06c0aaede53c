"""Database schema definition, initialization, and migrations."""

SCHEMA_VERSION = 2

# Each statement is a separate string to avoid executescript issues
_SCHEMA_STATEMENTS = [
    # Teams, keyed by the caller-assigned id
    """CREATE TABLE IF NOT EXISTS teams (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        team_name TEXT NOT NULL DEFAULT '',
        admin_email TEXT NOT NULL DEFAULT '',
        logo TEXT,
        created_at TEXT NOT NULL DEFAULT '',
        last_backup TEXT,
        is_yearly INTEGER NOT NULL DEFAULT 0,
        is_plus INTEGER NOT NULL DEFAULT 0
    )""",

    # Members.  team_id is deliberately not a foreign key: orphaned
    # members are kept for display.
    """CREATE TABLE IF NOT EXISTS members (
        id TEXT PRIMARY KEY,
        team_id TEXT NOT NULL DEFAULT '',
        user_id TEXT NOT NULL,
        email TEXT NOT NULL DEFAULT '',
        phone TEXT NOT NULL DEFAULT '',
        telegram TEXT,
        twofa_secret TEXT,
        password TEXT,
        e_pass TEXT,
        g_pass TEXT,
        join_date TEXT,
        is_paid INTEGER NOT NULL DEFAULT 0,
        paid_amount REAL,
        pending_amount REAL,
        subscriptions TEXT,
        is_pushed INTEGER NOT NULL DEFAULT 0,
        active_team_id TEXT,
        created_at TEXT NOT NULL DEFAULT ''
    )""",

    # Pending remote mutations.  AUTOINCREMENT keeps ids monotonic and
    # never reused, which makes id order the replay order.
    """CREATE TABLE IF NOT EXISTS sync_queue (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        table_name TEXT NOT NULL CHECK (table_name IN ('teams', 'members')),
        operation TEXT NOT NULL
            CHECK (operation IN ('insert', 'update', 'delete')),
        record_id TEXT NOT NULL,
        payload TEXT NOT NULL DEFAULT '{}',
        user_id TEXT NOT NULL,
        created_at TEXT NOT NULL
    )""",

    # Singleton key/value pairs (last_sync, ...)
    """CREATE TABLE IF NOT EXISTS meta (
        key TEXT PRIMARY KEY,
        value TEXT
    )""",

    # Schema version tracking
    """CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # ── Indexes ──────────────────────────────────────────────────
    "CREATE INDEX IF NOT EXISTS idx_teams_user ON teams(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_members_user ON members(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_members_team ON members(team_id)",
    "CREATE INDEX IF NOT EXISTS idx_sync_queue_user ON sync_queue(user_id)",

    # Record schema version
    f"INSERT OR IGNORE INTO schema_version (version) VALUES ({SCHEMA_VERSION})",
]


def _get_schema_version(conn) -> int:
    """Get the current schema version, or 0 if no schema exists."""
    try:
        row = conn.execute(
            "SELECT MAX(version) as v FROM schema_version"
        ).fetchone()
        return row["v"] if row and row["v"] else 0
    except Exception:
        return 0


# ── Migration from v1 → v2 ──────────────────────────────────────
_MIGRATION_V2_STATEMENTS = [
    # Pushed members are excluded from expiry checks
    "ALTER TABLE members ADD COLUMN is_pushed INTEGER NOT NULL DEFAULT 0",

    # Back-reference to the team a member was moved into
    "ALTER TABLE members ADD COLUMN active_team_id TEXT",

    # Update schema version
    "INSERT OR REPLACE INTO schema_version (version) VALUES (2)",
]


def _migrate_v1_to_v2(conn):
    """Upgrade schema from v1 to v2."""
    for stmt in _MIGRATION_V2_STATEMENTS:
        conn.execute(stmt)


def initialize_database(db_connection) -> int:
    """Create all tables and indexes, or migrate an older database.

    On a fresh database, creates the full schema directly.  On an
    existing database, applies migrations incrementally; migrations
    only add columns, so existing rows survive.  Returns the schema
    version the database ends up at.
    """
    with db_connection.get_connection() as conn:
        version = _get_schema_version(conn)

        if version == 0:
            # Fresh database: create full schema
            for stmt in _SCHEMA_STATEMENTS:
                conn.execute(stmt)
        elif version < SCHEMA_VERSION:
            # Existing database: apply migrations
            if version < 2:
                _migrate_v1_to_v2(conn)

        return _get_schema_version(conn)
