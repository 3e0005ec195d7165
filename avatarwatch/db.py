"""SQLite database with WAL mode for session and message records.

SQLite with WAL mode supports:
- Multiple concurrent readers (the Flask request threads)
- Single writer (the sync worker and lifecycle actions), which doesn't block readers
"""

import sqlite3
import threading
from contextlib import contextmanager

from avatarwatch import config

# Thread-local storage for reader connections
_local = threading.local()

# Single writer connection (protected by lock)
_writer_lock = threading.RLock()
_writer_conn = None

# Readers opened by any thread, so reset_connections() can close them all
_readers: list[sqlite3.Connection] = []
_readers_lock = threading.Lock()


def get_writer() -> sqlite3.Connection:
    """Get the serialized writer connection.

    Use this for INSERT, UPDATE, DELETE, or DDL statements.
    """
    global _writer_conn
    with _writer_lock:
        if _writer_conn is None:
            config.DB_PATH.parent.mkdir(parents=True, exist_ok=True)
            _writer_conn = _connect()
            _init_schema(_writer_conn)
        return _writer_conn


def get_reader() -> sqlite3.Connection:
    """Get a reader connection for this thread.

    Each thread gets its own reader. Uses autocommit so each query sees
    the latest committed WAL data without holding a stale snapshot.
    """
    if not hasattr(_local, "reader"):
        # Schema must exist before the first read
        get_writer()
        _local.reader = _connect(autocommit=True)
        with _readers_lock:
            _readers.append(_local.reader)
    return _local.reader


def get_conn() -> sqlite3.Connection:
    """Returns this thread's reader."""
    return get_reader()


def reset_connections():
    """Close every cached connection so the next call reopens at config.DB_PATH."""
    global _writer_conn, _local
    with _writer_lock:
        if _writer_conn is not None:
            _writer_conn.close()
            _writer_conn = None
    with _readers_lock:
        for conn in _readers:
            conn.close()
        _readers.clear()
    _local = threading.local()


def _connect(autocommit: bool = False) -> sqlite3.Connection:
    """Create a SQLite connection with WAL and foreign keys enabled."""
    conn = sqlite3.connect(
        str(config.DB_PATH),
        check_same_thread=False,  # Allow use across threads
        timeout=30.0,
        isolation_level=None if autocommit else "",
    )

    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")
    conn.execute("PRAGMA busy_timeout=30000")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.execute("PRAGMA temp_store=MEMORY")

    return conn


def _migrate_add_columns(conn: sqlite3.Connection, table: str, columns: list):
    """Add columns to table if they don't exist (safe migration)."""
    existing = {row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()}
    for col_name, col_type in columns:
        if col_name not in existing:
            conn.execute(f"ALTER TABLE {table} ADD COLUMN {col_name} {col_type}")


def _in_check(column: str, allowed, nullable: bool = False) -> str:
    values = ", ".join(f"'{v}'" for v in allowed)
    check = f"{column} IN ({values})"
    if nullable:
        check = f"{column} IS NULL OR {check}"
    return check


def _init_schema(conn: sqlite3.Connection):
    """Initialize database schema."""

    conn.execute(f"""
        CREATE TABLE IF NOT EXISTS sessions (
            id TEXT PRIMARY KEY,
            session_id TEXT UNIQUE NOT NULL,
            start_time TIMESTAMP NOT NULL,
            end_time TIMESTAMP,
            status TEXT NOT NULL DEFAULT 'active' CHECK ({_in_check("status", config.SESSION_STATUSES)}),
            heygen_status TEXT CHECK ({_in_check("heygen_status", config.SESSION_STATUSES, nullable=True)}),
            last_sync_at TIMESTAMP,
            created_at TIMESTAMP NOT NULL,
            updated_at TIMESTAMP NOT NULL,
            is_relevant INTEGER NOT NULL DEFAULT 0,
            is_archived INTEGER NOT NULL DEFAULT 0,
            deleted_at TIMESTAMP DEFAULT NULL
        )
    """)

    conn.execute(f"""
        CREATE TABLE IF NOT EXISTS messages (
            id TEXT PRIMARY KEY,
            session_id TEXT NOT NULL
                REFERENCES sessions(session_id) ON DELETE CASCADE,
            sender TEXT NOT NULL CHECK ({_in_check("sender", config.MESSAGE_SENDERS)}),
            message TEXT NOT NULL,
            timestamp TIMESTAMP NOT NULL,
            created_at TIMESTAMP NOT NULL
        )
    """)

    # Migrate: databases created before lifecycle flags and provider tracking
    _migrate_add_columns(conn, "sessions", [
        ("heygen_status", "TEXT"),
        ("last_sync_at", "TIMESTAMP"),
        ("is_relevant", "INTEGER NOT NULL DEFAULT 0"),
        ("is_archived", "INTEGER NOT NULL DEFAULT 0"),
        ("deleted_at", "TIMESTAMP DEFAULT NULL"),
    ])

    conn.execute("CREATE INDEX IF NOT EXISTS idx_sessions_status ON sessions(status)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_sessions_start_time ON sessions(start_time)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_sessions_is_relevant ON sessions(is_relevant)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_sessions_is_archived ON sessions(is_archived)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_sessions_deleted_at ON sessions(deleted_at)")
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_messages_session ON messages(session_id, timestamp)"
    )

    # Hard delete sessions that have been in the trash past the retention window.
    # Recreated on every start so a changed retention setting takes effect.
    retention = f"'-{int(config.TRASH_RETENTION_DAYS)} days'"
    for event in ("INSERT", "UPDATE"):
        name = f"trg_purge_trash_after_{event.lower()}"
        conn.execute(f"DROP TRIGGER IF EXISTS {name}")
        conn.execute(f"""
            CREATE TRIGGER {name}
            AFTER {event} ON sessions
            BEGIN
                DELETE FROM sessions
                WHERE deleted_at IS NOT NULL
                  AND julianday(deleted_at) < julianday('now', {retention});
            END
        """)

    conn.commit()


@contextmanager
def write_transaction():
    """Hold the writer lock for a multi-statement write; commit or roll back."""
    with _writer_lock:
        writer = get_writer()
        try:
            yield writer
            writer.commit()
        except Exception:
            writer.rollback()
            raise


def execute_write(sql: str, params=None):
    """Execute a write query with proper locking."""
    with _writer_lock:
        writer = get_writer()
        try:
            if params:
                result = writer.execute(sql, params)
            else:
                result = writer.execute(sql)
            writer.commit()
        except Exception:
            writer.rollback()
            raise
        return result


def execute_read(sql: str, params=None):
    """Execute a read query using a reader connection."""
    reader = get_reader()
    if params:
        return reader.execute(sql, params)
    return reader.execute(sql)
