"""SQLite schema creation and migration for the block graph archive."""

import sqlite3

SCHEMA_VERSION = 1

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS pages (
    uid TEXT PRIMARY KEY,
    title TEXT NOT NULL UNIQUE,
    source TEXT NOT NULL,
    created INTEGER NOT NULL DEFAULT 0,
    modified INTEGER NOT NULL DEFAULT 0,
    block_count INTEGER DEFAULT 0
);

CREATE TABLE IF NOT EXISTS blocks (
    uid TEXT PRIMARY KEY,
    page_uid TEXT NOT NULL,
    parent_uid TEXT,
    content TEXT NOT NULL DEFAULT '',
    created INTEGER NOT NULL,
    modified INTEGER NOT NULL,
    sort_order INTEGER NOT NULL,
    depth INTEGER NOT NULL,
    child_count INTEGER DEFAULT 0,
    FOREIGN KEY (page_uid) REFERENCES pages(uid)
);

CREATE INDEX IF NOT EXISTS idx_blocks_page ON blocks(page_uid);
CREATE INDEX IF NOT EXISTS idx_blocks_parent ON blocks(parent_uid);
CREATE INDEX IF NOT EXISTS idx_blocks_modified ON blocks(modified DESC);

CREATE TABLE IF NOT EXISTS refs (
    block_uid TEXT NOT NULL,
    target_uid TEXT NOT NULL,
    PRIMARY KEY (block_uid, target_uid)
);

CREATE INDEX IF NOT EXISTS idx_refs_target ON refs(target_uid);

CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS sync_state (
    source TEXT PRIMARY KEY,
    last_import_at INTEGER,
    source_hash TEXT
);
"""


def create_schema(conn: sqlite3.Connection) -> None:
    """Create all tables and indexes."""
    conn.executescript(_SCHEMA_SQL)
    set_metadata(conn, "schema_version", str(SCHEMA_VERSION))


def get_schema_version(conn: sqlite3.Connection) -> int | None:
    """Return the current schema version, or None if metadata table doesn't exist."""
    try:
        row = conn.execute(
            "SELECT value FROM metadata WHERE key = 'schema_version'"
        ).fetchone()
    except sqlite3.OperationalError:
        return None
    return int(row[0]) if row else None


def migrate_schema(conn: sqlite3.Connection) -> None:
    """Create or migrate the database schema to the latest version."""
    version = get_schema_version(conn)
    if version is None:
        create_schema(conn)


def get_metadata(conn: sqlite3.Connection, key: str) -> str | None:
    row = conn.execute("SELECT value FROM metadata WHERE key = ?", (key,)).fetchone()
    return row[0] if row else None


def set_metadata(conn: sqlite3.Connection, key: str, value: str) -> None:
    conn.execute("INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)", (key, value))
    conn.commit()
