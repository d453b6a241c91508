"""Database schema for the laterr local SQLite image.

Contains:
- Schema DDL constant (SCHEMA)
- Schema version tracking (SCHEMA_VERSION)
- Table allowlist and identifier validation
- Idempotent schema creation (ensure_schema)
"""

import logging
import re
import sqlite3

from ..errors import QueryError, SchemaError

logger = logging.getLogger(__name__)

# Schema version for migrations
SCHEMA_VERSION = 1

# Tables created by ensure_schema
ALLOWED_TABLES = frozenset(
    {
        "users",
        "sessions",
        "categories",
        "items",
        "tag_icons",
        "schema_version",
    }
)

# Item "type" values; a link is stored as "url"
ITEM_TYPES = ("url", "note", "image", "document", "file", "video")

_ITEM_TYPE_SQL = ", ".join("'" + t + "'" for t in ITEM_TYPES)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def validate_table_name(table: str) -> str:
    """Validate table name against allowlist to prevent SQL injection.

    Raises:
        ValueError: If table name is not in allowlist
    """
    if table not in ALLOWED_TABLES:
        raise ValueError(f"Invalid table name: {table}")
    return table


def validate_identifier(name: str) -> str:
    """Check that ``name`` is a plain SQL identifier.

    Table and column names are interpolated into SQL text (they cannot be bound
    parameters), so anything else is rejected. Unknown but well-formed table
    names are allowed through; the engine reports them as missing tables.
    """
    if not isinstance(name, str) or not _IDENTIFIER_RE.match(name):
        raise QueryError(f"Invalid identifier: {name!r}")
    return name


_NOW = "(strftime('%Y-%m-%dT%H:%M:%f+00:00', 'now'))"

SCHEMA = f"""
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

-- Local accounts
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT UNIQUE NOT NULL,
    password_hash TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT {_NOW},
    updated_at TEXT NOT NULL DEFAULT {_NOW}
);

-- Issued session tokens
CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    token TEXT NOT NULL,
    expires_at TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT {_NOW},
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_sessions_user_id ON sessions(user_id);
CREATE INDEX IF NOT EXISTS idx_sessions_token ON sessions(token);

-- Categories
CREATE TABLE IF NOT EXISTS categories (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    color TEXT DEFAULT '#8B9A7F',
    user_id TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT {_NOW},
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_categories_user_id ON categories(user_id);

-- Saved items (links, notes, files)
CREATE TABLE IF NOT EXISTS items (
    id TEXT PRIMARY KEY,
    type TEXT NOT NULL CHECK (type IN ({_ITEM_TYPE_SQL})),
    title TEXT NOT NULL,
    content TEXT,
    summary TEXT,
    tags TEXT,       -- JSON array
    category_id TEXT,
    preview_image_url TEXT,
    user_notes TEXT,
    user_id TEXT NOT NULL,
    embedding TEXT,  -- JSON array of floats
    created_at TEXT NOT NULL DEFAULT {_NOW},
    updated_at TEXT NOT NULL DEFAULT {_NOW},
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
    FOREIGN KEY (category_id) REFERENCES categories(id) ON DELETE SET NULL
);
CREATE INDEX IF NOT EXISTS idx_items_user_id ON items(user_id);
CREATE INDEX IF NOT EXISTS idx_items_category_id ON items(category_id);
CREATE INDEX IF NOT EXISTS idx_items_created_at ON items(created_at);
CREATE INDEX IF NOT EXISTS idx_items_type ON items(type);

-- Custom icons per tag
CREATE TABLE IF NOT EXISTS tag_icons (
    id TEXT PRIMARY KEY,
    tag_name TEXT NOT NULL,
    icon_url TEXT NOT NULL,
    user_id TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT {_NOW},
    UNIQUE (tag_name, user_id),
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_tag_icons_user_id ON tag_icons(user_id);
"""


def schema_exists(conn: sqlite3.Connection) -> bool:
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='users'"
    ).fetchone()
    return row is not None


def ensure_schema(conn: sqlite3.Connection) -> bool:
    """Create tables and indexes unless they already exist.

    Args:
        conn: Engine connection.

    Returns:
        True if the schema was created, False if it was already present.

    Raises:
        SchemaError: Any engine failure other than "already exists".
    """
    try:
        if schema_exists(conn):
            row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
            if row is not None and row[0] != SCHEMA_VERSION:
                logger.warning(
                    f"Stored schema version {row[0]} differs from {SCHEMA_VERSION}"
                )
            return False

        conn.executescript(SCHEMA)
        conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
        conn.commit()
    except sqlite3.OperationalError as e:
        if "already exists" in str(e).lower():
            return False
        raise SchemaError(f"Could not create schema: {e}") from e
    except sqlite3.Error as e:
        raise SchemaError(f"Could not create schema: {e}") from e

    logger.info(f"Created local schema v{SCHEMA_VERSION}")
    return True


def table_columns(conn: sqlite3.Connection, table: str) -> frozenset:
    """Column names of ``table`` (empty if the table does not exist)."""
    validate_identifier(table)
    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return frozenset(r[1] for r in rows)
