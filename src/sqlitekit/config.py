"""Environment-variable-based configuration."""

import os


def get_library_path() -> str | None:
    """Return an explicit SQLite shared library path from SQLITEKIT_LIBRARY."""
    raw = os.environ.get("SQLITEKIT_LIBRARY", "").strip()
    return raw or None


def get_db_path() -> str:
    """Return the database name from SQLITEKIT_DB_PATH."""
    return os.environ.get("SQLITEKIT_DB_PATH", ":memory:")


def get_busy_timeout_ms() -> int:
    """Return the busy timeout in milliseconds from SQLITEKIT_BUSY_TIMEOUT_MS."""
    return int(os.environ.get("SQLITEKIT_BUSY_TIMEOUT_MS", "0"))


def is_read_only() -> bool:
    """Return True if SQLITEKIT_READ_ONLY is set to TRUE."""
    return os.environ.get("SQLITEKIT_READ_ONLY", "").upper() == "TRUE"
