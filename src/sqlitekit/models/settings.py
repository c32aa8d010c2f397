"""Connection settings model."""

from pydantic import BaseModel, Field

from sqlitekit import native
from sqlitekit.config import get_busy_timeout_ms, get_db_path, is_read_only


class ConnectionSettings(BaseModel):
    """How to open one database connection."""

    path: str = ":memory:"
    read_only: bool = False
    create: bool = True
    uri: bool = False
    vfs: str | None = None
    busy_timeout_ms: int = Field(default=0, ge=0)

    @classmethod
    def from_env(cls) -> "ConnectionSettings":
        """Build settings from SQLITEKIT_* environment variables."""
        return cls(
            path=get_db_path(),
            read_only=is_read_only(),
            busy_timeout_ms=get_busy_timeout_ms(),
        )

    def open_flags(self) -> int:
        """Translate the settings into sqlite3_open_v2 flags."""
        if self.read_only:
            flags = native.SQLITE_OPEN_READONLY
        else:
            flags = native.SQLITE_OPEN_READWRITE
            if self.create:
                flags |= native.SQLITE_OPEN_CREATE
        if self.uri or self.path.startswith("file:"):
            flags |= native.SQLITE_OPEN_URI
        return flags
