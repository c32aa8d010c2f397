"""Structured failures raised by the wrapper classes."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlitekit import native

if TYPE_CHECKING:
    from sqlitekit.database import Database


class SqlitekitError(Exception):
    """Base class for everything this package raises on purpose."""


class EngineError(SqlitekitError):
    """The engine reported a non-success status.

    Built either from a literal message or from a live ``Database``, in
    which case the engine's diagnostic text for that handle is captured at
    construction time. The snapshot never changes afterwards.
    """

    def __init__(self, source: str | Database, code: int | None = None) -> None:
        """Capture the message and status code."""
        if isinstance(source, str):
            message = source
        else:
            last_code = source.error_code()
            if code is None or code == last_code:
                message = source.error_msg()
                code = last_code
            else:
                # The handle's last message belongs to a different call
                message = native.errstr(code)
        super().__init__(message)
        self.message = message
        self.code = code

    def __repr__(self) -> str:
        return f"EngineError({self.message!r}, code={self.code})"


class UsageFault(SqlitekitError):
    """The caller broke an API precondition. Not a recoverable condition."""
