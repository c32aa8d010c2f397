"""Connection handle: one native session with a deterministic lifetime.

The handle is closed by ``close()``, by leaving a ``with`` block, or when
the object is collected. Only ``close()`` raises; the implicit paths log
failures instead.
"""

from __future__ import annotations

import ctypes
import logging
from collections.abc import Callable
from typing import Any

from sqlitekit import native
from sqlitekit.errors import EngineError, UsageFault
from sqlitekit.models.settings import ConnectionSettings

logger = logging.getLogger(__name__)

BusyHandler = Callable[[int], bool]
CommitHandler = Callable[[], bool | None]
RollbackHandler = Callable[[], None]
UpdateHandler = Callable[[int, str, str, int], None]
AuthorizeHandler = Callable[[int, str | None, str | None, str | None, str | None], int]

_DEFAULT_FLAGS = native.SQLITE_OPEN_READWRITE | native.SQLITE_OPEN_CREATE

# hook kind -> (native registration function, callback prototype)
_REGISTRARS: dict[str, tuple[str, Any]] = {
    "busy": ("sqlite3_busy_handler", native.BUSY_HANDLER),
    "commit": ("sqlite3_commit_hook", native.COMMIT_HOOK),
    "rollback": ("sqlite3_rollback_hook", native.ROLLBACK_HOOK),
    "update": ("sqlite3_update_hook", native.UPDATE_HOOK),
    "authorize": ("sqlite3_set_authorizer", native.AUTHORIZER),
}


def _quote(value: str) -> str:
    """Render a Python string as an SQL string literal."""
    return "'" + value.replace("'", "''") + "'"


class Database:
    """A single open database session.

    At most one native handle is held at a time; ``connect`` closes the
    current one before opening another. Statements borrow the connection
    and keep a reference to it, so the object outlives them.
    """

    def __init__(
        self, name: str | None = None, *, flags: int | None = None, vfs: str | None = None
    ) -> None:
        """Open ``name`` immediately when given."""
        self._lib = native.load_library()
        self._handle: ctypes.c_void_p | None = None
        self._hooks: dict[str, tuple[Callable[..., Any], Any]] = {}
        self._open_error = ""
        self.name: str | None = None
        if name is not None:
            rc = self.connect(name, flags=flags, vfs=vfs)
            if rc != native.SQLITE_OK:
                raise EngineError(f"can't connect database: {self._open_error}", rc)

    @classmethod
    def from_settings(cls, settings: ConnectionSettings) -> Database:
        """Open a connection described by a ``ConnectionSettings``."""
        db = cls(settings.path, flags=settings.open_flags(), vfs=settings.vfs)
        if settings.busy_timeout_ms:
            rc = db.set_busy_timeout(settings.busy_timeout_ms)
            if rc != native.SQLITE_OK:
                raise EngineError(db, rc)
        return db

    # -- Lifetime --

    @property
    def handle(self) -> ctypes.c_void_p | None:
        """The native connection handle, or None when closed."""
        return self._handle

    @property
    def is_open(self) -> bool:
        """True while a native handle is held."""
        return self._handle is not None

    def connect(self, name: str, flags: int | None = None, vfs: str | None = None) -> int:
        """Open ``name``, closing any current handle first. Returns the engine status.

        When the current handle cannot be closed (statements are still
        open), that status is returned and the current handle is kept.
        """
        rc = self.disconnect()
        if rc != native.SQLITE_OK:
            return rc

        if flags is None:
            flags = _DEFAULT_FLAGS
            if name.startswith("file:"):
                flags |= native.SQLITE_OPEN_URI

        handle = ctypes.c_void_p()
        rc = self._lib.sqlite3_open_v2(
            name.encode("utf-8"),
            ctypes.byref(handle),
            flags,
            vfs.encode("utf-8") if vfs else None,
        )
        if rc != native.SQLITE_OK:
            if handle.value:
                self._open_error = native.decode(self._lib.sqlite3_errmsg(handle)) or ""
                # A failed open still allocates a handle that must be released
                self._lib.sqlite3_close(handle)
            else:
                self._open_error = native.errstr(rc)
            logger.debug("Failed to open %s: %s", name, self._open_error)
            return rc

        self._handle = handle
        self.name = name
        logger.debug("Opened database %s", name)
        return rc

    def disconnect(self) -> int:
        """Close the native handle. Returns the engine status.

        The handle is kept when the engine refuses to close it.
        """
        if self._handle is None:
            return native.SQLITE_OK
        rc = self._lib.sqlite3_close(self._handle)
        if rc == native.SQLITE_OK:
            self._handle = None
            self._hooks.clear()
            logger.debug("Closed database %s", self.name)
        return rc

    def close(self) -> None:
        """Close the connection, raising EngineError on failure."""
        rc = self.disconnect()
        if rc != native.SQLITE_OK:
            raise EngineError(self, rc)

    def _release(self) -> None:
        """Implicit close used by scope exit and collection. Never raises."""
        handle = getattr(self, "_handle", None)
        if handle is None:
            return
        for kind in list(self._hooks):
            register, prototype = _REGISTRARS[kind]
            getattr(self._lib, register)(handle, prototype(), None)
        self._hooks.clear()
        # close_v2 defers the release until outstanding statements are finalized
        rc = self._lib.sqlite3_close_v2(handle)
        self._handle = None
        if rc != native.SQLITE_OK:
            logger.warning("Implicit close of %s failed: %s", self.name, native.errstr(rc))

    def __enter__(self) -> Database:
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self._release()

    def __del__(self) -> None:
        self._release()

    # -- Execution --

    def raw_execute(self, sql: str) -> int:
        """Run one or more statements. Returns the engine status."""
        if self._handle is None:
            return native.SQLITE_MISUSE
        return self._lib.sqlite3_exec(self._handle, sql.encode("utf-8"), None, None, None)

    def execute(self, sql: str) -> None:
        """Run one or more statements, raising EngineError on failure."""
        rc = self.raw_execute(sql)
        if rc != native.SQLITE_OK:
            raise EngineError(self, rc)

    def attach(self, path: str, alias: str) -> None:
        """Attach another database file under ``alias``."""
        self.execute(f"ATTACH {_quote(path)} AS {_quote(alias)}")

    def detach(self, alias: str) -> None:
        """Detach a previously attached database."""
        self.execute(f"DETACH {_quote(alias)}")

    # -- State --

    def last_insert_rowid(self) -> int:
        """Rowid of the most recent successful INSERT on this connection."""
        return self._lib.sqlite3_last_insert_rowid(self._require_handle())

    def changes(self) -> int:
        """Rows modified by the most recent INSERT, UPDATE or DELETE."""
        return self._lib.sqlite3_changes(self._require_handle())

    @property
    def in_transaction(self) -> bool:
        """True while an explicit transaction is open."""
        if self._handle is None:
            return False
        return self._lib.sqlite3_get_autocommit(self._handle) == 0

    def error_code(self) -> int:
        """Status code of the most recent failed call on this connection."""
        if self._handle is None:
            return native.SQLITE_MISUSE
        return self._lib.sqlite3_errcode(self._handle)

    def error_msg(self) -> str:
        """Diagnostic text for the most recent failed call on this connection."""
        if self._handle is None:
            return "database is not open"
        return native.decode(self._lib.sqlite3_errmsg(self._handle)) or ""

    def set_busy_timeout(self, ms: int) -> int:
        """Sleep-and-retry on locks for up to ``ms`` milliseconds.

        Replaces any installed busy handler.
        """
        rc = self._lib.sqlite3_busy_timeout(self._require_handle(), ms)
        self._hooks.pop("busy", None)
        return rc

    def _require_handle(self) -> ctypes.c_void_p:
        if self._handle is None:
            raise UsageFault("database is not open")
        return self._handle

    # -- Hooks --

    def _install(self, kind: str, handler: Callable[..., Any] | None, trampoline: Any) -> None:
        """Register ``trampoline`` natively and keep it alive while installed.

        A None trampoline registers a NULL callback, which disables the hook.
        """
        register, prototype = _REGISTRARS[kind]
        if trampoline is None:
            trampoline = prototype()
        getattr(self._lib, register)(self._require_handle(), trampoline, None)
        if handler is None:
            self._hooks.pop(kind, None)
        else:
            self._hooks[kind] = (handler, trampoline)

    def set_busy_handler(self, handler: BusyHandler | None) -> None:
        """Install ``handler(count)``; a truthy result asks the engine to retry."""
        trampoline = None
        if handler is not None:

            def busy(_ctx: int | None, count: int) -> int:
                try:
                    return 1 if handler(count) else 0
                except Exception:
                    logger.exception("Busy handler raised, giving up on the lock")
                    return 0

            trampoline = native.BUSY_HANDLER(busy)
        self._install("busy", handler, trampoline)

    def set_commit_handler(self, handler: CommitHandler | None) -> None:
        """Install ``handler()``; a truthy result turns the commit into a rollback."""
        trampoline = None
        if handler is not None:

            def commit(_ctx: int | None) -> int:
                try:
                    return 1 if handler() else 0
                except Exception:
                    logger.exception("Commit handler raised, rolling back")
                    return 1

            trampoline = native.COMMIT_HOOK(commit)
        self._install("commit", handler, trampoline)

    def set_rollback_handler(self, handler: RollbackHandler | None) -> None:
        """Install ``handler()``, called whenever a transaction rolls back."""
        trampoline = None
        if handler is not None:

            def rollback(_ctx: int | None) -> None:
                try:
                    handler()
                except Exception:
                    logger.exception("Rollback handler raised")

            trampoline = native.ROLLBACK_HOOK(rollback)
        self._install("rollback", handler, trampoline)

    def set_update_handler(self, handler: UpdateHandler | None) -> None:
        """Install ``handler(op, db_name, table, rowid)`` for row changes.

        ``op`` is one of ``SQLITE_INSERT``, ``SQLITE_UPDATE``, ``SQLITE_DELETE``.
        """
        trampoline = None
        if handler is not None:

            def update(
                _ctx: int | None, op: int, db_name: bytes, table: bytes, rowid: int
            ) -> None:
                try:
                    handler(op, native.decode(db_name) or "", native.decode(table) or "", rowid)
                except Exception:
                    logger.exception("Update handler raised")

            trampoline = native.UPDATE_HOOK(update)
        self._install("update", handler, trampoline)

    def set_authorize_handler(self, handler: AuthorizeHandler | None) -> None:
        """Install ``handler(action, arg1, arg2, db_name, trigger)`` for statement compilation.

        Return ``SQLITE_OK``, ``SQLITE_DENY`` or ``SQLITE_IGNORE``.
        """
        trampoline = None
        if handler is not None:

            def authorize(
                _ctx: int | None,
                action: int,
                arg1: bytes | None,
                arg2: bytes | None,
                db_name: bytes | None,
                trigger: bytes | None,
            ) -> int:
                try:
                    return int(
                        handler(
                            action,
                            native.decode(arg1),
                            native.decode(arg2),
                            native.decode(db_name),
                            native.decode(trigger),
                        )
                    )
                except Exception:
                    logger.exception("Authorizer raised, denying action %d", action)
                    return native.SQLITE_DENY

            trampoline = native.AUTHORIZER(authorize)
        self._install("authorize", handler, trampoline)
