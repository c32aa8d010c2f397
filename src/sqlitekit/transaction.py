"""Scope-bound transaction guard."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from sqlitekit import native
from sqlitekit.errors import EngineError

if TYPE_CHECKING:
    from sqlitekit.database import Database

logger = logging.getLogger(__name__)


class Transaction:
    """Opens a transaction on construction and resolves it exactly once.

    ``commit()`` and ``rollback()`` resolve explicitly and hand back the
    engine status. Otherwise the guard resolves when its ``with`` block
    exits, or when it is collected, using the disposition chosen at
    construction (rollback unless ``commit=True``). A ``with`` block that
    exits with an exception always rolls back.

    Failure of that implicit resolution is handled in two ways:

    - On ``with`` exit an EngineError is raised. If another exception is
      already propagating, Python chains the two, so nothing is lost.
    - On collection no exception can reach the caller. A critical record is
      logged and the process aborts rather than leave a transaction open
      that nobody knows about.

    Nesting guards on one connection is not supported; the inner ``BEGIN``
    fails with EngineError.
    """

    def __init__(self, db: Database, commit: bool = False, reserve: bool = False) -> None:
        """Issue BEGIN, or BEGIN IMMEDIATE when ``reserve`` is set.

        ``reserve`` takes the write lock up front, so lock contention fails
        here rather than at the first write.
        """
        self._db: Database | None = None
        self._commit = commit
        rc = db.raw_execute("BEGIN IMMEDIATE" if reserve else "BEGIN")
        if rc != native.SQLITE_OK:
            raise EngineError(db, rc)
        self._db = db

    @property
    def resolved(self) -> bool:
        return self._db is None

    def commit(self) -> int:
        """Commit and resolve the guard. Returns the engine status."""
        return self._resolve("COMMIT")

    def rollback(self) -> int:
        """Roll back and resolve the guard. Returns the engine status."""
        return self._resolve("ROLLBACK")

    def _resolve(self, directive: str) -> int:
        db, self._db = self._db, None
        if db is None:
            return native.SQLITE_OK
        return db.raw_execute(directive)

    def _resolve_implicitly(self, db: Database, directive: str) -> int:
        if directive == "ROLLBACK" and not db.in_transaction:
            # The engine already rolled back on its own (e.g. after SQLITE_FULL)
            self._db = None
            logger.debug("Transaction already closed by the engine")
            return native.SQLITE_OK
        return self._resolve(directive)

    def __enter__(self) -> Transaction:
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        db = self._db
        if db is None:
            return
        # An exception in the block always discards its work
        directive = "COMMIT" if self._commit and exc_type is None else "ROLLBACK"
        rc = self._resolve_implicitly(db, directive)
        if rc != native.SQLITE_OK:
            logger.error("Implicit %s failed: %s", directive, db.error_msg())
            raise EngineError(db, rc)

    def __del__(self) -> None:
        db = getattr(self, "_db", None)
        if db is None:
            return
        directive = "COMMIT" if self._commit else "ROLLBACK"
        rc = self._resolve_implicitly(db, directive)
        if rc != native.SQLITE_OK:
            logger.critical(
                "Implicit %s failed during cleanup, aborting: %s", directive, db.error_msg()
            )
            os.abort()
