"""Statements that produce no result rows."""

import logging

from sqlitekit import native
from sqlitekit.errors import EngineError
from sqlitekit.statement import Statement

logger = logging.getLogger(__name__)


class Command(Statement):
    """A prepared INSERT/UPDATE/DELETE/DDL statement."""

    def raw_execute(self) -> int:
        """Step once. Returns SQLITE_OK on completion, else the raw engine status."""
        rc = self.step()
        if rc == native.SQLITE_DONE:
            rc = native.SQLITE_OK
        return rc

    def execute(self) -> None:
        """Step once, raising EngineError unless the statement completes."""
        rc = self.raw_execute()
        if rc != native.SQLITE_OK:
            raise EngineError(self.db, rc)

    def raw_execute_all(self) -> int:
        """Execute every statement in the source text. Returns the engine status.

        Each following statement is compiled from the remaining text and
        inherits the current bindings by position, so one set of binds
        serves statements that share a placeholder layout. The loop ends
        when no text remains. The first failure stops it; statements
        already executed stay applied.
        """
        rc = self.raw_execute()
        if rc != native.SQLITE_OK:
            return rc

        # Stop on empty text only; sqlite3_complete() is not reliable here
        while self._tail:
            rc, plan, tail = self._compile(self._tail)
            if rc != native.SQLITE_OK:
                return rc
            if plan is None:
                # Nothing but whitespace or comments was left
                self._tail = ""
                break

            rc = self._lib.sqlite3_transfer_bindings(self._plan, plan)
            if rc != native.SQLITE_OK:
                self._lib.sqlite3_finalize(plan)
                return rc

            self._lib.sqlite3_finalize(self._plan)
            self._plan = plan
            logger.debug("Executing next statement of %r", self._sql)
            self._tail = tail

            rc = self.raw_execute()
            if rc != native.SQLITE_OK:
                return rc

        return rc

    def execute_all(self) -> None:
        """Execute every statement in the source text, raising EngineError on failure."""
        rc = self.raw_execute_all()
        if rc != native.SQLITE_OK:
            raise EngineError(self.db, rc)
