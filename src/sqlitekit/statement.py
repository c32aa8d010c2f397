"""Prepared statement lifecycle and parameter binding."""

from __future__ import annotations

import ctypes
import logging
from collections.abc import Mapping
from enum import Enum, StrEnum
from typing import TYPE_CHECKING

from sqlitekit import native
from sqlitekit.errors import EngineError, UsageFault

if TYPE_CHECKING:
    from sqlitekit.database import Database

logger = logging.getLogger(__name__)

# None binds SQL NULL; every other member maps onto one engine storage class.
Value = int | float | str | bytes | bytearray | memoryview | None

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_UINT64_MAX = 2**64 - 1
_NAME_PREFIXES = (":", "@", "$")


class Ownership(Enum):
    """Who owns the memory behind a text or blob bind."""

    TRANSIENT = "transient"  # engine copies before bind returns
    STATIC = "static"  # engine borrows; the statement pins the buffer


class StatementState(StrEnum):
    """Observable lifecycle state of a prepared statement."""

    UNPREPARED = "unprepared"
    PREPARED = "prepared"
    HAS_ROW = "has_row"
    COMPLETED = "completed"


def _to_int64(value: int) -> int:
    """Fit a Python int into a signed 64-bit slot.

    Unsigned 64-bit values keep their bit pattern, as a C cast would.
    """
    if _INT64_MIN <= value <= _INT64_MAX:
        return value
    if _INT64_MAX < value <= _UINT64_MAX:
        return value - 2**64
    raise OverflowError(f"{value} does not fit in 64 bits")


class Statement:
    """A compiled plan bound to one ``Database``.

    The native plan is either None or exactly one compiled statement.
    ``finish()`` releases it and returns the object to the state it had
    before anything was prepared; a later ``prepare`` starts over.
    """

    def __init__(self, db: Database, sql: str | None = None) -> None:
        """Borrow ``db`` and prepare ``sql`` when given."""
        self.db = db
        self._lib = native.load_library()
        self._plan: ctypes.c_void_p | None = None
        self._sql = ""
        self._tail = ""
        self._pinned: dict[int, bytes] = {}
        self._generation = 0
        self._state = StatementState.UNPREPARED
        if sql is not None:
            self.prepare(sql)

    @property
    def sql(self) -> str:
        """Source text of the current plan, including any unconsumed tail."""
        return self._sql

    @property
    def tail(self) -> str:
        """Text after the first complete statement, if the source held several."""
        return self._tail

    @property
    def state(self) -> StatementState:
        return self._state

    @property
    def is_prepared(self) -> bool:
        return self._plan is not None

    # -- Lifecycle --

    def _compile(self, sql: str) -> tuple[int, ctypes.c_void_p | None, str]:
        """Compile the first statement of ``sql``. Returns (status, plan, tail)."""
        handle = self.db.handle
        if handle is None:
            return native.SQLITE_MISUSE, None, ""
        encoded = sql.encode("utf-8")
        buffer = ctypes.create_string_buffer(encoded, len(encoded) + 1)
        plan = ctypes.c_void_p()
        tail = ctypes.c_void_p()
        rc = self._lib.sqlite3_prepare_v2(
            handle,
            ctypes.cast(buffer, ctypes.c_void_p),
            len(encoded),
            ctypes.byref(plan),
            ctypes.byref(tail),
        )
        if rc != native.SQLITE_OK:
            return rc, None, ""
        offset = tail.value - ctypes.addressof(buffer) if tail.value else len(encoded)
        return rc, plan if plan.value else None, encoded[offset:].decode("utf-8")

    def raw_prepare(self, sql: str) -> int:
        """Finalize any current plan and compile ``sql``. Returns the engine status."""
        previous = self._sql
        rc = self.raw_finish()
        if rc != native.SQLITE_OK:
            # The old plan is gone either way; finalize only echoes its last step
            logger.debug("Discarded plan for %r reported %s", previous, native.errstr(rc))

        rc, plan, tail = self._compile(sql)
        if rc != native.SQLITE_OK:
            return rc
        self._plan = plan
        self._sql = sql
        self._tail = tail
        if plan is not None:
            self._state = StatementState.PREPARED
        return rc

    def prepare(self, sql: str) -> Statement:
        """Compile ``sql``, raising EngineError if the engine rejects it."""
        rc = self.raw_prepare(sql)
        if rc != native.SQLITE_OK:
            raise EngineError(self.db, rc)
        return self

    def raw_finish(self) -> int:
        """Release the plan if there is one. Returns the engine status."""
        rc = native.SQLITE_OK
        if self._plan is not None:
            rc = self._lib.sqlite3_finalize(self._plan)
            self._plan = None
        self._sql = ""
        self._tail = ""
        self._pinned.clear()
        self._generation += 1
        self._state = StatementState.UNPREPARED
        return rc

    def finish(self) -> None:
        """Release the plan, raising EngineError if the engine reports a failure."""
        rc = self.raw_finish()
        if rc != native.SQLITE_OK:
            raise EngineError(self.db, rc)

    def _finish_quietly(self) -> None:
        """Implicit finalize: failures go to the log, never to the caller."""
        if getattr(self, "_plan", None) is None:
            return
        sql = self._sql
        rc = self.raw_finish()
        if rc != native.SQLITE_OK:
            logger.warning(
                "sqlite3_finalize returned an error while executing %r: %s",
                sql,
                native.errstr(rc),
            )

    def __enter__(self) -> Statement:
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self._finish_quietly()

    def __del__(self) -> None:
        self._finish_quietly()

    # -- Execution --

    def step(self) -> int:
        """Advance the plan by one row. Returns the raw engine status."""
        self._generation += 1
        if self._plan is None:
            return native.SQLITE_MISUSE
        rc = self._lib.sqlite3_step(self._plan)
        if rc == native.SQLITE_ROW:
            self._state = StatementState.HAS_ROW
        elif rc == native.SQLITE_DONE:
            self._state = StatementState.COMPLETED
        # A failed step leaves the state as it was; reset() recovers
        return rc

    def reset(self) -> Statement:
        """Rewind to the prepared state, keeping bound values."""
        self._generation += 1
        if self._plan is None:
            return self
        rc = self._lib.sqlite3_reset(self._plan)
        self._state = StatementState.PREPARED
        if rc != native.SQLITE_OK:
            raise EngineError(self.db, rc)
        return self

    def _current_plan(self, generation: int) -> ctypes.c_void_p:
        """Plan for a row cursor taken at ``generation``, if it is still current."""
        if generation != self._generation or self._plan is None:
            raise UsageFault("row cursor is no longer valid; the statement has moved on")
        return self._plan

    def _require_plan(self) -> ctypes.c_void_p:
        if self._plan is None:
            raise UsageFault("statement is not prepared")
        return self._plan

    # -- Binding --

    def parameter_count(self) -> int:
        """Largest parameter index in the current plan."""
        if self._plan is None:
            return 0
        return self._lib.sqlite3_bind_parameter_count(self._plan)

    def parameter_name(self, index: int) -> str | None:
        """Name of the parameter at ``index``, prefix included; None for ``?``."""
        return native.decode(self._lib.sqlite3_bind_parameter_name(self._require_plan(), index))

    def parameter_index(self, name: str) -> int:
        """Resolve a placeholder name to its 1-based index.

        A bare name is tried with each placeholder prefix. Raises UsageFault
        if the plan has no such placeholder.
        """
        if name[:1] in _NAME_PREFIXES or name[:1] == "?":
            candidates = [name]
        else:
            candidates = [prefix + name for prefix in _NAME_PREFIXES]
        if self._plan is not None:
            for candidate in candidates:
                index = self._lib.sqlite3_bind_parameter_index(
                    self._plan, candidate.encode("utf-8")
                )
                if index:
                    return index
        raise UsageFault(f"no parameter named {name!r} in {self._sql!r}")

    def raw_bind(
        self, target: int | str, value: Value, ownership: Ownership = Ownership.TRANSIENT
    ) -> int:
        """Bind ``value`` to a position or placeholder name. Returns the engine status."""
        index = self.parameter_index(target) if isinstance(target, str) else target
        plan = self._plan
        if plan is None:
            return native.SQLITE_MISUSE

        pinned: bytes | None = None
        if value is None:
            rc = self._lib.sqlite3_bind_null(plan, index)
        elif isinstance(value, int):
            rc = self._lib.sqlite3_bind_int64(plan, index, _to_int64(value))
        elif isinstance(value, float):
            rc = self._lib.sqlite3_bind_double(plan, index, value)
        elif isinstance(value, str | bytes | bytearray | memoryview):
            if isinstance(value, str):
                data, binder = value.encode("utf-8"), self._lib.sqlite3_bind_text
            else:
                data, binder = bytes(value), self._lib.sqlite3_bind_blob
            if ownership is Ownership.STATIC:
                rc = binder(plan, index, data, len(data), native.SQLITE_STATIC)
                pinned = data
            else:
                rc = binder(plan, index, data, len(data), native.SQLITE_TRANSIENT)
        else:
            raise TypeError(f"cannot bind value of type {type(value).__name__}")

        # A rejected bind leaves the old value in place, so its pin must stay too
        if rc == native.SQLITE_OK:
            if pinned is None:
                self._pinned.pop(index, None)
            else:
                self._pinned[index] = pinned
        return rc

    def bind(
        self, target: int | str, value: Value, ownership: Ownership = Ownership.TRANSIENT
    ) -> Statement:
        """Bind ``value`` to a 1-based position or placeholder name.

        ``None`` binds SQL NULL. Ints are stored as signed 64-bit; unsigned
        64-bit values keep their bit pattern. With ``Ownership.STATIC`` the
        engine reads the caller's bytes in place and the statement keeps them
        alive until the slot is rebound, cleared, or the plan is finalized.
        """
        rc = self.raw_bind(target, value, ownership)
        if rc != native.SQLITE_OK:
            raise EngineError(self.db, rc)
        return self

    def bind_values(
        self, *values: Value, start: int = 1, ownership: Ownership = Ownership.TRANSIENT
    ) -> Statement:
        """Bind consecutive positions beginning at ``start``."""
        for index, value in enumerate(values, start):
            self.bind(index, value, ownership)
        return self

    def bind_named(
        self, values: Mapping[str, Value], ownership: Ownership = Ownership.TRANSIENT
    ) -> Statement:
        """Bind each placeholder name in ``values``."""
        for name, value in values.items():
            self.bind(name, value, ownership)
        return self

    def clear_bindings(self) -> Statement:
        """Reset every parameter to NULL."""
        if self._plan is not None:
            rc = self._lib.sqlite3_clear_bindings(self._plan)
            if rc != native.SQLITE_OK:
                raise EngineError(self.db, rc)
        self._pinned.clear()
        return self
