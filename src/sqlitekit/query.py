"""Row-producing statements, lazy iteration and row cursors."""

from __future__ import annotations

import ctypes
from typing import Any

from sqlitekit import native
from sqlitekit.errors import EngineError, UsageFault
from sqlitekit.statement import Statement


def _check_column(lib: ctypes.CDLL, plan: ctypes.c_void_p, index: int) -> ctypes.c_void_p:
    """Return ``plan`` if ``index`` names one of its result columns."""
    count = lib.sqlite3_column_count(plan)
    if not 0 <= index < count:
        raise IndexError(f"column index {index} out of range for {count} columns")
    return plan


def _step(query: Query) -> int:
    """Step ``query``, raising EngineError on anything but a row or the end."""
    rc = query.step()
    if rc not in (native.SQLITE_ROW, native.SQLITE_DONE):
        raise EngineError(query.db, rc)
    return rc


# Python type returned for each dynamic engine type
_NATURAL_KINDS: dict[int, type | None] = {
    native.SQLITE_INTEGER: int,
    native.SQLITE_FLOAT: float,
    native.SQLITE_TEXT: str,
    native.SQLITE_BLOB: bytes,
    native.SQLITE_NULL: None,
}


class Row:
    """Read-only view over the current result row of a statement.

    Nothing is copied: every accessor reads the engine's row buffer. The
    view is valid until the owning statement steps, resets or finishes;
    after that any access raises UsageFault.
    """

    def __init__(self, statement: Statement) -> None:
        self._statement = statement
        self._generation = statement._generation

    def _plan(self) -> ctypes.c_void_p:
        return self._statement._current_plan(self._generation)

    def _column(self, index: int) -> ctypes.c_void_p:
        return _check_column(self._statement._lib, self._plan(), index)

    def data_count(self) -> int:
        """Number of columns holding data in this row."""
        return self._statement._lib.sqlite3_data_count(self._plan())

    def column_count(self) -> int:
        return self._statement._lib.sqlite3_column_count(self._plan())

    def column_type(self, index: int) -> int:
        """Dynamic type of the value, one of the ``SQLITE_INTEGER``..``SQLITE_NULL`` codes."""
        return self._statement._lib.sqlite3_column_type(self._column(index), index)

    def column_bytes(self, index: int) -> int:
        """Size in bytes of the value as text or blob."""
        return self._statement._lib.sqlite3_column_bytes(self._column(index), index)

    def column_name(self, index: int) -> str | None:
        return native.decode(self._statement._lib.sqlite3_column_name(self._column(index), index))

    def keys(self) -> list[str]:
        """Column names, in order."""
        return [self.column_name(i) or "" for i in range(self.column_count())]

    def get(self, index: int, kind: type | None = None) -> Any:
        """Read column ``index``.

        With no ``kind`` the value comes back as the Python type matching its
        dynamic engine type. Otherwise ``kind`` (int, float, bool, str or
        bytes) asks the engine to convert; a NULL read as str or bytes is None.
        """
        plan = self._column(index)
        lib = self._statement._lib
        column_type = lib.sqlite3_column_type(plan, index)
        if kind is None:
            kind = _NATURAL_KINDS.get(column_type)
            if kind is None:
                return None

        if kind is int:
            return lib.sqlite3_column_int64(plan, index)
        if kind is bool:
            return lib.sqlite3_column_int64(plan, index) != 0
        if kind is float:
            return lib.sqlite3_column_double(plan, index)
        if kind is str:
            ptr = lib.sqlite3_column_text(plan, index)
            if column_type == native.SQLITE_NULL:
                return None
            size = lib.sqlite3_column_bytes(plan, index)
            return ctypes.string_at(ptr, size).decode("utf-8", errors="replace") if ptr else ""
        if kind is bytes:
            ptr = lib.sqlite3_column_blob(plan, index)
            if column_type == native.SQLITE_NULL:
                return None
            # Zero-length blobs come back as a NULL pointer
            size = lib.sqlite3_column_bytes(plan, index)
            return ctypes.string_at(ptr, size) if ptr else b""
        raise TypeError(f"unsupported column kind {kind!r}")

    def unpack(self, *kinds: type | None) -> tuple[Any, ...]:
        """Read the leading columns, one per ``kind``."""
        return tuple(self.get(index, kind) for index, kind in enumerate(kinds))

    def values(self) -> tuple[Any, ...]:
        """Every column as its natural Python value."""
        return tuple(self.get(index) for index in range(self.data_count()))

    def as_dict(self) -> dict[str, Any]:
        return dict(zip(self.keys(), self.values(), strict=True))

    def __getitem__(self, key: int | str) -> Any:
        """Get a column value by position or by name."""
        if isinstance(key, str):
            try:
                key = self.keys().index(key)
            except ValueError:
                raise KeyError(key) from None
        return self.get(key)

    def __len__(self) -> int:
        return self.data_count()


class QueryIterator:
    """Forward-only position in a query's result sequence.

    Two iterators compare equal when both are, or both are not, at the end
    of their sequence; per-row identity plays no part. ``Query.end()``
    builds the canonical end sentinel.
    """

    def __init__(self, query: Query | None = None) -> None:
        self._query = query
        self._status = native.SQLITE_DONE
        self._started = False
        if query is not None:
            self._status = _step(query)

    @property
    def at_end(self) -> bool:
        return self._status == native.SQLITE_DONE

    @property
    def row(self) -> Row:
        """Cursor over the row the iterator is positioned on."""
        if self._query is None or self._status != native.SQLITE_ROW:
            raise UsageFault("iterator is not positioned on a row")
        return Row(self._query)

    def advance(self) -> QueryIterator:
        """Step to the next row. The end position is terminal."""
        if self._query is not None and self._status == native.SQLITE_ROW:
            self._status = _step(self._query)
        return self

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, QueryIterator):
            return NotImplemented
        return self._status == other._status

    __hash__ = None  # type: ignore[assignment]

    def __iter__(self) -> QueryIterator:
        return self

    def __next__(self) -> Row:
        if self._started:
            self.advance()
        self._started = True
        if self._status != native.SQLITE_ROW:
            raise StopIteration
        return self.row


class Query(Statement):
    """A prepared statement that produces result rows."""

    def _column(self, index: int) -> ctypes.c_void_p:
        return _check_column(self._lib, self._require_plan(), index)

    def column_count(self) -> int:
        return self._lib.sqlite3_column_count(self._require_plan())

    def column_name(self, index: int) -> str | None:
        return native.decode(self._lib.sqlite3_column_name(self._column(index), index))

    def column_decltype(self, index: int) -> str | None:
        """Declared type of a result column; None for expressions."""
        return native.decode(self._lib.sqlite3_column_decltype(self._column(index), index))

    def column_names(self) -> list[str]:
        return [self.column_name(i) or "" for i in range(self.column_count())]

    def fetchone(self) -> Row:
        """Step once and return the row, raising EngineError if none is produced."""
        rc = self.step()
        if rc != native.SQLITE_ROW:
            raise EngineError(self.db, rc)
        return Row(self)

    def begin(self) -> QueryIterator:
        """Step to the first row and return an iterator positioned there."""
        return QueryIterator(self)

    def end(self) -> QueryIterator:
        """The end-of-sequence sentinel."""
        return QueryIterator()

    def __iter__(self) -> QueryIterator:
        return self.begin()
