"""ctypes bindings for the SQLite C library.

Only the handful of entry points the wrapper classes need are declared.
Every handle crossing this boundary is an opaque ``c_void_p``; ownership
rules live in the classes that hold them, not here.
"""

import ctypes
import ctypes.util
import functools
import logging

from sqlitekit.config import get_library_path

logger = logging.getLogger(__name__)

# Result codes
SQLITE_OK = 0
SQLITE_ERROR = 1
SQLITE_BUSY = 5
SQLITE_LOCKED = 6
SQLITE_READONLY = 8
SQLITE_CANTOPEN = 14
SQLITE_CONSTRAINT = 19
SQLITE_MISUSE = 21
SQLITE_AUTH = 23
SQLITE_RANGE = 25
SQLITE_ROW = 100
SQLITE_DONE = 101

# Fundamental datatypes reported by sqlite3_column_type
SQLITE_INTEGER = 1
SQLITE_FLOAT = 2
SQLITE_TEXT = 3
SQLITE_BLOB = 4
SQLITE_NULL = 5

# Open flags
SQLITE_OPEN_READONLY = 0x00000001
SQLITE_OPEN_READWRITE = 0x00000002
SQLITE_OPEN_CREATE = 0x00000004
SQLITE_OPEN_URI = 0x00000040
SQLITE_OPEN_MEMORY = 0x00000080
SQLITE_OPEN_NOMUTEX = 0x00008000
SQLITE_OPEN_FULLMUTEX = 0x00010000

# Authorizer return codes
SQLITE_DENY = 1
SQLITE_IGNORE = 2

# Authorizer action codes (subset)
SQLITE_CREATE_TABLE = 2
SQLITE_DELETE = 9
SQLITE_DROP_TABLE = 11
SQLITE_INSERT = 18
SQLITE_READ = 20
SQLITE_SELECT = 21
SQLITE_UPDATE = 23

# Destructor markers for text/blob binds
SQLITE_STATIC = ctypes.c_void_p(0)
SQLITE_TRANSIENT = ctypes.c_void_p(-1)

# Hook prototypes
BUSY_HANDLER = ctypes.CFUNCTYPE(ctypes.c_int, ctypes.c_void_p, ctypes.c_int)
COMMIT_HOOK = ctypes.CFUNCTYPE(ctypes.c_int, ctypes.c_void_p)
ROLLBACK_HOOK = ctypes.CFUNCTYPE(None, ctypes.c_void_p)
UPDATE_HOOK = ctypes.CFUNCTYPE(
    None, ctypes.c_void_p, ctypes.c_int, ctypes.c_char_p, ctypes.c_char_p, ctypes.c_int64
)
AUTHORIZER = ctypes.CFUNCTYPE(
    ctypes.c_int,
    ctypes.c_void_p,
    ctypes.c_int,
    ctypes.c_char_p,
    ctypes.c_char_p,
    ctypes.c_char_p,
    ctypes.c_char_p,
)

_p = ctypes.c_void_p
_int = ctypes.c_int
_text = ctypes.c_char_p

_SIGNATURES: dict[str, tuple[object, list[object]]] = {
    "sqlite3_libversion": (_text, []),
    "sqlite3_errstr": (_text, [_int]),
    # Connections
    "sqlite3_open_v2": (_int, [_text, ctypes.POINTER(_p), _int, _text]),
    "sqlite3_close": (_int, [_p]),
    "sqlite3_close_v2": (_int, [_p]),
    "sqlite3_exec": (_int, [_p, _text, _p, _p, _p]),
    "sqlite3_errmsg": (_text, [_p]),
    "sqlite3_errcode": (_int, [_p]),
    "sqlite3_last_insert_rowid": (ctypes.c_int64, [_p]),
    "sqlite3_changes": (_int, [_p]),
    "sqlite3_get_autocommit": (_int, [_p]),
    "sqlite3_busy_timeout": (_int, [_p, _int]),
    "sqlite3_busy_handler": (_int, [_p, BUSY_HANDLER, _p]),
    "sqlite3_commit_hook": (_p, [_p, COMMIT_HOOK, _p]),
    "sqlite3_rollback_hook": (_p, [_p, ROLLBACK_HOOK, _p]),
    "sqlite3_update_hook": (_p, [_p, UPDATE_HOOK, _p]),
    "sqlite3_set_authorizer": (_int, [_p, AUTHORIZER, _p]),
    # Statements
    "sqlite3_prepare_v2": (_int, [_p, _p, _int, ctypes.POINTER(_p), ctypes.POINTER(_p)]),
    "sqlite3_finalize": (_int, [_p]),
    "sqlite3_step": (_int, [_p]),
    "sqlite3_reset": (_int, [_p]),
    "sqlite3_clear_bindings": (_int, [_p]),
    "sqlite3_transfer_bindings": (_int, [_p, _p]),
    "sqlite3_sql": (_text, [_p]),
    "sqlite3_bind_int64": (_int, [_p, _int, ctypes.c_int64]),
    "sqlite3_bind_double": (_int, [_p, _int, ctypes.c_double]),
    "sqlite3_bind_text": (_int, [_p, _int, _text, _int, _p]),
    "sqlite3_bind_blob": (_int, [_p, _int, _text, _int, _p]),
    "sqlite3_bind_null": (_int, [_p, _int]),
    "sqlite3_bind_parameter_count": (_int, [_p]),
    "sqlite3_bind_parameter_index": (_int, [_p, _text]),
    "sqlite3_bind_parameter_name": (_text, [_p, _int]),
    # Result columns
    "sqlite3_column_count": (_int, [_p]),
    "sqlite3_data_count": (_int, [_p]),
    "sqlite3_column_type": (_int, [_p, _int]),
    "sqlite3_column_bytes": (_int, [_p, _int]),
    "sqlite3_column_name": (_text, [_p, _int]),
    "sqlite3_column_decltype": (_text, [_p, _int]),
    "sqlite3_column_int64": (ctypes.c_int64, [_p, _int]),
    "sqlite3_column_double": (ctypes.c_double, [_p, _int]),
    "sqlite3_column_text": (_p, [_p, _int]),
    "sqlite3_column_blob": (_p, [_p, _int]),
}


def _candidates() -> list[str | None]:
    """Library locations to try, most explicit first."""
    paths: list[str | None] = []
    explicit = get_library_path()
    if explicit:
        paths.append(explicit)
    found = ctypes.util.find_library("sqlite3")
    if found:
        paths.append(found)
    try:
        import _sqlite3

        module_file = getattr(_sqlite3, "__file__", None)
        if module_file:
            paths.append(module_file)
    except ImportError:
        pass
    # Interpreters that link SQLite statically export it from the process image
    paths.append(None)
    return paths


@functools.cache
def load_library() -> ctypes.CDLL:
    """Load the SQLite shared library and declare the signatures we call."""
    for path in _candidates():
        try:
            lib = ctypes.CDLL(path)
        except (OSError, TypeError):
            logger.debug("No SQLite library at %s", path)
            continue
        missing = [name for name in _SIGNATURES if not hasattr(lib, name)]
        if missing:
            logger.debug("Skipping %s: missing %s", path, ", ".join(missing[:3]))
            continue
        for name, (restype, argtypes) in _SIGNATURES.items():
            func = getattr(lib, name)
            func.restype = restype
            func.argtypes = argtypes
        logger.debug(
            "Loaded SQLite %s from %s",
            lib.sqlite3_libversion().decode(),
            path or "<process>",
        )
        return lib
    raise OSError("SQLite shared library not found; set SQLITEKIT_LIBRARY")


def errstr(code: int) -> str:
    """Return the engine's generic English text for a status code."""
    text = load_library().sqlite3_errstr(code)
    return text.decode("utf-8", errors="replace") if text else f"unknown error ({code})"


def decode(raw: bytes | None) -> str | None:
    """Decode a UTF-8 C string returned by the engine."""
    if raw is None:
        return None
    return raw.decode("utf-8", errors="replace")
