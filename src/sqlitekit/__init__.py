"""Deterministic-lifetime wrappers over the SQLite C API."""

from sqlitekit.command import Command
from sqlitekit.database import Database
from sqlitekit.errors import EngineError, SqlitekitError, UsageFault
from sqlitekit.models.settings import ConnectionSettings
from sqlitekit.query import Query, QueryIterator, Row
from sqlitekit.statement import Ownership, Statement, StatementState, Value
from sqlitekit.transaction import Transaction

__all__ = [
    "Command",
    "ConnectionSettings",
    "Database",
    "EngineError",
    "Ownership",
    "Query",
    "QueryIterator",
    "Row",
    "SqlitekitError",
    "Statement",
    "StatementState",
    "Transaction",
    "UsageFault",
    "Value",
]
