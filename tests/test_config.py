"""Tests for environment configuration and connection settings."""

import pytest
from pydantic import ValidationError

from sqlitekit import ConnectionSettings
from sqlitekit import config, native


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "SQLITEKIT_LIBRARY",
        "SQLITEKIT_DB_PATH",
        "SQLITEKIT_BUSY_TIMEOUT_MS",
        "SQLITEKIT_READ_ONLY",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    assert config.get_library_path() is None
    assert config.get_db_path() == ":memory:"
    assert config.get_busy_timeout_ms() == 0
    assert config.is_read_only() is False


def test_overrides(clean_env):
    clean_env.setenv("SQLITEKIT_LIBRARY", " /opt/lib/libsqlite3.so ")
    clean_env.setenv("SQLITEKIT_DB_PATH", "/tmp/app.db")
    clean_env.setenv("SQLITEKIT_BUSY_TIMEOUT_MS", "250")
    clean_env.setenv("SQLITEKIT_READ_ONLY", "true")
    assert config.get_library_path() == "/opt/lib/libsqlite3.so"
    assert config.get_db_path() == "/tmp/app.db"
    assert config.get_busy_timeout_ms() == 250
    assert config.is_read_only() is True


def test_blank_library_path_is_unset(clean_env):
    clean_env.setenv("SQLITEKIT_LIBRARY", "   ")
    assert config.get_library_path() is None


def test_settings_from_env(clean_env):
    clean_env.setenv("SQLITEKIT_DB_PATH", "app.db")
    clean_env.setenv("SQLITEKIT_READ_ONLY", "TRUE")
    clean_env.setenv("SQLITEKIT_BUSY_TIMEOUT_MS", "10")
    settings = ConnectionSettings.from_env()
    assert settings.path == "app.db"
    assert settings.read_only is True
    assert settings.busy_timeout_ms == 10


def test_negative_timeout_rejected():
    with pytest.raises(ValidationError):
        ConnectionSettings(busy_timeout_ms=-1)


class TestOpenFlags:
    def test_default(self):
        assert ConnectionSettings().open_flags() == (
            native.SQLITE_OPEN_READWRITE | native.SQLITE_OPEN_CREATE
        )

    def test_read_only(self):
        assert ConnectionSettings(read_only=True).open_flags() == native.SQLITE_OPEN_READONLY

    def test_no_create(self):
        assert ConnectionSettings(create=False).open_flags() == native.SQLITE_OPEN_READWRITE

    def test_uri(self):
        flags = ConnectionSettings(path="file:app.db?mode=ro").open_flags()
        assert flags & native.SQLITE_OPEN_URI
        assert ConnectionSettings(uri=True).open_flags() & native.SQLITE_OPEN_URI
