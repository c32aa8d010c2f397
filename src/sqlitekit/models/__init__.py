"""Configuration models."""

from sqlitekit.models.settings import ConnectionSettings

__all__ = ["ConnectionSettings"]
