"""Database layer for billflow application."""

from billflow.database.base import Database
from billflow.database.factories import create_sqlite_database

__all__ = ["Database", "create_sqlite_database"]
