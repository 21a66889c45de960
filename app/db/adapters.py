"""
Database Adapters

Concrete DatabaseAdapter implementations and the factory that picks one from
the DATABASE_URL scheme.

SQLite (default):
- File-based, no server required; ideal for local development and tests
- NullPool: each session opens its own connection to the file
- check_same_thread=False: required for aiosqlite

PostgreSQL (production):
- Server-side connection pool sized for concurrent requests
- pool_pre_ping to survive dropped idle connections
"""

from typing import Any, Optional

from sqlalchemy.pool import NullPool, Pool

from app.db.interface import DatabaseAdapter


class SQLiteAdapter(DatabaseAdapter):
    """SQLite (aiosqlite) engine configuration."""

    def get_pool_class(self) -> type[NullPool]:
        return NullPool

    def get_connect_args(self) -> dict[str, Any]:
        return {
            "check_same_thread": False
        }

    def get_engine_kwargs(self) -> dict[str, Any]:
        return {
            "echo": False  # Set to True only for SQL debugging in development
        }

    def get_dialect_name(self) -> str:
        return "sqlite"


class PostgreSQLAdapter(DatabaseAdapter):
    """PostgreSQL (asyncpg) engine configuration."""

    def __init__(self, pool_size: int = 10, max_overflow: int = 20):
        self.pool_size = pool_size
        self.max_overflow = max_overflow

    def get_pool_class(self) -> Optional[type[Pool]]:
        # Default async queue pool
        return None

    def get_connect_args(self) -> dict[str, Any]:
        return {}

    def get_engine_kwargs(self) -> dict[str, Any]:
        return {
            "echo": False,
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_pre_ping": True,
        }

    def get_dialect_name(self) -> str:
        return "postgresql"


def get_database_adapter(database_url: str = "") -> DatabaseAdapter:
    """
    Factory function to get the database adapter for a connection string.

    Args:
        database_url: SQLAlchemy URL; its scheme selects the adapter

    Returns:
        PostgreSQLAdapter for postgresql URLs, SQLiteAdapter otherwise
    """
    if database_url.startswith("postgresql"):
        return PostgreSQLAdapter()
    return SQLiteAdapter()
