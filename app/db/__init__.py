"""
Database module with abstraction layer.

This module provides:
- DatabaseAdapter interface with SQLite and PostgreSQL implementations
- Session management: engine, session factory and the FastAPI session dependency
- Typed repositories (app.db.repositories) over the api_keys, clicks and urls tables
"""

from app.db.interface import DatabaseAdapter
from app.db.session import get_session, get_session_factory, async_session_maker, engine

__all__ = [
    "DatabaseAdapter",
    "get_session",
    "get_session_factory",
    "async_session_maker",
    "engine",
]
