"""Typed repositories, one per entity."""

from app.db.repositories.api_keys import ApiKeyRepository, SQLModelApiKeyRepository
from app.db.repositories.clicks import ClickEventRepository, SQLModelClickEventRepository
from app.db.repositories.urls import UrlRepository, SQLModelUrlRepository

__all__ = [
    "ApiKeyRepository",
    "SQLModelApiKeyRepository",
    "ClickEventRepository",
    "SQLModelClickEventRepository",
    "UrlRepository",
    "SQLModelUrlRepository",
]
