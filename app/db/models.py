"""
Database Models for the Link Gateway

This module defines the SQLModel database schemas for:
- ShortURL: shortened links owned by users (read-only for this service)
- Click: individual click events recorded by the redirect service
- APIKey: hashed API keys with scopes, expiry and activity timestamps
- APIKeyUsage: one row per request authenticated with an API key

Design Decisions:
- Only the SHA-256 hash of an API key is stored; the plaintext is shown once
- key_hash is unique and indexed: validation is a single exact-match lookup
- clicks are indexed on (url_id, clicked_at) for "newest clicks of these URLs" reads
- revoking a key is a soft delete (is_active=False) so usage history survives
"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import JSON, Boolean, Column, DateTime, Index, Integer, String, Text
from sqlmodel import Field, SQLModel


def _new_id() -> str:
    return str(uuid.uuid4())


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ShortURL(SQLModel, table=True):
    """
    Shortened link owned by a user.

    Indexes:
    - short_code: unique
    - user_id: "all URLs of user X" drives the overall analytics
    """
    __tablename__ = "urls"

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=36)
    user_id: str = Field(sa_column=Column(String(36), nullable=False, index=True))
    short_code: str = Field(sa_column=Column(String(20), nullable=False, unique=True, index=True))
    original_url: str = Field(sa_column=Column(Text, nullable=False))
    title: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))
    clicks: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))
    created_at: datetime = Field(
        default_factory=_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )


class Click(SQLModel, table=True):
    """
    A single click on a short URL.

    Written by the redirect path, only read here as aggregation input.
    Dimension columns are nullable: missing values are bucketed as
    "Unknown"/"Direct" at aggregation time, never dropped.
    """
    __tablename__ = "clicks"
    __table_args__ = (
        Index("ix_clicks_url_id_clicked_at", "url_id", "clicked_at"),
    )

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=36)
    url_id: str = Field(sa_column=Column(String(36), nullable=False, index=True))
    short_code: str = Field(sa_column=Column(String(20), nullable=False))
    country_name: Optional[str] = Field(default=None, sa_column=Column(String(100), nullable=True))
    browser_name: Optional[str] = Field(default=None, sa_column=Column(String(100), nullable=True))
    device_type: Optional[str] = Field(default=None, sa_column=Column(String(20), nullable=True))
    referer_type: Optional[str] = Field(default=None, sa_column=Column(String(20), nullable=True))
    referer_domain: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))
    referer_source: Optional[str] = Field(default=None, sa_column=Column(String(100), nullable=True))
    accept_language: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))
    is_bot: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    ip_address: Optional[str] = Field(default=None, sa_column=Column(String(45), nullable=True))  # IPv6 max length
    clicked_at: datetime = Field(
        default_factory=_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )


class APIKey(SQLModel, table=True):
    """
    API key record.

    Fields:
    - key_hash: SHA-256 of the full token (never the token itself)
    - key_prefix: gup_xxxxxxxx, safe to display
    - scopes: subset of read/write/admin; an empty list authorizes nothing beyond identity
    - expires_at: once passed, the key is invalid regardless of is_active
    """
    __tablename__ = "api_keys"

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=36)
    user_id: str = Field(sa_column=Column(String(36), nullable=False, index=True))
    name: str = Field(sa_column=Column(String(100), nullable=False))
    key_hash: str = Field(sa_column=Column(String(64), nullable=False, unique=True, index=True))
    key_prefix: str = Field(sa_column=Column(String(20), nullable=False))
    scopes: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True, index=True))
    expires_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    last_used_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    created_at: datetime = Field(
        default_factory=_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )
    updated_at: datetime = Field(
        default_factory=_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )


class APIKeyUsage(SQLModel, table=True):
    """
    Usage log entry for a request authenticated with an API key.

    Written best-effort from a background task; a failed insert never
    affects the request that triggered it.
    """
    __tablename__ = "api_key_usage"

    id: Optional[int] = Field(default=None, primary_key=True)
    api_key_id: str = Field(sa_column=Column(String(36), nullable=False, index=True))
    endpoint: str = Field(sa_column=Column(String(255), nullable=False))
    method: str = Field(sa_column=Column(String(10), nullable=False))
    ip_address: Optional[str] = Field(default=None, sa_column=Column(String(45), nullable=True))
    user_agent: Optional[str] = Field(default=None, sa_column=Column(String(500), nullable=True))
    response_status: Optional[int] = Field(default=None, sa_column=Column(Integer, nullable=True))
    created_at: datetime = Field(
        default_factory=_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )
