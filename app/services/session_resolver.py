"""
Session Resolution

Resolves the ambient web session of a request to a SessionIdentity.

Session tokens are HS256 JWTs issued by the web frontend: `sub` carries the
user id and an optional `email` claim the address. They are read from the
Authorization header (when the bearer value is not an API key) or from the
session cookie, header first.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

import jwt
from fastapi import Request
from jwt.exceptions import PyJWTError

from app.core.identity import SessionIdentity
from app.core.key_codec import looks_like_api_key
from app.core.setting import settings

logger = logging.getLogger(__name__)


class SessionResolver(Protocol):
    def resolve(self, request: Request) -> Optional[SessionIdentity]:
        ...


def get_bearer_token(request: Request) -> Optional[str]:
    """Return the value of `Authorization: Bearer <value>`, if any."""
    authorization = request.headers.get("authorization")
    if not authorization:
        return None
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return value.strip() or None


class JWTSessionResolver:
    """SessionResolver for JWT session tokens."""

    def __init__(
        self,
        secret_key: str = None,
        algorithm: str = None,
        cookie_name: str = None
    ):
        self.secret_key = secret_key or settings.SESSION_SECRET_KEY
        self.algorithm = algorithm or settings.SESSION_ALGORITHM
        self.cookie_name = cookie_name or settings.SESSION_COOKIE_NAME

    def get_token(self, request: Request) -> Optional[str]:
        """
        Extract the session token from the request.
        Priority: Header > Cookie. API keys in the header are never treated
        as session tokens.
        """
        header_token = get_bearer_token(request)
        if header_token and not looks_like_api_key(header_token):
            return header_token
        return request.cookies.get(self.cookie_name) or None

    def resolve(self, request: Request) -> Optional[SessionIdentity]:
        token = self.get_token(request)
        if not token:
            return None

        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except PyJWTError as e:
            logger.debug(f"Rejected session token: {e}")
            return None

        user_id = payload.get("sub")
        if not user_id:
            return None
        return SessionIdentity(user_id=str(user_id), email=payload.get("email"))


def create_session_token(
    user_id: str,
    email: Optional[str] = None,
    expires_delta: timedelta = None,
    secret_key: str = None,
    algorithm: str = None
) -> str:
    """Issue a session token understood by JWTSessionResolver."""
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.SESSION_TOKEN_EXPIRE_MINUTES)

    to_encode = {"exp": expire, "sub": str(user_id)}
    if email:
        to_encode["email"] = email
    return jwt.encode(
        to_encode,
        secret_key or settings.SESSION_SECRET_KEY,
        algorithm=algorithm or settings.SESSION_ALGORITHM
    )
