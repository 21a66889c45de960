"""
Authenticator

Single choke point that turns an inbound request into an Identity or a
rejection. Every protected route goes through authenticate().

Resolution order:
1. A bearer value carrying the gup_ namespace is an API key attempt. A value
   that claims to be a key but is malformed is rejected as such and never
   falls through to session auth.
2. Anything else is resolved as a web session (non-key bearer token or cookie).
3. Nothing resolved -> authentication required (401).

Design Decisions:
- The key store is reached through the ApiKeyRepository protocol, so tests can
  count lookups with a fake
- Usage logging is handed to a UsageRecorder and never awaited here
- Scope checks are delegated to the Scope Guard after resolution
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from fastapi import Request

from app.core.exceptions import InvalidCredentialError, MalformedCredentialError
from app.core.identity import ApiKeyIdentity, Identity
from app.core.key_codec import hash_api_key, is_valid_api_key_format, looks_like_api_key
from app.core.rate_limit import get_client_identifier
from app.core.scopes import ScopeGuard, ScopeLike, scope_guard
from app.core.validators import ensure_utc, utc_now
from app.db.repositories.api_keys import ApiKeyRepository
from app.services.background_tasks import ApiKeyUsageEvent, UsageRecorder
from app.services.session_resolver import SessionResolver, get_bearer_token

logger = logging.getLogger(__name__)

AUTHENTICATION_REQUIRED = "Authentication required. Please provide a valid session token or API key."


class Authenticator:
    def __init__(
        self,
        api_keys: ApiKeyRepository,
        session_resolver: SessionResolver,
        usage_recorder: Optional[UsageRecorder] = None,
        clock: Callable[[], datetime] = utc_now,
        guard: ScopeGuard = scope_guard
    ):
        self.api_keys = api_keys
        self.session_resolver = session_resolver
        self.usage_recorder = usage_recorder
        self.clock = clock
        self.guard = guard

    async def authenticate(self, request: Request, required_scope: Optional[ScopeLike] = None) -> Identity:
        """
        Resolve the identity of a request.

        Args:
            request: The inbound request
            required_scope: Scope the operation needs, if any

        Returns:
            SessionIdentity or ApiKeyIdentity

        Raises:
            MalformedCredentialError: Bearer value claims to be a key but is malformed
            InvalidCredentialError: Unknown, inactive or expired key, or no valid session
            InsufficientScopeError: Identity lacks `required_scope`
        """
        bearer = get_bearer_token(request)

        if looks_like_api_key(bearer):
            identity = await self._authenticate_api_key(request, bearer)
        else:
            identity = self.session_resolver.resolve(request)
            if identity is None:
                raise InvalidCredentialError(AUTHENTICATION_REQUIRED)

        if required_scope is not None:
            self.guard.enforce(identity, required_scope)

        return identity

    async def _authenticate_api_key(self, request: Request, token: str) -> ApiKeyIdentity:
        if not is_valid_api_key_format(token):
            raise MalformedCredentialError()

        api_key = await self.api_keys.get_by_hash(hash_api_key(token))
        if api_key is None or not api_key.is_active:
            raise InvalidCredentialError("Invalid API key")

        now = self.clock()
        expires_at = ensure_utc(api_key.expires_at)
        if expires_at is not None and expires_at <= now:
            raise InvalidCredentialError("API key has expired")

        self._record_usage(request, api_key.id, now)

        return ApiKeyIdentity(
            user_id=api_key.user_id,
            key_id=api_key.id,
            scopes=frozenset(api_key.scopes or []),
        )

    def _record_usage(self, request: Request, key_id: str, now: datetime) -> None:
        if self.usage_recorder is None:
            return
        event = ApiKeyUsageEvent(
            api_key_id=key_id,
            endpoint=request.url.path,
            method=request.method,
            ip_address=get_client_identifier(request),
            user_agent=request.headers.get("user-agent"),
            occurred_at=now,
        )
        try:
            self.usage_recorder.submit(event)
        except Exception as e:
            # Usage logging never fails the request
            logger.error(f"Failed to submit usage for API key {key_id}: {str(e)}", exc_info=True)
