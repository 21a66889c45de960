"""
Tests for the Authenticator.

The key store is a call-counting fake so tests can assert that malformed
tokens never trigger a lookup.
"""

import logging
from datetime import timedelta
from typing import List, Optional

import pytest
from starlette.requests import Request

from app.core.exceptions import InsufficientScopeError, InvalidCredentialError, MalformedCredentialError
from app.core.identity import ApiKeyIdentity, SessionIdentity
from app.core.key_codec import generate_api_key
from app.db.models import APIKey
from app.services.authenticator import AUTHENTICATION_REQUIRED, Authenticator
from app.services.background_tasks import ApiKeyUsageEvent
from app.services.session_resolver import JWTSessionResolver, create_session_token

from factories import FIXED_NOW

SECRET = "test-session-secret-key-of-32-bytes-or-more"


class CountingKeyRepository:
    def __init__(self, *keys: APIKey):
        self.keys = {k.key_hash: k for k in keys}
        self.lookups = 0

    async def get_by_hash(self, key_hash: str) -> Optional[APIKey]:
        self.lookups += 1
        return self.keys.get(key_hash)


class StaticSessionResolver:
    def __init__(self, identity: Optional[SessionIdentity] = None):
        self.identity = identity
        self.calls = 0

    def resolve(self, request):
        self.calls += 1
        return self.identity


class ListRecorder:
    def __init__(self):
        self.events: List[ApiKeyUsageEvent] = []

    def submit(self, event: ApiKeyUsageEvent) -> None:
        self.events.append(event)


class ExplodingRecorder:
    def submit(self, event):
        raise RuntimeError("queue is down")


def make_request(authorization: Optional[str] = None, cookies: Optional[str] = None) -> Request:
    headers = [(b"user-agent", b"pytest-client"), (b"x-forwarded-for", b"203.0.113.7")]
    if authorization:
        headers.append((b"authorization", authorization.encode()))
    if cookies:
        headers.append((b"cookie", cookies.encode()))
    return Request({
        "type": "http",
        "method": "GET",
        "path": "/api/analytics",
        "raw_path": b"/api/analytics",
        "query_string": b"",
        "headers": headers,
        "client": ("127.0.0.1", 1234),
        "server": ("test", 80),
        "scheme": "http",
    })


def stored_key(token_hash: str, **kwargs) -> APIKey:
    return APIKey(
        id=kwargs.pop("id", "key-1"),
        user_id="user-1",
        name="CI",
        key_hash=token_hash,
        key_prefix="gup_xxxxxxxx",
        scopes=kwargs.pop("scopes", ["read", "write"]),
        **kwargs
    )


def make_authenticator(repo, resolver=None, recorder=None):
    return Authenticator(
        api_keys=repo,
        session_resolver=resolver or StaticSessionResolver(),
        usage_recorder=recorder,
        clock=lambda: FIXED_NOW,
    )


class TestApiKeyPath:
    """Test bearer API key resolution."""

    @pytest.mark.asyncio
    async def test_valid_key_resolves_identity(self):
        generated = generate_api_key()
        repo = CountingKeyRepository(stored_key(generated.hash))
        authenticator = make_authenticator(repo)

        identity = await authenticator.authenticate(make_request(f"Bearer {generated.token}"))

        assert isinstance(identity, ApiKeyIdentity)
        assert identity.user_id == "user-1"
        assert identity.key_id == "key-1"
        assert identity.scopes == frozenset({"read", "write"})
        assert identity.auth_type == "api_key"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", [
        "gup_short",
        "gup_AbCdEfGh_tooShort",
        "gup_AbCdEf!h_" + "x" * 32,
    ])
    async def test_malformed_key_never_reaches_store(self, token):
        repo = CountingKeyRepository()
        resolver = StaticSessionResolver(SessionIdentity(user_id="user-1"))
        authenticator = make_authenticator(repo, resolver)

        with pytest.raises(MalformedCredentialError):
            await authenticator.authenticate(make_request(f"Bearer {token}"))

        assert repo.lookups == 0
        # A malformed key must not fall through to the session
        assert resolver.calls == 0

    @pytest.mark.asyncio
    async def test_unknown_key_is_invalid(self):
        repo = CountingKeyRepository()
        authenticator = make_authenticator(repo)

        with pytest.raises(InvalidCredentialError) as exc_info:
            await authenticator.authenticate(make_request(f"Bearer {generate_api_key().token}"))

        assert exc_info.value.message == "Invalid API key"
        assert repo.lookups == 1

    @pytest.mark.asyncio
    async def test_inactive_key_is_invalid(self):
        generated = generate_api_key()
        authenticator = make_authenticator(CountingKeyRepository(stored_key(generated.hash, is_active=False)))

        with pytest.raises(InvalidCredentialError):
            await authenticator.authenticate(make_request(f"Bearer {generated.token}"))

    @pytest.mark.asyncio
    async def test_expired_key_is_invalid_even_if_active(self):
        generated = generate_api_key()
        key = stored_key(generated.hash, is_active=True, expires_at=FIXED_NOW - timedelta(seconds=1))
        authenticator = make_authenticator(CountingKeyRepository(key))

        with pytest.raises(InvalidCredentialError) as exc_info:
            await authenticator.authenticate(make_request(f"Bearer {generated.token}"))

        assert exc_info.value.message == "API key has expired"

    @pytest.mark.asyncio
    async def test_naive_expiry_is_treated_as_utc(self):
        generated = generate_api_key()
        naive_future = (FIXED_NOW + timedelta(hours=1)).replace(tzinfo=None)
        authenticator = make_authenticator(CountingKeyRepository(stored_key(generated.hash, expires_at=naive_future)))

        identity = await authenticator.authenticate(make_request(f"Bearer {generated.token}"))
        assert identity.key_id == "key-1"

    @pytest.mark.asyncio
    async def test_usage_is_submitted_not_awaited(self):
        generated = generate_api_key()
        recorder = ListRecorder()
        authenticator = make_authenticator(CountingKeyRepository(stored_key(generated.hash)), recorder=recorder)

        await authenticator.authenticate(make_request(f"Bearer {generated.token}"))

        assert recorder.events == [
            ApiKeyUsageEvent(
                api_key_id="key-1",
                endpoint="/api/analytics",
                method="GET",
                ip_address="203.0.113.7",
                user_agent="pytest-client",
                occurred_at=FIXED_NOW,
            )
        ]

    @pytest.mark.asyncio
    async def test_recorder_failure_does_not_fail_request(self):
        generated = generate_api_key()
        authenticator = make_authenticator(
            CountingKeyRepository(stored_key(generated.hash)),
            recorder=ExplodingRecorder()
        )

        identity = await authenticator.authenticate(make_request(f"Bearer {generated.token}"))
        assert identity.key_id == "key-1"

    @pytest.mark.asyncio
    async def test_no_usage_recorded_on_failure(self):
        recorder = ListRecorder()
        authenticator = make_authenticator(CountingKeyRepository(), recorder=recorder)

        with pytest.raises(InvalidCredentialError):
            await authenticator.authenticate(make_request(f"Bearer {generate_api_key().token}"))
        assert recorder.events == []

    @pytest.mark.asyncio
    async def test_token_is_never_logged(self, caplog):
        caplog.set_level(logging.DEBUG)
        generated = generate_api_key()
        revoked = generate_api_key()
        repo = CountingKeyRepository(
            stored_key(generated.hash),
            stored_key(revoked.hash, id="key-2", is_active=False),
        )

        await make_authenticator(repo, recorder=ExplodingRecorder()).authenticate(
            make_request(f"Bearer {generated.token}")
        )
        with pytest.raises(InvalidCredentialError):
            await make_authenticator(repo).authenticate(make_request(f"Bearer {revoked.token}"))

        assert caplog.records
        for token in (generated.token, revoked.token):
            assert token not in caplog.text


class TestSessionPath:
    @pytest.mark.asyncio
    async def test_session_fallback(self):
        resolver = StaticSessionResolver(SessionIdentity(user_id="user-9", email="u9@example.com"))
        repo = CountingKeyRepository()
        authenticator = make_authenticator(repo, resolver)

        identity = await authenticator.authenticate(make_request())

        assert identity == SessionIdentity(user_id="user-9", email="u9@example.com")
        assert repo.lookups == 0

    @pytest.mark.asyncio
    async def test_no_credentials_requires_authentication(self):
        authenticator = make_authenticator(CountingKeyRepository())

        with pytest.raises(InvalidCredentialError) as exc_info:
            await authenticator.authenticate(make_request())

        assert exc_info.value.status_code == 401
        assert exc_info.value.message == AUTHENTICATION_REQUIRED

    @pytest.mark.asyncio
    async def test_jwt_session_from_cookie_and_header(self):
        resolver = JWTSessionResolver(secret_key=SECRET, algorithm="HS256", cookie_name="session_token")
        authenticator = make_authenticator(CountingKeyRepository(), resolver)
        token = create_session_token("user-5", "five@example.com", secret_key=SECRET, algorithm="HS256")

        from_cookie = await authenticator.authenticate(make_request(cookies=f"session_token={token}"))
        from_header = await authenticator.authenticate(make_request(f"Bearer {token}"))

        assert from_cookie == from_header == SessionIdentity(user_id="user-5", email="five@example.com")

    @pytest.mark.asyncio
    async def test_jwt_with_wrong_secret_is_rejected(self):
        resolver = JWTSessionResolver(secret_key=SECRET, algorithm="HS256", cookie_name="session_token")
        authenticator = make_authenticator(CountingKeyRepository(), resolver)
        forged = create_session_token("user-5", secret_key="another-secret-key-that-is-32-bytes-long", algorithm="HS256")

        with pytest.raises(InvalidCredentialError):
            await authenticator.authenticate(make_request(f"Bearer {forged}"))

    @pytest.mark.asyncio
    async def test_expired_jwt_is_rejected(self):
        resolver = JWTSessionResolver(secret_key=SECRET, algorithm="HS256", cookie_name="session_token")
        authenticator = make_authenticator(CountingKeyRepository(), resolver)
        expired = create_session_token(
            "user-5", expires_delta=timedelta(minutes=-5), secret_key=SECRET, algorithm="HS256"
        )

        with pytest.raises(InvalidCredentialError):
            await authenticator.authenticate(make_request(cookies=f"session_token={expired}"))


class TestRequiredScope:
    @pytest.mark.asyncio
    async def test_missing_scope_is_forbidden(self):
        generated = generate_api_key()
        authenticator = make_authenticator(CountingKeyRepository(stored_key(generated.hash, scopes=["read"])))

        with pytest.raises(InsufficientScopeError) as exc_info:
            await authenticator.authenticate(make_request(f"Bearer {generated.token}"), required_scope="write")
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_admin_key_passes_every_scope(self):
        generated = generate_api_key()
        authenticator = make_authenticator(CountingKeyRepository(stored_key(generated.hash, scopes=["admin"])))

        for scope in ("read", "write", "admin"):
            await authenticator.authenticate(make_request(f"Bearer {generated.token}"), required_scope=scope)

    @pytest.mark.asyncio
    async def test_session_ignores_scope(self):
        authenticator = make_authenticator(
            CountingKeyRepository(),
            StaticSessionResolver(SessionIdentity(user_id="user-1"))
        )
        identity = await authenticator.authenticate(make_request(), required_scope="admin")
        assert identity.auth_type == "session"
