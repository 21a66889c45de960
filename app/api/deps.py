"""
Shared FastAPI dependencies for authentication and authorization.

Usage:
    @router.get("/api/analytics")
    async def overall(identity: Identity = Depends(require_scope(Scope.READ))):
        ...
"""

from fastapi import BackgroundTasks, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import SessionRequiredError
from app.core.identity import Identity, SessionIdentity
from app.core.scopes import ScopeLike
from app.db.repositories.api_keys import SQLModelApiKeyRepository
from app.db.session import get_session, get_session_factory
from app.services.authenticator import Authenticator
from app.services.background_tasks import BackgroundUsageRecorder
from app.services.session_resolver import JWTSessionResolver


def get_authenticator(
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    session_factory: async_sessionmaker = Depends(get_session_factory)
) -> Authenticator:
    return Authenticator(
        api_keys=SQLModelApiKeyRepository(session),
        session_resolver=JWTSessionResolver(),
        usage_recorder=BackgroundUsageRecorder(background_tasks, session_factory),
    )


async def get_identity(
    request: Request,
    authenticator: Authenticator = Depends(get_authenticator)
) -> Identity:
    """Resolve the caller without requiring any scope."""
    return await authenticator.authenticate(request)


def require_scope(scope: ScopeLike):
    """Dependency factory resolving the caller and enforcing `scope`."""

    async def dependency(
        request: Request,
        authenticator: Authenticator = Depends(get_authenticator)
    ) -> Identity:
        return await authenticator.authenticate(request, required_scope=scope)

    return dependency


def require_session(action: str = "this operation"):
    """
    Dependency factory for operations reserved to signed-in users.

    API keys resolve fine but are refused with 403: keys cannot manage keys.
    """

    async def dependency(identity: Identity = Depends(get_identity)) -> SessionIdentity:
        if not isinstance(identity, SessionIdentity):
            raise SessionRequiredError(f"API key {action} requires session authentication")
        return identity

    return dependency
