"""
FastAPI Endpoints for API Key Management

Thin endpoints: rate limiting and authentication run as dependencies,
business rules live in APIKeyService.

Listing keys and reading usage statistics accept a session or any API key.
Creating, updating, revoking and deleting keys require a web session.
"""

from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_identity, require_session
from app.api.schemas import (
    ApiKeyCreatedResponse,
    ApiKeyResponse,
    ApiKeyUsageStats,
    CreateApiKeyRequest,
    SuccessEnvelope,
    UpdateApiKeyRequest,
)
from app.core.exceptions import ValidationFailedError
from app.core.identity import Identity, SessionIdentity
from app.core.rate_limit import rate_limit
from app.core.validators import sanitize_identifier
from app.db.repositories.api_keys import SQLModelApiKeyRepository
from app.db.session import get_session
from app.services.api_key_service import APIKeyService

router = APIRouter(
    prefix="/api/api-keys",
    dependencies=[Depends(rate_limit("api_keys"))],
)


def get_api_key_service(session: AsyncSession = Depends(get_session)) -> APIKeyService:
    return APIKeyService(SQLModelApiKeyRepository(session))


def _key_id(raw: str) -> str:
    key_id = sanitize_identifier(raw)
    if not key_id:
        raise ValidationFailedError("Invalid API key id", {"id": "Invalid API key id"})
    return key_id


@router.get(
    "",
    response_model=SuccessEnvelope[List[ApiKeyResponse]],
    summary="List API keys"
)
async def list_api_keys(
    identity: Identity = Depends(get_identity),
    service: APIKeyService = Depends(get_api_key_service)
):
    keys = await service.list_keys(identity.user_id)
    return SuccessEnvelope(data=[ApiKeyResponse.model_validate(k) for k in keys])


@router.post(
    "",
    response_model=SuccessEnvelope[ApiKeyCreatedResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create an API key",
    description="Returns the plaintext token once. Only its hash is stored."
)
async def create_api_key(
    body: CreateApiKeyRequest,
    identity: SessionIdentity = Depends(require_session("creation")),
    service: APIKeyService = Depends(get_api_key_service)
):
    scopes = [scope.value for scope in body.scopes] if body.scopes is not None else None
    api_key, token = await service.create_key(
        identity.user_id,
        body.name,
        scopes=scopes,
        expires_at=body.expires_at
    )
    data = ApiKeyCreatedResponse(
        **ApiKeyResponse.model_validate(api_key).model_dump(),
        token=token
    )
    return SuccessEnvelope(data=data, message="API key created successfully")


@router.get(
    "/{key_id}",
    response_model=SuccessEnvelope[ApiKeyUsageStats],
    summary="Usage statistics of an API key"
)
async def get_api_key_usage(
    key_id: str,
    identity: Identity = Depends(get_identity),
    service: APIKeyService = Depends(get_api_key_service)
):
    stats = await service.get_usage_stats(identity.user_id, _key_id(key_id))
    return SuccessEnvelope(data=stats)


@router.put(
    "/{key_id}",
    response_model=SuccessEnvelope[ApiKeyResponse],
    summary="Rename or rescope an API key"
)
async def update_api_key(
    key_id: str,
    body: UpdateApiKeyRequest,
    identity: SessionIdentity = Depends(require_session("modification")),
    service: APIKeyService = Depends(get_api_key_service)
):
    scopes = [scope.value for scope in body.scopes] if body.scopes is not None else None
    api_key = await service.update_key(_key_id(key_id), identity.user_id, name=body.name, scopes=scopes)
    return SuccessEnvelope(
        data=ApiKeyResponse.model_validate(api_key),
        message="API key updated successfully"
    )


@router.delete(
    "/{key_id}",
    response_model=SuccessEnvelope[None],
    summary="Delete an API key permanently"
)
async def delete_api_key(
    key_id: str,
    identity: SessionIdentity = Depends(require_session("deletion")),
    service: APIKeyService = Depends(get_api_key_service)
):
    await service.delete_key(_key_id(key_id), identity.user_id)
    return SuccessEnvelope(data=None, message="API key deleted successfully")


@router.post(
    "/{key_id}/revoke",
    response_model=SuccessEnvelope[None],
    summary="Revoke an API key",
    description="Deactivates the key. The record and its usage history are kept."
)
async def revoke_api_key(
    key_id: str,
    identity: SessionIdentity = Depends(require_session("revocation")),
    service: APIKeyService = Depends(get_api_key_service)
):
    await service.revoke_key(_key_id(key_id), identity.user_id)
    return SuccessEnvelope(data=None, message="API key revoked successfully")
