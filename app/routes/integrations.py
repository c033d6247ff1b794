"""
Integration connection endpoints: list, authorize, OAuth callback, disconnect.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.auth.verify import current_user_id
from app.config import settings
from app.dependencies import get_vault
from app.errors import CredentialError
from app.infrastructure.observability.logging import get_logger
from app.models.api.integration_response import (
    AuthorizeURLResponse,
    IntegrationCallbackResponse,
    IntegrationDisconnectResponse,
    IntegrationListResponse,
    IntegrationStatusResponse,
)
from app.models.domain.credential_domain import ProviderType
from app.routes.errors import http_error
from app.services.credential_vault import CredentialVault

logger = get_logger(__name__)

router = APIRouter(prefix="/integrations", tags=["integrations"])


@router.get("", response_model=IntegrationListResponse)
async def list_integrations(
    user_id: str = Depends(current_user_id),
    vault: CredentialVault = Depends(get_vault),
):
    """Connection status for every supported provider."""
    connections = await vault.list_connections(user_id)
    return IntegrationListResponse(
        integrations=[IntegrationStatusResponse(**c.model_dump()) for c in connections],
        integrations_enabled=settings.INTEGRATIONS_ENABLED,
    )


@router.get("/{provider}/authorize", response_model=AuthorizeURLResponse)
async def authorize(
    provider: ProviderType,
    user_id: str = Depends(current_user_id),
    vault: CredentialVault = Depends(get_vault),
):
    """
    Start the OAuth flow for one provider.

    Raises:
        503: provider OAuth client not configured
        502: state storage unavailable
    """
    try:
        auth_url, state = await vault.authorization_url(user_id, provider)
    except CredentialError as e:
        logger.warning(
            "Authorization URL generation failed",
            user_id=user_id,
            provider=provider.value,
            kind=e.kind.value,
        )
        raise http_error(e) from None

    logger.info(
        "Authorization URL generated",
        user_id=user_id,
        provider=provider.value,
        state_preview=state[:8] + "...",
    )
    return AuthorizeURLResponse(provider=provider, auth_url=auth_url, state=state)


@router.get("/{provider}/callback", response_model=IntegrationCallbackResponse)
async def oauth_callback(
    provider: ProviderType,
    code: str | None = Query(None),
    state: str | None = Query(None),
    error: str | None = Query(None),
    vault: CredentialVault = Depends(get_vault),
):
    """
    Provider redirect target. The user is identified by the state value,
    not by a bearer token, since this request comes from the browser.
    """
    if error:
        logger.warning("Provider returned OAuth error", provider=provider.value, error=error)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "authorization_denied", "message": error},
        )
    if not code or not state:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "invalid_request", "message": "code and state are required"},
        )

    try:
        credential = await vault.handle_callback(provider, code, state)
    except CredentialError as e:
        logger.warning("OAuth callback failed", provider=provider.value, kind=e.kind.value)
        raise http_error(e) from None

    return IntegrationCallbackResponse(
        provider=provider, connected=True, connected_at=credential.connected_at
    )


@router.delete("/{provider}", response_model=IntegrationDisconnectResponse)
async def disconnect(
    provider: ProviderType,
    user_id: str = Depends(current_user_id),
    vault: CredentialVault = Depends(get_vault),
):
    disconnected = await vault.disconnect(user_id, provider)
    return IntegrationDisconnectResponse(provider=provider, disconnected=disconnected)
