# models/api/integration_response.py
"""
Integration API response models.
Used by the integrations routes; never carry token material.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from app.models.domain.credential_domain import ProviderType


class IntegrationStatusResponse(BaseModel):
    provider: ProviderType = Field(..., description="Provider identifier")
    connected: bool = Field(..., description="Whether the user has a live connection")
    configured: bool = Field(..., description="Whether OAuth client credentials are configured")
    connected_at: datetime | None = Field(None, description="When the connection was made")
    expires_at: datetime | None = Field(None, description="Access token expiry, if known")
    scope: str = Field(default="", description="Granted scopes")


class IntegrationListResponse(BaseModel):
    integrations: list[IntegrationStatusResponse]
    integrations_enabled: bool = Field(..., description="Whether fetching is enabled at all")


class AuthorizeURLResponse(BaseModel):
    provider: ProviderType
    auth_url: str = Field(..., description="Provider consent screen URL")
    state: str = Field(..., description="OAuth state parameter")


class IntegrationCallbackResponse(BaseModel):
    provider: ProviderType
    connected: bool = True
    connected_at: datetime | None = None


class IntegrationDisconnectResponse(BaseModel):
    provider: ProviderType
    disconnected: bool = Field(..., description="False when there was nothing to disconnect")
