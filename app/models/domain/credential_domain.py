# models/domain/credential_domain.py
"""
Integration credential domain models.
Tokens are stored encrypted; plaintext only exists in AccessToken, which is
handed out by the credential vault for a single fetch.
"""

from datetime import UTC, datetime, timedelta
from enum import StrEnum

from pydantic import BaseModel, Field


class ProviderType(StrEnum):
    """Closed set of supported third-party providers."""

    GITHUB = "github"
    JIRA = "jira"
    CONFLUENCE = "confluence"
    FIGMA = "figma"
    GOOGLE_CALENDAR = "google_calendar"
    GOOGLE_DRIVE = "google_drive"
    SLACK = "slack"
    TEAMS = "teams"
    ONEDRIVE = "onedrive"
    SHAREPOINT = "sharepoint"
    ONENOTE = "onenote"
    ZOOM = "zoom"


class IntegrationCredential(BaseModel):
    """Durable credential record, one per (user_id, provider)."""

    user_id: str
    provider: ProviderType
    access_token_encrypted: bytes | None = None
    refresh_token_encrypted: bytes | None = None
    key_version: int = 1
    expires_at: datetime | None = None
    scope: str = ""
    is_connected: bool = True
    connected_at: datetime | None = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    row_version: int = 0

    def expires_within(self, seconds: int, now: datetime | None = None) -> bool:
        """Check if the access token is expired or expires within ``seconds``."""
        if not self.expires_at:
            return False
        now = now or datetime.now(UTC)
        return now + timedelta(seconds=seconds) >= self.expires_at


class AccessToken(BaseModel):
    """Decrypted access token for one fetch. Never persisted or logged."""

    user_id: str
    provider: ProviderType
    access_token: str
    expires_at: datetime | None = None
    scope: str = ""

    def __repr__(self) -> str:
        return f"AccessToken(user_id={self.user_id!r}, provider={self.provider.value!r})"

    __str__ = __repr__


class TokenResponse(BaseModel):
    """Normalized token-endpoint response."""

    access_token: str | None = None
    refresh_token: str | None = None
    token_type: str = "Bearer"
    expires_in: int | None = None
    scope: str = ""
    expires_at: datetime | None = None

    @classmethod
    def from_payload(cls, data: dict, now: datetime | None = None) -> "TokenResponse":
        now = now or datetime.now(UTC)
        expires_in = data.get("expires_in")
        scope = data.get("scope") or ""
        if isinstance(scope, list):
            scope = " ".join(scope)
        return cls(
            access_token=data.get("access_token"),
            refresh_token=data.get("refresh_token"),
            token_type=data.get("token_type") or "Bearer",
            expires_in=int(expires_in) if expires_in else None,
            scope=scope,
            expires_at=now + timedelta(seconds=int(expires_in)) if expires_in else None,
        )

    def is_valid(self) -> bool:
        """Check if token response contains required fields."""
        return bool(self.access_token)


class ConnectionStatus(BaseModel):
    """Connection summary without any token material."""

    provider: ProviderType
    connected: bool
    configured: bool
    connected_at: datetime | None = None
    expires_at: datetime | None = None
    scope: str = ""
