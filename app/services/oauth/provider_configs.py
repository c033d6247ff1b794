"""
Per-provider OAuth 2.0 configuration.

Client credentials come from settings; endpoints and scopes are fixed per
provider. Redirect URIs must match what is registered in each provider's
developer console exactly.
"""

from dataclasses import dataclass, field

from app.config import Settings, settings
from app.models.domain.credential_domain import ProviderType

ATLASSIAN_AUTHORIZE_URL = "https://auth.atlassian.com/authorize"
ATLASSIAN_TOKEN_URL = "https://auth.atlassian.com/oauth/token"
GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"
GOOGLE_OFFLINE_PARAMS = {
    "access_type": "offline",
    "prompt": "consent",
    "include_granted_scopes": "true",
}


@dataclass(frozen=True)
class OAuthProviderConfig:
    provider: ProviderType
    client_id: str | None
    client_secret: str | None
    authorize_url: str
    token_url: str
    redirect_uri: str
    scopes: list[str]
    scope_param: str = "scope"
    scope_separator: str = " "
    extra_authorize_params: dict[str, str] = field(default_factory=dict)
    revoke_url: str | None = None
    refresh_url: str | None = None
    # send client credentials as HTTP Basic auth instead of form fields
    client_auth_basic: bool = False

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def scope_string(self) -> str:
        return self.scope_separator.join(self.scopes)


def build_provider_configs(cfg: Settings = settings) -> dict[ProviderType, OAuthProviderConfig]:
    """Build the OAuth configuration table from settings."""
    ms_base = f"https://login.microsoftonline.com/{cfg.MICROSOFT_TENANT}/oauth2/v2.0"

    def microsoft(provider: ProviderType, scopes: list[str]) -> OAuthProviderConfig:
        return OAuthProviderConfig(
            provider=provider,
            client_id=cfg.MICROSOFT_CLIENT_ID,
            client_secret=cfg.MICROSOFT_CLIENT_SECRET,
            authorize_url=f"{ms_base}/authorize",
            token_url=f"{ms_base}/token",
            redirect_uri=cfg.redirect_uri(provider.value),
            scopes=["User.Read", *scopes, "offline_access"],
            extra_authorize_params={"response_mode": "query"},
        )

    def google(provider: ProviderType, scopes: list[str]) -> OAuthProviderConfig:
        return OAuthProviderConfig(
            provider=provider,
            client_id=cfg.GOOGLE_CLIENT_ID,
            client_secret=cfg.GOOGLE_CLIENT_SECRET,
            authorize_url=GOOGLE_AUTHORIZE_URL,
            token_url=GOOGLE_TOKEN_URL,
            redirect_uri=cfg.redirect_uri(provider.value),
            scopes=scopes,
            extra_authorize_params=dict(GOOGLE_OFFLINE_PARAMS),
            revoke_url=GOOGLE_REVOKE_URL,
        )

    return {
        ProviderType.GITHUB: OAuthProviderConfig(
            provider=ProviderType.GITHUB,
            client_id=cfg.GITHUB_CLIENT_ID,
            client_secret=cfg.GITHUB_CLIENT_SECRET,
            authorize_url="https://github.com/login/oauth/authorize",
            token_url="https://github.com/login/oauth/access_token",
            redirect_uri=cfg.redirect_uri(ProviderType.GITHUB.value),
            scopes=["repo", "read:user"],
        ),
        ProviderType.JIRA: OAuthProviderConfig(
            provider=ProviderType.JIRA,
            client_id=cfg.ATLASSIAN_CLIENT_ID,
            client_secret=cfg.ATLASSIAN_CLIENT_SECRET,
            authorize_url=ATLASSIAN_AUTHORIZE_URL,
            token_url=ATLASSIAN_TOKEN_URL,
            redirect_uri=cfg.redirect_uri(ProviderType.JIRA.value),
            scopes=["read:jira-work", "read:jira-user", "offline_access"],
            extra_authorize_params={"audience": "api.atlassian.com", "prompt": "consent"},
        ),
        ProviderType.CONFLUENCE: OAuthProviderConfig(
            provider=ProviderType.CONFLUENCE,
            client_id=cfg.ATLASSIAN_CLIENT_ID,
            client_secret=cfg.ATLASSIAN_CLIENT_SECRET,
            authorize_url=ATLASSIAN_AUTHORIZE_URL,
            token_url=ATLASSIAN_TOKEN_URL,
            redirect_uri=cfg.redirect_uri(ProviderType.CONFLUENCE.value),
            scopes=[
                "read:confluence-content.all",
                "read:confluence-user",
                "search:confluence",
                "offline_access",
            ],
            extra_authorize_params={"audience": "api.atlassian.com", "prompt": "consent"},
        ),
        ProviderType.FIGMA: OAuthProviderConfig(
            provider=ProviderType.FIGMA,
            client_id=cfg.FIGMA_CLIENT_ID,
            client_secret=cfg.FIGMA_CLIENT_SECRET,
            authorize_url="https://www.figma.com/oauth",
            token_url="https://api.figma.com/v1/oauth/token",
            redirect_uri=cfg.redirect_uri(ProviderType.FIGMA.value),
            scopes=["file_read"],
            scope_separator=",",
            refresh_url="https://api.figma.com/v1/oauth/refresh",
        ),
        ProviderType.GOOGLE_CALENDAR: google(
            ProviderType.GOOGLE_CALENDAR, ["https://www.googleapis.com/auth/calendar.readonly"]
        ),
        ProviderType.GOOGLE_DRIVE: google(
            ProviderType.GOOGLE_DRIVE, ["https://www.googleapis.com/auth/drive.metadata.readonly"]
        ),
        ProviderType.SLACK: OAuthProviderConfig(
            provider=ProviderType.SLACK,
            client_id=cfg.SLACK_CLIENT_ID,
            client_secret=cfg.SLACK_CLIENT_SECRET,
            authorize_url="https://slack.com/oauth/v2/authorize",
            token_url="https://slack.com/api/oauth.v2.access",
            redirect_uri=cfg.redirect_uri(ProviderType.SLACK.value),
            # search.messages needs a user token, so scopes go in user_scope
            scopes=["search:read", "users:read", "channels:history", "groups:history"],
            scope_param="user_scope",
            scope_separator=",",
            revoke_url="https://slack.com/api/auth.revoke",
        ),
        ProviderType.TEAMS: microsoft(ProviderType.TEAMS, ["Chat.Read"]),
        ProviderType.ONEDRIVE: microsoft(ProviderType.ONEDRIVE, ["Files.Read"]),
        ProviderType.SHAREPOINT: microsoft(ProviderType.SHAREPOINT, ["Sites.Read.All"]),
        ProviderType.ONENOTE: microsoft(ProviderType.ONENOTE, ["Notes.Read"]),
        ProviderType.ZOOM: OAuthProviderConfig(
            provider=ProviderType.ZOOM,
            client_id=cfg.ZOOM_CLIENT_ID,
            client_secret=cfg.ZOOM_CLIENT_SECRET,
            authorize_url="https://zoom.us/oauth/authorize",
            token_url="https://zoom.us/oauth/token",
            redirect_uri=cfg.redirect_uri(ProviderType.ZOOM.value),
            # granular scopes are configured on the Zoom app itself
            scopes=[],
            revoke_url="https://zoom.us/oauth/revoke",
            client_auth_basic=True,
        ),
    }
