"""
Closed registry of provider adapters keyed by ProviderType.
"""

import httpx

from app.config import Settings, settings
from app.models.domain.credential_domain import ProviderType
from app.services.providers.atlassian import ConfluenceAdapter, JiraAdapter
from app.services.providers.base import ProviderAdapter
from app.services.providers.figma import FigmaAdapter
from app.services.providers.github import GitHubAdapter
from app.services.providers.google_calendar import GoogleCalendarAdapter
from app.services.providers.google_drive import GoogleDriveAdapter
from app.services.providers.microsoft_files import OneDriveAdapter, SharePointAdapter
from app.services.providers.onenote import OneNoteAdapter
from app.services.providers.slack import SlackAdapter
from app.services.providers.teams import TeamsAdapter
from app.services.providers.zoom import ZoomAdapter

ADAPTER_CLASSES: dict[ProviderType, type[ProviderAdapter]] = {
    ProviderType.GITHUB: GitHubAdapter,
    ProviderType.JIRA: JiraAdapter,
    ProviderType.CONFLUENCE: ConfluenceAdapter,
    ProviderType.FIGMA: FigmaAdapter,
    ProviderType.GOOGLE_CALENDAR: GoogleCalendarAdapter,
    ProviderType.GOOGLE_DRIVE: GoogleDriveAdapter,
    ProviderType.SLACK: SlackAdapter,
    ProviderType.TEAMS: TeamsAdapter,
    ProviderType.ONEDRIVE: OneDriveAdapter,
    ProviderType.SHAREPOINT: SharePointAdapter,
    ProviderType.ONENOTE: OneNoteAdapter,
    ProviderType.ZOOM: ZoomAdapter,
}


def build_adapters(
    http_client: httpx.AsyncClient, cfg: Settings = settings
) -> dict[ProviderType, ProviderAdapter]:
    """Instantiate one adapter per provider around a shared HTTP client."""
    adapters: dict[ProviderType, ProviderAdapter] = {}
    for provider, adapter_cls in ADAPTER_CLASSES.items():
        if adapter_cls is FigmaAdapter:
            adapters[provider] = FigmaAdapter(http_client, team_ids=cfg.figma_team_ids())
        else:
            adapters[provider] = adapter_cls(http_client)
    return adapters
