"""
Microsoft Graph plumbing shared by the Teams, OneDrive, SharePoint and
OneNote adapters.
"""

from datetime import datetime

from app.models.domain.credential_domain import AccessToken
from app.services.providers.base import ProviderAdapter

GRAPH_API_BASE_URL = "https://graph.microsoft.com/v1.0"


def graph_time(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


class GraphAdapter(ProviderAdapter):
    """Adapter that reads paged Graph collections."""

    async def _collect(self, url: str, token: AccessToken, params: dict, limit: int) -> list[dict]:
        """Follow @odata.nextLink until exhausted or ``limit`` items collected."""
        results: list[dict] = []
        next_url: str | None = url
        next_params: dict | None = params
        while next_url and len(results) < limit:
            data = await self._get_json(next_url, token, params=next_params)
            results.extend(data.get("value") or [])
            next_url = data.get("@odata.nextLink")
            # nextLink already carries the query string
            next_params = None
        return results[:limit]
