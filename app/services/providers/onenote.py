"""
OneNote adapter: notebook pages created or edited in the window.
"""

from app.infrastructure.observability.logging import get_logger
from app.models.domain.activity_domain import ActivityKind, NormalizedActivity, TimeRange
from app.models.domain.credential_domain import AccessToken, ProviderType
from app.services.providers.base import parse_timestamp, plain_text
from app.services.providers.microsoft_graph import GRAPH_API_BASE_URL, GraphAdapter, graph_time

logger = get_logger(__name__)

PAGE_SIZE = 100
PAGE_FIELDS = "id,title,createdDateTime,lastModifiedDateTime,links"


class OneNoteAdapter(GraphAdapter):
    provider = ProviderType.ONENOTE
    item_cap = 100

    async def fetch_activity(
        self, user_id: str, token: AccessToken, time_range: TimeRange
    ) -> list[NormalizedActivity]:
        pages = await self._collect(
            f"{GRAPH_API_BASE_URL}/me/onenote/pages",
            token,
            {
                "$select": PAGE_FIELDS,
                "$expand": "parentSection($select=displayName),"
                "parentNotebook($select=displayName)",
                "$filter": f"lastModifiedDateTime ge {graph_time(time_range.start)}",
                "$orderby": "lastModifiedDateTime desc",
                "$top": PAGE_SIZE,
            },
            limit=self.item_cap,
        )
        items = [
            activity
            for activity in (self._page_to_activity(page, time_range) for page in pages)
            if activity
        ]

        logger.info("OneNote activity fetched", user_id=user_id, raw_count=len(items))
        return self._finalize(items, time_range)

    def _page_to_activity(self, page: dict, time_range: TimeRange) -> NormalizedActivity | None:
        if not page.get("id"):
            return None

        modified = parse_timestamp(page.get("lastModifiedDateTime"))
        created = parse_timestamp(page.get("createdDateTime"))
        timestamp = next(
            (t for t in (modified, created) if t is not None and time_range.contains(t)), None
        )
        if timestamp is None:
            return None

        links = page.get("links") or {}
        return NormalizedActivity(
            provider=self.provider,
            external_id=str(page["id"]),
            kind=ActivityKind.PAGE,
            title=plain_text(page.get("title"), limit=200) or "Untitled page",
            timestamp=timestamp,
            url=(links.get("oneNoteWebUrl") or {}).get("href"),
            raw_metadata={
                "notebook": (page.get("parentNotebook") or {}).get("displayName"),
                "section": (page.get("parentSection") or {}).get("displayName"),
                "created_in_range": created is not None and time_range.contains(created),
            },
        )
