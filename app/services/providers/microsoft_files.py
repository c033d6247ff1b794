"""
OneDrive and SharePoint adapters: documents the user touched, read as Graph
drive items.

OneDrive uses the user's recent-files view. SharePoint walks the sites the
user follows and reads each site's document library, newest first.
"""

from app.infrastructure.observability.logging import get_logger
from app.models.domain.activity_domain import ActivityKind, NormalizedActivity, TimeRange
from app.models.domain.credential_domain import AccessToken, ProviderType
from app.services.providers.base import parse_timestamp, plain_text
from app.services.providers.microsoft_graph import GRAPH_API_BASE_URL, GraphAdapter

logger = get_logger(__name__)

RECENT_PAGE_SIZE = 50
MAX_FOLLOWED_SITES = 10
SITE_PAGE_SIZE = 50


class DriveItemAdapter(GraphAdapter):
    """Maps Graph driveItem resources; folders are skipped."""

    item_cap = 100

    def _drive_item_to_activity(
        self, item: dict, time_range: TimeRange, site: dict | None = None
    ) -> NormalizedActivity | None:
        # items shared from another drive carry their details in remoteItem
        details = {**(item.get("remoteItem") or {}), **item}
        if "folder" in details or not details.get("id"):
            return None

        modified = parse_timestamp(details.get("lastModifiedDateTime"))
        created = parse_timestamp(details.get("createdDateTime"))
        timestamp = next(
            (t for t in (modified, created) if t is not None and time_range.contains(t)), None
        )
        if timestamp is None:
            return None

        modified_by = ((details.get("lastModifiedBy") or {}).get("user")) or {}
        raw_metadata = {
            "mime_type": (details.get("file") or {}).get("mimeType"),
            "size": details.get("size"),
            "created_in_range": created is not None and time_range.contains(created),
        }
        if site is not None:
            raw_metadata["site"] = site.get("displayName") or site.get("name")

        return NormalizedActivity(
            provider=self.provider,
            external_id=str(details["id"]),
            kind=ActivityKind.DOCUMENT,
            title=plain_text(details.get("name"), limit=200) or "Untitled file",
            timestamp=timestamp,
            actor=modified_by.get("displayName"),
            url=details.get("webUrl"),
            raw_metadata=raw_metadata,
        )


class OneDriveAdapter(DriveItemAdapter):
    provider = ProviderType.ONEDRIVE

    async def fetch_activity(
        self, user_id: str, token: AccessToken, time_range: TimeRange
    ) -> list[NormalizedActivity]:
        recent = await self._collect(
            f"{GRAPH_API_BASE_URL}/me/drive/recent",
            token,
            {"$top": RECENT_PAGE_SIZE},
            limit=self.item_cap,
        )
        items = [
            activity
            for activity in (self._drive_item_to_activity(item, time_range) for item in recent)
            if activity
        ]

        logger.info("OneDrive activity fetched", user_id=user_id, raw_count=len(items))
        return self._finalize(items, time_range)


class SharePointAdapter(DriveItemAdapter):
    provider = ProviderType.SHAREPOINT

    async def fetch_activity(
        self, user_id: str, token: AccessToken, time_range: TimeRange
    ) -> list[NormalizedActivity]:
        sites = await self._collect(
            f"{GRAPH_API_BASE_URL}/me/followedSites",
            token,
            {"$top": MAX_FOLLOWED_SITES},
            limit=MAX_FOLLOWED_SITES,
        )

        items: list[NormalizedActivity] = []
        for site in sites:
            if len(items) >= self.item_cap:
                break
            if not site.get("id"):
                continue
            drive_items = await self._collect(
                f"{GRAPH_API_BASE_URL}/sites/{site['id']}/drive/root/children",
                token,
                {"$top": SITE_PAGE_SIZE, "$orderby": "lastModifiedDateTime desc"},
                limit=self.item_cap,
            )
            for item in drive_items:
                activity = self._drive_item_to_activity(item, time_range, site=site)
                if activity:
                    items.append(activity)

        logger.info(
            "SharePoint activity fetched",
            user_id=user_id,
            site_count=len(sites),
            raw_count=len(items),
        )
        return self._finalize(items, time_range)
