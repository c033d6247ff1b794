"""
Figma adapter: design files edited and comments written in the window.

Figma has no per-user activity feed, so files are discovered through the
configured team ids (teams -> projects -> files).
"""

import httpx

from app.infrastructure.observability.logging import get_logger
from app.models.domain.activity_domain import ActivityKind, NormalizedActivity, TimeRange
from app.models.domain.credential_domain import AccessToken, ProviderType
from app.services.providers.base import ProviderAdapter, parse_timestamp, plain_text

logger = get_logger(__name__)

FIGMA_API_BASE_URL = "https://api.figma.com/v1"
FIGMA_FILE_URL = "https://www.figma.com/file"


class FigmaAdapter(ProviderAdapter):
    provider = ProviderType.FIGMA
    item_cap = 100

    def __init__(self, http_client: httpx.AsyncClient, team_ids: list[str] | None = None):
        super().__init__(http_client)
        self._team_ids = team_ids or []

    async def fetch_activity(
        self, user_id: str, token: AccessToken, time_range: TimeRange
    ) -> list[NormalizedActivity]:
        if not self._team_ids:
            logger.warning("No Figma team ids configured; skipping file discovery")
            return []

        me = await self._get_json(f"{FIGMA_API_BASE_URL}/me", token)
        me_id = me.get("id")

        items: list[NormalizedActivity] = []
        recent_files: list[dict] = []
        for team_id in self._team_ids:
            projects = await self._get_json(
                f"{FIGMA_API_BASE_URL}/teams/{team_id}/projects", token
            )
            for project in projects.get("projects") or []:
                files = await self._get_json(
                    f"{FIGMA_API_BASE_URL}/projects/{project['id']}/files", token
                )
                for raw in files.get("files") or []:
                    modified = parse_timestamp(raw.get("last_modified"))
                    if modified is None or not time_range.contains(modified):
                        continue
                    recent_files.append(raw)
                    items.append(self._file_to_activity(raw, project, modified))
                if len(items) >= self.item_cap:
                    break

        for raw in recent_files[: self.item_cap]:
            comments = await self._get_json(
                f"{FIGMA_API_BASE_URL}/files/{raw['key']}/comments", token
            )
            for comment in comments.get("comments") or []:
                if (comment.get("user") or {}).get("id") != me_id:
                    continue
                activity = self._comment_to_activity(comment, raw, time_range)
                if activity:
                    items.append(activity)

        logger.info("Figma activity fetched", user_id=user_id, raw_count=len(items))
        return self._finalize(items, time_range)

    def _file_to_activity(self, raw: dict, project: dict, modified) -> NormalizedActivity:
        return NormalizedActivity(
            provider=self.provider,
            external_id=raw["key"],
            kind=ActivityKind.DESIGN_FILE,
            title=raw.get("name") or raw["key"],
            timestamp=modified,
            url=f"{FIGMA_FILE_URL}/{raw['key']}",
            raw_metadata={"project": project.get("name"), "project_id": project.get("id")},
        )

    def _comment_to_activity(
        self, comment: dict, file: dict, time_range: TimeRange
    ) -> NormalizedActivity | None:
        created = parse_timestamp(comment.get("created_at"))
        if created is None or not time_range.contains(created):
            return None
        return NormalizedActivity(
            provider=self.provider,
            external_id=f"{file['key']}:comment:{comment.get('id')}",
            kind=ActivityKind.COMMENT,
            title=f"Comment on {file.get('name') or file['key']}",
            timestamp=created,
            actor=(comment.get("user") or {}).get("handle"),
            url=f"{FIGMA_FILE_URL}/{file['key']}",
            description=plain_text(comment.get("message"), limit=500) or None,
            raw_metadata={"file_key": file["key"], "resolved": bool(comment.get("resolved_at"))},
        )
