"""
Zoom adapter: past meetings the user hosted or joined, and their cloud
recordings.

The recordings endpoint accepts at most a month per request, so longer
windows are queried in consecutive slices.
"""

from datetime import timedelta

from app.infrastructure.observability.logging import get_logger
from app.models.domain.activity_domain import ActivityKind, NormalizedActivity, TimeRange
from app.models.domain.credential_domain import AccessToken, ProviderType
from app.services.providers.base import ProviderAdapter, parse_timestamp, plain_text

logger = get_logger(__name__)

ZOOM_API_BASE_URL = "https://api.zoom.us/v2"
PAGE_SIZE = 100
MAX_QUERY_DAYS = 30


def date_slices(time_range: TimeRange, max_days: int = MAX_QUERY_DAYS) -> list[tuple[str, str]]:
    """Split the window into inclusive ``(from, to)`` date pairs of at most ``max_days``."""
    slices = []
    start = time_range.start.date()
    last = time_range.end.date()
    while start <= last:
        end = min(start + timedelta(days=max_days - 1), last)
        slices.append((start.isoformat(), end.isoformat()))
        start = end + timedelta(days=1)
    return slices


class ZoomAdapter(ProviderAdapter):
    provider = ProviderType.ZOOM
    item_cap = 100

    async def fetch_activity(
        self, user_id: str, token: AccessToken, time_range: TimeRange
    ) -> list[NormalizedActivity]:
        items: list[NormalizedActivity] = []

        for date_from, date_to in date_slices(time_range):
            meetings = await self._paged(
                f"{ZOOM_API_BASE_URL}/users/me/meetings",
                token,
                {"type": "previous_meetings", "from": date_from, "to": date_to},
            )
            items.extend(a for a in map(self._meeting_to_activity, meetings) if a)

            recordings = await self._paged(
                f"{ZOOM_API_BASE_URL}/users/me/recordings",
                token,
                {"from": date_from, "to": date_to},
            )
            items.extend(a for a in map(self._recording_to_activity, recordings) if a)

        logger.info("Zoom activity fetched", user_id=user_id, raw_count=len(items))
        return self._finalize(items, time_range)

    async def _paged(self, url: str, token: AccessToken, params: dict) -> list[dict]:
        """Follow next_page_token until exhausted or the cap is reached."""
        results: list[dict] = []
        params = {**params, "page_size": PAGE_SIZE}
        while len(results) < self.item_cap:
            data = await self._get_json(url, token, params=params)
            results.extend(data.get("meetings") or [])
            next_token = data.get("next_page_token")
            if not next_token:
                break
            params = {**params, "next_page_token": next_token}
        return results

    def _meeting_to_activity(self, meeting: dict) -> NormalizedActivity | None:
        meeting_key = meeting.get("uuid") or meeting.get("id")
        started = parse_timestamp(meeting.get("start_time"))
        if not meeting_key or started is None:
            return None

        return NormalizedActivity(
            provider=self.provider,
            external_id=f"meeting:{meeting_key}",
            kind=ActivityKind.MEETING,
            title=plain_text(meeting.get("topic"), limit=200) or "Untitled meeting",
            timestamp=started,
            actor=meeting.get("host_email"),
            description=plain_text(meeting.get("agenda"), limit=500) or None,
            raw_metadata={
                "meeting_id": meeting.get("id"),
                "duration_minutes": meeting.get("duration"),
                "participants_count": meeting.get("participants_count"),
            },
        )

    def _recording_to_activity(self, recording: dict) -> NormalizedActivity | None:
        recording_key = recording.get("uuid") or recording.get("id")
        started = parse_timestamp(recording.get("recording_start") or recording.get("start_time"))
        if not recording_key or started is None:
            return None

        topic = plain_text(recording.get("topic"), limit=180) or "Untitled meeting"
        return NormalizedActivity(
            provider=self.provider,
            external_id=f"recording:{recording_key}",
            kind=ActivityKind.RECORDING,
            title=f"Recording: {topic}",
            timestamp=started,
            url=recording.get("share_url"),
            raw_metadata={
                "meeting_id": recording.get("id"),
                "duration_minutes": recording.get("duration"),
                "recording_count": recording.get("recording_count")
                or len(recording.get("recording_files") or []),
            },
        )
