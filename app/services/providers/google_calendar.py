"""
Google Calendar adapter: meetings on the user's primary calendar.
"""

from app.infrastructure.observability.logging import get_logger
from app.models.domain.activity_domain import ActivityKind, NormalizedActivity, TimeRange
from app.models.domain.credential_domain import AccessToken, ProviderType
from app.services.providers.base import ProviderAdapter, parse_timestamp, plain_text

logger = get_logger(__name__)

CALENDAR_API_BASE_URL = "https://www.googleapis.com/calendar/v3"
CALENDAR_PRIMARY = "primary"
PAGE_SIZE = 250


class GoogleCalendarAdapter(ProviderAdapter):
    provider = ProviderType.GOOGLE_CALENDAR
    item_cap = 200

    async def fetch_activity(
        self, user_id: str, token: AccessToken, time_range: TimeRange
    ) -> list[NormalizedActivity]:
        url = f"{CALENDAR_API_BASE_URL}/calendars/{CALENDAR_PRIMARY}/events"
        params = {
            "timeMin": time_range.start.isoformat(),
            "timeMax": time_range.end.isoformat(),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": PAGE_SIZE,
        }

        items: list[NormalizedActivity] = []
        while len(items) < self.item_cap:
            data = await self._get_json(url, token, params=params)
            for event in data.get("items") or []:
                activity = self._event_to_activity(event)
                if activity:
                    items.append(activity)

            page_token = data.get("nextPageToken")
            if not page_token:
                break
            params = {**params, "pageToken": page_token}

        logger.info("Calendar activity fetched", user_id=user_id, raw_count=len(items))
        return self._finalize(items, time_range)

    def _event_to_activity(self, event: dict) -> NormalizedActivity | None:
        if event.get("status") == "cancelled" or not event.get("id"):
            return None

        attendees = event.get("attendees") or []
        me = next((a for a in attendees if a.get("self")), None)
        if me and me.get("responseStatus") == "declined":
            return None

        start = event.get("start") or {}
        end = event.get("end") or {}
        started = parse_timestamp(start.get("dateTime") or start.get("date"))
        if started is None:
            return None
        ended = parse_timestamp(end.get("dateTime") or end.get("date"))

        return NormalizedActivity(
            provider=self.provider,
            external_id=event["id"],
            kind=ActivityKind.MEETING,
            title=plain_text(event.get("summary"), limit=200) or "(no title)",
            timestamp=started,
            actor=(event.get("organizer") or {}).get("email"),
            url=event.get("htmlLink"),
            description=plain_text(event.get("description"), limit=500) or None,
            raw_metadata={
                "attendee_count": len(attendees),
                "all_day": "date" in start and "dateTime" not in start,
                "duration_minutes": (
                    int((ended - started).total_seconds() // 60) if ended else None
                ),
                "organizer_is_self": bool((event.get("organizer") or {}).get("self")),
            },
        )
