"""
Google Drive adapter: Docs, Sheets, Slides and other files the user owns or
last edited, plus Meet recordings saved to Drive.
"""

from app.infrastructure.observability.logging import get_logger
from app.models.domain.activity_domain import ActivityKind, NormalizedActivity, TimeRange
from app.models.domain.credential_domain import AccessToken, ProviderType
from app.services.providers.base import ProviderAdapter, parse_timestamp, plain_text

logger = get_logger(__name__)

DRIVE_API_BASE_URL = "https://www.googleapis.com/drive/v3"
PAGE_SIZE = 100
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
FILE_FIELDS = (
    "nextPageToken,files(id,name,mimeType,webViewLink,createdTime,modifiedTime,"
    "lastModifyingUser(displayName,me),owners(displayName,me),videoMediaMetadata)"
)


def _drive_time(value) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%S")


def build_drive_query(time_range: TimeRange) -> str:
    return (
        f"modifiedTime >= '{_drive_time(time_range.start)}' "
        f"and modifiedTime <= '{_drive_time(time_range.end)}' "
        f"and mimeType != '{FOLDER_MIME_TYPE}' and trashed = false"
    )


def is_meet_recording(file: dict) -> bool:
    mime_type = file.get("mimeType") or ""
    return mime_type.startswith("video/") or "meet recording" in (file.get("name") or "").lower()


class GoogleDriveAdapter(ProviderAdapter):
    provider = ProviderType.GOOGLE_DRIVE
    item_cap = 100

    async def fetch_activity(
        self, user_id: str, token: AccessToken, time_range: TimeRange
    ) -> list[NormalizedActivity]:
        url = f"{DRIVE_API_BASE_URL}/files"
        params = {
            "q": build_drive_query(time_range),
            "orderBy": "modifiedTime desc",
            "pageSize": PAGE_SIZE,
            "fields": FILE_FIELDS,
        }

        items: list[NormalizedActivity] = []
        while len(items) < self.item_cap:
            data = await self._get_json(url, token, params=params)
            for file in data.get("files") or []:
                activity = self._file_to_activity(file, time_range)
                if activity:
                    items.append(activity)

            page_token = data.get("nextPageToken")
            if not page_token:
                break
            params = {**params, "pageToken": page_token}

        logger.info("Drive activity fetched", user_id=user_id, raw_count=len(items))
        return self._finalize(items, time_range)

    def _file_to_activity(self, file: dict, time_range: TimeRange) -> NormalizedActivity | None:
        if not file.get("id") or file.get("mimeType") == FOLDER_MIME_TYPE:
            return None

        modifier = file.get("lastModifyingUser") or {}
        owned = any(owner.get("me") for owner in file.get("owners") or [])
        if not (owned or modifier.get("me")):
            return None

        modified = parse_timestamp(file.get("modifiedTime"))
        created = parse_timestamp(file.get("createdTime"))
        timestamp = next(
            (t for t in (modified, created) if t is not None and time_range.contains(t)), None
        )
        if timestamp is None:
            return None

        recording = is_meet_recording(file)
        duration_ms = (file.get("videoMediaMetadata") or {}).get("durationMillis")
        return NormalizedActivity(
            provider=self.provider,
            external_id=str(file["id"]),
            kind=ActivityKind.RECORDING if recording else ActivityKind.DOCUMENT,
            title=plain_text(file.get("name"), limit=200) or "Untitled file",
            timestamp=timestamp,
            actor=modifier.get("displayName"),
            url=file.get("webViewLink"),
            raw_metadata={
                "mime_type": file.get("mimeType"),
                "owned_by_self": owned,
                "duration_seconds": int(duration_ms) // 1000 if duration_ms else None,
                "created_in_range": created is not None and time_range.contains(created),
            },
        )
