"""
HTTP client for handing generated drafts to the journal-entry service.
"""

import httpx

from app.config import settings
from app.infrastructure.observability.logging import get_logger
from app.models.domain.session_domain import GeneratedEntryDraft

logger = get_logger(__name__)


class JournalHandoffError(Exception):
    def __init__(self, message: str, status_code: int | None = None, recoverable: bool = True):
        super().__init__(message)
        self.status_code = status_code
        self.recoverable = recoverable


class JournalEntryClient:
    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        base_url: str | None = None,
        api_token: str | None = None,
    ):
        self._http = http_client
        self._base_url = (base_url or settings.JOURNAL_API_URL or "").rstrip("/")
        self._api_token = api_token or settings.JOURNAL_API_TOKEN

    @property
    def configured(self) -> bool:
        return bool(self._base_url)

    async def create_entry(
        self, user_id: str, draft: GeneratedEntryDraft, idempotency_key: str | None = None
    ) -> str | None:
        """
        POST one draft. Returns the created entry id when the service reports one.

        ``idempotency_key`` lets the journal service drop a repeated post of
        the same draft.
        """
        if not self.configured:
            raise JournalHandoffError("JOURNAL_API_URL not configured", recoverable=False)

        headers = {"Accept": "application/json"}
        if self._api_token:
            headers["Authorization"] = f"Bearer {self._api_token}"
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        body = {"user_id": user_id, **draft.model_dump(mode="json")}
        url = f"{self._base_url}/entries"

        try:
            if self._http is not None:
                response = await self._http.post(url, json=body, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=settings.PROVIDER_HTTP_TIMEOUT_SECONDS) as c:
                    response = await c.post(url, json=body, headers=headers)
        except httpx.RequestError as e:
            logger.warning("Journal service unreachable", user_id=user_id, error=str(e))
            raise JournalHandoffError(f"Journal service unreachable: {e}") from e

        if response.status_code >= 400:
            logger.warning(
                "Journal service rejected entry",
                user_id=user_id,
                status_code=response.status_code,
            )
            raise JournalHandoffError(
                f"Journal service returned HTTP {response.status_code}",
                status_code=response.status_code,
                recoverable=response.status_code >= 500,
            )

        try:
            data = response.json()
        except ValueError:
            return None
        entry_id = data.get("id") if isinstance(data, dict) else None
        return str(entry_id) if entry_id is not None else None
