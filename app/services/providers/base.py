"""
Shared behavior for provider adapters.

An adapter turns one provider's API into a list of NormalizedActivity for a
time range. It makes single-attempt requests and reports failures as
FetchError kinds; retry policy belongs to the fetch orchestrator.
"""

import re
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any, ClassVar

import httpx

from app.config import settings
from app.errors import FetchError, FetchErrorKind
from app.infrastructure.observability.logging import get_logger
from app.models.domain.activity_domain import NormalizedActivity, TimeRange
from app.models.domain.credential_domain import AccessToken, ProviderType

logger = get_logger(__name__)

_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")


def create_provider_http_client() -> httpx.AsyncClient:
    """HTTP client shared by all adapters for the life of the app."""
    timeout = httpx.Timeout(settings.PROVIDER_HTTP_TIMEOUT_SECONDS)
    limits = httpx.Limits(max_keepalive_connections=20, max_connections=50)
    return httpx.AsyncClient(timeout=timeout, limits=limits)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse ISO-8601 strings and epoch seconds into aware UTC datetimes."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(float(value), UTC)
    else:
        text = str(value).strip()
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            try:
                parsed = datetime.fromtimestamp(float(text), UTC)
            except ValueError:
                logger.debug("Unparseable provider timestamp", value=text[:40])
                return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def plain_text(value: str | None, limit: int | None = None) -> str:
    """Strip markup and collapse whitespace."""
    if not value:
        return ""
    text = _WHITESPACE_RE.sub(" ", _TAG_RE.sub(" ", value)).strip()
    if limit and len(text) > limit:
        return text[: limit - 1].rstrip() + "…"
    return text


def _retry_after_seconds(response: httpx.Response) -> float | None:
    header = response.headers.get("retry-after")
    if not header:
        reset = response.headers.get("x-ratelimit-reset")
        if reset and reset.isdigit():
            return max(0.0, float(reset) - datetime.now(UTC).timestamp())
        return None
    try:
        return max(0.0, float(header))
    except ValueError:
        try:
            when = parsedate_to_datetime(header)
        except (TypeError, ValueError):
            return None
        return max(0.0, (when - datetime.now(UTC)).total_seconds())


class ProviderAdapter(ABC):
    """Base class for one provider's activity fetcher."""

    provider: ClassVar[ProviderType]
    item_cap: ClassVar[int] = 100

    def __init__(self, http_client: httpx.AsyncClient):
        self._client = http_client

    @abstractmethod
    async def fetch_activity(
        self, user_id: str, token: AccessToken, time_range: TimeRange
    ) -> list[NormalizedActivity]:
        """
        Fetch the user's activity within ``time_range``.

        Raises:
            FetchError: UNAUTHORIZED, RATE_LIMITED, ENDPOINT_GONE or UNREACHABLE
        """

    def _headers(self, token: AccessToken) -> dict[str, str]:
        return {"Authorization": f"Bearer {token.access_token}", "Accept": "application/json"}

    async def _get_json(
        self,
        url: str,
        token: AccessToken,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> Any:
        """Single GET, mapped to FetchError on any failure."""
        request_headers = {**self._headers(token), **(headers or {})}
        try:
            response = await self._client.get(url, params=params, headers=request_headers)
        except httpx.TimeoutException as e:
            raise FetchError(
                f"{self.provider.value} request timed out",
                kind=FetchErrorKind.UNREACHABLE,
                provider=self.provider.value,
            ) from e
        except httpx.RequestError as e:
            raise FetchError(
                f"{self.provider.value} unreachable: {type(e).__name__}",
                kind=FetchErrorKind.UNREACHABLE,
                provider=self.provider.value,
            ) from e

        self._raise_for_status(response)

        try:
            return response.json() if response.content else {}
        except ValueError as e:
            raise FetchError(
                f"{self.provider.value} returned a non-JSON body",
                kind=FetchErrorKind.UNREACHABLE,
                provider=self.provider.value,
                status_code=response.status_code,
            ) from e

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if response.is_success:
            return

        kind = self._classify_status(response)
        logger.warning(
            "Provider request failed",
            provider=self.provider.value,
            status_code=status,
            kind=kind.value,
            path=response.request.url.path if response.request else None,
        )
        raise FetchError(
            f"{self.provider.value} responded with HTTP {status}",
            kind=kind,
            provider=self.provider.value,
            status_code=status,
            retry_after=(
                _retry_after_seconds(response) if kind == FetchErrorKind.RATE_LIMITED else None
            ),
        )

    def _classify_status(self, response: httpx.Response) -> FetchErrorKind:
        status = response.status_code
        if status == 429:
            return FetchErrorKind.RATE_LIMITED
        if status in (401, 403):
            return FetchErrorKind.UNAUTHORIZED
        if status >= 500:
            return FetchErrorKind.UNREACHABLE
        # 404, 410 and request shapes the provider no longer accepts
        return FetchErrorKind.ENDPOINT_GONE

    def _finalize(
        self, items: list[NormalizedActivity], time_range: TimeRange
    ) -> list[NormalizedActivity]:
        """Drop out-of-range and duplicate items, order newest first, apply the cap."""
        seen: set[str] = set()
        kept = []
        for item in items:
            if not time_range.contains(item.timestamp) or item.external_id in seen:
                continue
            seen.add(item.external_id)
            kept.append(item)
        kept.sort(key=lambda a: a.timestamp, reverse=True)
        if len(kept) > self.item_cap:
            logger.info(
                "Provider result truncated to cap",
                provider=self.provider.value,
                fetched=len(kept),
                cap=self.item_cap,
            )
        return kept[: self.item_cap]
