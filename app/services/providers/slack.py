"""
Slack adapter: messages the user posted, found through search.messages.

Slack reports most failures as HTTP 200 with ``{"ok": false, "error": ...}``,
so payload errors are mapped to FetchError kinds here.
"""

from datetime import timedelta

from app.errors import FetchError, FetchErrorKind
from app.infrastructure.observability.logging import get_logger
from app.models.domain.activity_domain import ActivityKind, NormalizedActivity, TimeRange
from app.models.domain.credential_domain import AccessToken, ProviderType
from app.services.providers.base import ProviderAdapter, parse_timestamp, plain_text

logger = get_logger(__name__)

SLACK_API_BASE_URL = "https://slack.com/api"
PAGE_SIZE = 100

_UNAUTHORIZED_ERRORS = {
    "invalid_auth",
    "not_authed",
    "token_expired",
    "token_revoked",
    "account_inactive",
    "missing_scope",
}
_TRANSIENT_ERRORS = {"internal_error", "fatal_error", "service_unavailable", "request_timeout"}


class SlackAdapter(ProviderAdapter):
    provider = ProviderType.SLACK
    item_cap = 200

    async def _call(self, method: str, token: AccessToken, params: dict | None = None) -> dict:
        data = await self._get_json(f"{SLACK_API_BASE_URL}/{method}", token, params=params)
        if data.get("ok"):
            return data

        error = data.get("error", "unknown_error")
        if error in _UNAUTHORIZED_ERRORS:
            kind = FetchErrorKind.UNAUTHORIZED
        elif error == "ratelimited":
            kind = FetchErrorKind.RATE_LIMITED
        elif error in _TRANSIENT_ERRORS:
            kind = FetchErrorKind.UNREACHABLE
        else:
            kind = FetchErrorKind.ENDPOINT_GONE

        logger.warning("Slack API error", method=method, error=error, kind=kind.value)
        raise FetchError(f"Slack {method} failed: {error}", kind=kind, provider=self.provider.value)

    async def fetch_activity(
        self, user_id: str, token: AccessToken, time_range: TimeRange
    ) -> list[NormalizedActivity]:
        identity = await self._call("auth.test", token)
        slack_user = identity.get("user_id")

        # after:/before: are whole-day and exclusive; widen and filter on ts below
        after = (time_range.start - timedelta(days=1)).strftime("%Y-%m-%d")
        before = (time_range.end + timedelta(days=1)).strftime("%Y-%m-%d")
        query = f"from:<@{slack_user}> after:{after} before:{before}"

        items: list[NormalizedActivity] = []
        page = 1
        while len(items) < self.item_cap:
            data = await self._call(
                "search.messages",
                token,
                params={"query": query, "count": PAGE_SIZE, "page": page, "sort": "timestamp"},
            )
            messages = data.get("messages") or {}
            for match in messages.get("matches") or []:
                activity = self._message_to_activity(match)
                if activity:
                    items.append(activity)

            paging = messages.get("paging") or {}
            if page >= paging.get("pages", 1):
                break
            page += 1

        logger.info("Slack activity fetched", user_id=user_id, raw_count=len(items))
        return self._finalize(items, time_range)

    def _message_to_activity(self, match: dict) -> NormalizedActivity | None:
        ts = match.get("ts")
        timestamp = parse_timestamp(ts)
        if timestamp is None:
            return None

        channel = match.get("channel") or {}
        text = plain_text(match.get("text"))
        return NormalizedActivity(
            provider=self.provider,
            external_id=f"{channel.get('id', 'unknown')}:{ts}",
            kind=ActivityKind.MESSAGE,
            title=plain_text(text, limit=120) or "(message)",
            timestamp=timestamp,
            actor=match.get("username"),
            url=match.get("permalink"),
            description=plain_text(text, limit=1000) or None,
            raw_metadata={
                "channel": channel.get("name"),
                "is_private": bool(channel.get("is_private")),
                "thread_ts": match.get("thread_ts"),
            },
        )
