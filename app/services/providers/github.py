"""
GitHub adapter: pull requests, issues and commits the user took part in.
"""

from datetime import datetime

import httpx

from app.errors import FetchErrorKind
from app.infrastructure.observability.logging import get_logger
from app.models.domain.activity_domain import ActivityKind, NormalizedActivity, TimeRange
from app.models.domain.credential_domain import AccessToken, ProviderType
from app.services.providers.base import ProviderAdapter, parse_timestamp, plain_text

logger = get_logger(__name__)

GITHUB_API_BASE_URL = "https://api.github.com"
PER_PAGE = 50
# GitHub search never returns more than 1000 results per query
SEARCH_RESULT_LIMIT = 1000


def _search_range(time_range: TimeRange) -> str:
    fmt = "%Y-%m-%dT%H:%M:%SZ"
    return f"{time_range.start.strftime(fmt)}..{time_range.end.strftime(fmt)}"


class GitHubAdapter(ProviderAdapter):
    provider = ProviderType.GITHUB
    item_cap = 150

    def _headers(self, token: AccessToken) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {token.access_token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def _classify_status(self, response: httpx.Response) -> FetchErrorKind:
        # Primary and secondary rate limits come back as 403
        if response.status_code == 403 and (
            response.headers.get("x-ratelimit-remaining") == "0"
            or "retry-after" in response.headers
        ):
            return FetchErrorKind.RATE_LIMITED
        return super()._classify_status(response)

    async def fetch_activity(
        self, user_id: str, token: AccessToken, time_range: TimeRange
    ) -> list[NormalizedActivity]:
        profile = await self._get_json(f"{GITHUB_API_BASE_URL}/user", token)
        login = profile.get("login")
        window = _search_range(time_range)

        items: list[NormalizedActivity] = []
        # Two queries so items created in range but updated later are not missed
        for qualifier in ("created", "updated"):
            query = f"involves:{login} {qualifier}:{window}"
            for raw in await self._search(token, "issues", query, sort="updated"):
                activity = self._issue_to_activity(raw, time_range)
                if activity:
                    items.append(activity)

        commit_query = f"author:{login} committer-date:{window}"
        for raw in await self._search(token, "commits", commit_query, sort="committer-date"):
            activity = self._commit_to_activity(raw)
            if activity:
                items.append(activity)

        logger.info("GitHub activity fetched", user_id=user_id, raw_count=len(items))
        return self._finalize(items, time_range)

    async def _search(self, token: AccessToken, kind: str, query: str, sort: str) -> list[dict]:
        results: list[dict] = []
        page = 1
        while len(results) < self.item_cap:
            data = await self._get_json(
                f"{GITHUB_API_BASE_URL}/search/{kind}",
                token,
                params={
                    "q": query,
                    "sort": sort,
                    "order": "desc",
                    "per_page": PER_PAGE,
                    "page": page,
                },
            )
            batch = data.get("items") or []
            results.extend(batch)

            total = min(data.get("total_count", 0), SEARCH_RESULT_LIMIT)
            if len(batch) < PER_PAGE or page * PER_PAGE >= total:
                break
            page += 1
        return results

    def _issue_to_activity(self, raw: dict, time_range: TimeRange) -> NormalizedActivity | None:
        updated = parse_timestamp(raw.get("updated_at"))
        created = parse_timestamp(raw.get("created_at"))
        timestamp = _first_in_range((updated, created), time_range)
        if timestamp is None:
            return None

        repo = _repo_from_api_url(raw.get("repository_url", ""))
        number = raw.get("number")
        is_pr = "pull_request" in raw
        merged_at = (raw.get("pull_request") or {}).get("merged_at")

        return NormalizedActivity(
            provider=self.provider,
            external_id=f"{repo}#{number}",
            kind=ActivityKind.PULL_REQUEST if is_pr else ActivityKind.ISSUE,
            title=raw.get("title") or f"{repo}#{number}",
            timestamp=timestamp,
            actor=(raw.get("user") or {}).get("login"),
            url=raw.get("html_url"),
            description=plain_text(raw.get("body"), limit=500) or None,
            raw_metadata={
                "repository": repo,
                "number": number,
                "state": raw.get("state"),
                "merged": bool(merged_at),
                "labels": [label.get("name") for label in raw.get("labels") or []],
                "comments": raw.get("comments", 0),
            },
        )

    def _commit_to_activity(self, raw: dict) -> NormalizedActivity | None:
        commit = raw.get("commit") or {}
        timestamp = parse_timestamp((commit.get("committer") or {}).get("date"))
        if timestamp is None or not raw.get("sha"):
            return None

        message = commit.get("message") or ""
        repo = (raw.get("repository") or {}).get("full_name")
        return NormalizedActivity(
            provider=self.provider,
            external_id=raw["sha"],
            kind=ActivityKind.COMMIT,
            title=message.splitlines()[0] if message else raw["sha"][:7],
            timestamp=timestamp,
            actor=(raw.get("author") or {}).get("login"),
            url=raw.get("html_url"),
            description=plain_text(message, limit=500) or None,
            raw_metadata={"repository": repo, "sha": raw["sha"]},
        )


def _repo_from_api_url(url: str) -> str:
    # https://api.github.com/repos/{owner}/{repo}
    parts = url.rstrip("/").split("/")
    return "/".join(parts[-2:]) if len(parts) >= 2 else url


def _first_in_range(candidates: tuple, time_range: TimeRange) -> datetime | None:
    for value in candidates:
        if value is not None and time_range.contains(value):
            return value
    return None
