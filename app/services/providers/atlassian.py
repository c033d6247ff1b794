"""
Atlassian cloud adapters: Jira (issue tracker) and Confluence (wiki).

Both resolve the user's cloud site through the accessible-resources
endpoint, then query through the api.atlassian.com gateway. Queries match
items created OR updated in the window.
"""

from app.infrastructure.observability.logging import get_logger
from app.models.domain.activity_domain import ActivityKind, NormalizedActivity, TimeRange
from app.models.domain.credential_domain import AccessToken, ProviderType
from app.services.providers.base import ProviderAdapter, parse_timestamp, plain_text

logger = get_logger(__name__)

ATLASSIAN_API_BASE_URL = "https://api.atlassian.com"
ACCESSIBLE_RESOURCES_URL = f"{ATLASSIAN_API_BASE_URL}/oauth/token/accessible-resources"
# JQL and CQL both accept this format; values are interpreted in UTC for app users
QUERY_DATE_FORMAT = "%Y-%m-%d %H:%M"

JIRA_PAGE_SIZE = 50
JIRA_FIELDS = "summary,status,issuetype,project,created,updated,assignee,reporter,priority"
CONFLUENCE_PAGE_SIZE = 25


def build_jql(time_range: TimeRange) -> str:
    start = time_range.start.strftime(QUERY_DATE_FORMAT)
    end = time_range.end.strftime(QUERY_DATE_FORMAT)
    return (
        "(assignee = currentUser() OR reporter = currentUser() OR watcher = currentUser()) "
        f'AND ((created >= "{start}" AND created <= "{end}") '
        f'OR (updated >= "{start}" AND updated <= "{end}")) '
        "ORDER BY updated DESC"
    )


def build_cql(time_range: TimeRange) -> str:
    start = time_range.start.strftime(QUERY_DATE_FORMAT)
    end = time_range.end.strftime(QUERY_DATE_FORMAT)
    return (
        "type in (page, blogpost) "
        "AND (creator = currentUser() OR contributor = currentUser()) "
        f'AND ((created >= "{start}" AND created <= "{end}") '
        f'OR (lastmodified >= "{start}" AND lastmodified <= "{end}"))'
    )


class AtlassianAdapter(ProviderAdapter):
    """Cloud-site resolution shared by Jira and Confluence."""

    scope_marker: str = ""

    async def _resolve_site(self, token: AccessToken) -> dict | None:
        resources = await self._get_json(ACCESSIBLE_RESOURCES_URL, token)
        for resource in resources or []:
            scopes = resource.get("scopes") or []
            if any(self.scope_marker in scope for scope in scopes):
                return resource
        return None


class JiraAdapter(AtlassianAdapter):
    provider = ProviderType.JIRA
    item_cap = 200
    scope_marker = "jira"

    async def fetch_activity(
        self, user_id: str, token: AccessToken, time_range: TimeRange
    ) -> list[NormalizedActivity]:
        site = await self._resolve_site(token)
        if site is None:
            logger.info("No Jira site accessible for user", user_id=user_id)
            return []

        search_url = f"{ATLASSIAN_API_BASE_URL}/ex/jira/{site['id']}/rest/api/3/search/jql"
        params = {"jql": build_jql(time_range), "maxResults": JIRA_PAGE_SIZE, "fields": JIRA_FIELDS}

        items: list[NormalizedActivity] = []
        while len(items) < self.item_cap:
            data = await self._get_json(search_url, token, params=params)
            for issue in data.get("issues") or []:
                activity = self._issue_to_activity(issue, site, time_range)
                if activity:
                    items.append(activity)

            next_token = data.get("nextPageToken")
            if data.get("isLast", True) or not next_token:
                break
            params = {**params, "nextPageToken": next_token}

        logger.info("Jira activity fetched", user_id=user_id, raw_count=len(items))
        return self._finalize(items, time_range)

    def _issue_to_activity(
        self, issue: dict, site: dict, time_range: TimeRange
    ) -> NormalizedActivity | None:
        fields = issue.get("fields") or {}
        key = issue.get("key")
        if not key:
            return None

        updated = parse_timestamp(fields.get("updated"))
        created = parse_timestamp(fields.get("created"))
        timestamp = next(
            (t for t in (updated, created) if t is not None and time_range.contains(t)), None
        )
        if timestamp is None:
            return None

        summary = fields.get("summary") or ""
        return NormalizedActivity(
            provider=self.provider,
            external_id=key,
            kind=ActivityKind.ISSUE,
            title=f"{key}: {summary}" if summary else key,
            timestamp=timestamp,
            actor=(fields.get("assignee") or {}).get("displayName"),
            url=f"{site.get('url', '').rstrip('/')}/browse/{key}",
            raw_metadata={
                "status": (fields.get("status") or {}).get("name"),
                "issue_type": (fields.get("issuetype") or {}).get("name"),
                "project": (fields.get("project") or {}).get("key"),
                "priority": (fields.get("priority") or {}).get("name"),
                "created_in_range": created is not None and time_range.contains(created),
            },
        )


class ConfluenceAdapter(AtlassianAdapter):
    provider = ProviderType.CONFLUENCE
    item_cap = 100
    scope_marker = "confluence"

    async def fetch_activity(
        self, user_id: str, token: AccessToken, time_range: TimeRange
    ) -> list[NormalizedActivity]:
        site = await self._resolve_site(token)
        if site is None:
            logger.info("No Confluence site accessible for user", user_id=user_id)
            return []

        search_url = (
            f"{ATLASSIAN_API_BASE_URL}/ex/confluence/{site['id']}/wiki/rest/api/content/search"
        )
        start = 0
        items: list[NormalizedActivity] = []
        while len(items) < self.item_cap:
            data = await self._get_json(
                search_url,
                token,
                params={
                    "cql": build_cql(time_range),
                    "limit": CONFLUENCE_PAGE_SIZE,
                    "start": start,
                    "expand": "history,version,space",
                },
            )
            results = data.get("results") or []
            for content in results:
                activity = self._content_to_activity(content, site, time_range)
                if activity:
                    items.append(activity)

            if not (data.get("_links") or {}).get("next") or not results:
                break
            start += len(results)

        logger.info("Confluence activity fetched", user_id=user_id, raw_count=len(items))
        return self._finalize(items, time_range)

    def _content_to_activity(
        self, content: dict, site: dict, time_range: TimeRange
    ) -> NormalizedActivity | None:
        version = content.get("version") or {}
        history = content.get("history") or {}
        modified = parse_timestamp(version.get("when"))
        created = parse_timestamp(history.get("createdDate"))
        timestamp = next(
            (t for t in (modified, created) if t is not None and time_range.contains(t)), None
        )
        if timestamp is None or not content.get("id"):
            return None

        webui = (content.get("_links") or {}).get("webui", "")
        return NormalizedActivity(
            provider=self.provider,
            external_id=str(content["id"]),
            kind=ActivityKind.PAGE,
            title=plain_text(content.get("title"), limit=200) or "Untitled page",
            timestamp=timestamp,
            actor=(version.get("by") or {}).get("displayName"),
            url=f"{site.get('url', '').rstrip('/')}/wiki{webui}" if webui else None,
            raw_metadata={
                "content_type": content.get("type"),
                "space": (content.get("space") or {}).get("key"),
                "version": version.get("number"),
                "created_in_range": created is not None and time_range.contains(created),
            },
        )
