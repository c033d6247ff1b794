"""
Provider adapters against mocked provider APIs.
"""

from datetime import timedelta

import httpx
import pytest

from app.errors import FetchError, FetchErrorKind
from app.models.domain.activity_domain import ActivityKind, TimeRange
from app.models.domain.credential_domain import AccessToken, ProviderType
from app.services.providers.atlassian import ConfluenceAdapter, JiraAdapter, build_cql, build_jql
from app.services.providers.figma import FigmaAdapter
from app.services.providers.github import GitHubAdapter
from app.services.providers.google_calendar import GoogleCalendarAdapter
from app.services.providers.google_drive import GoogleDriveAdapter
from app.services.providers.microsoft_files import OneDriveAdapter, SharePointAdapter
from app.services.providers.onenote import OneNoteAdapter
from app.services.providers.slack import SlackAdapter
from app.services.providers.teams import TeamsAdapter
from app.services.providers.zoom import ZoomAdapter, date_slices
from tests.fakes import BASE_TIME

WINDOW = TimeRange(start=BASE_TIME - timedelta(days=7), end=BASE_TIME + timedelta(hours=1))
IN_RANGE = (BASE_TIME - timedelta(hours=2)).strftime("%Y-%m-%dT%H:%M:%SZ")
TOO_OLD = (BASE_TIME - timedelta(days=30)).strftime("%Y-%m-%dT%H:%M:%SZ")
JIRA_SITE = {
    "id": "cloud-1",
    "url": "https://acme.atlassian.net",
    "scopes": ["read:jira-work", "read:jira-user"],
}


def _token(provider: ProviderType) -> AccessToken:
    return AccessToken(user_id="user-123", provider=provider, access_token="at-1")


def _adapter(adapter_cls, handler):
    return adapter_cls(httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def _github_issue(number: int, updated_at: str = IN_RANGE, created_at: str = TOO_OLD) -> dict:
    return {
        "number": number,
        "repository_url": "https://api.github.com/repos/acme/api",
        "title": f"Fix flaky build {number}",
        "updated_at": updated_at,
        "created_at": created_at,
        "html_url": f"https://github.com/acme/api/pull/{number}",
        "pull_request": {"merged_at": IN_RANGE},
        "labels": [{"name": "ci"}],
    }


def test_jql_matches_created_or_updated():
    jql = build_jql(WINDOW)

    assert "created >=" in jql
    assert "updated >=" in jql
    assert ") OR (" in jql
    assert "currentUser()" in jql


def test_cql_matches_created_or_modified():
    cql = build_cql(WINDOW)

    assert "created >=" in cql
    assert "lastmodified >=" in cql


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,expected",
    [
        (401, FetchErrorKind.UNAUTHORIZED),
        (403, FetchErrorKind.UNAUTHORIZED),
        (404, FetchErrorKind.ENDPOINT_GONE),
        (410, FetchErrorKind.ENDPOINT_GONE),
        (500, FetchErrorKind.UNREACHABLE),
        (503, FetchErrorKind.UNREACHABLE),
    ],
)
async def test_http_status_mapping(status, expected):
    adapter = _adapter(JiraAdapter, lambda request: httpx.Response(status))

    with pytest.raises(FetchError) as exc_info:
        await adapter.fetch_activity("user-123", _token(ProviderType.JIRA), WINDOW)

    assert exc_info.value.kind == expected
    assert exc_info.value.status_code == status
    assert exc_info.value.provider == "jira"


@pytest.mark.asyncio
async def test_rate_limit_carries_retry_after():
    adapter = _adapter(
        JiraAdapter, lambda request: httpx.Response(429, headers={"retry-after": "7"})
    )

    with pytest.raises(FetchError) as exc_info:
        await adapter.fetch_activity("user-123", _token(ProviderType.JIRA), WINDOW)

    assert exc_info.value.kind == FetchErrorKind.RATE_LIMITED
    assert exc_info.value.retry_after == 7.0
    assert exc_info.value.recoverable is True


@pytest.mark.asyncio
async def test_network_error_is_unreachable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(FetchError) as exc_info:
        await _adapter(JiraAdapter, handler).fetch_activity(
            "user-123", _token(ProviderType.JIRA), WINDOW
        )

    assert exc_info.value.kind == FetchErrorKind.UNREACHABLE


@pytest.mark.asyncio
async def test_github_exhausted_rate_limit_403_is_rate_limited():
    def handler(request):
        return httpx.Response(403, headers={"x-ratelimit-remaining": "0"})

    with pytest.raises(FetchError) as exc_info:
        await _adapter(GitHubAdapter, handler).fetch_activity(
            "user-123", _token(ProviderType.GITHUB), WINDOW
        )

    assert exc_info.value.kind == FetchErrorKind.RATE_LIMITED


@pytest.mark.asyncio
async def test_github_fetch_merges_queries_and_drops_out_of_range():
    search_queries = []

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/user":
            assert request.headers["authorization"] == "Bearer at-1"
            return httpx.Response(200, json={"login": "octo"})
        if path == "/search/issues":
            search_queries.append(request.url.params["q"])
            items = [_github_issue(1), _github_issue(2, updated_at=TOO_OLD)]
            return httpx.Response(200, json={"total_count": len(items), "items": items})
        if path == "/search/commits":
            commit = {
                "sha": "abc1234def",
                "html_url": "https://github.com/acme/api/commit/abc1234def",
                "repository": {"full_name": "acme/api"},
                "commit": {
                    "message": "Add retry to uploader\n\nDetails",
                    "committer": {"date": IN_RANGE},
                },
            }
            return httpx.Response(200, json={"total_count": 1, "items": [commit]})
        return httpx.Response(404)

    items = await _adapter(GitHubAdapter, handler).fetch_activity(
        "user-123", _token(ProviderType.GITHUB), WINDOW
    )

    assert len(search_queries) == 2
    assert any("created:" in q for q in search_queries)
    assert any("updated:" in q for q in search_queries)
    assert all("involves:octo" in q for q in search_queries)

    by_id = {item.external_id: item for item in items}
    assert set(by_id) == {"acme/api#1", "abc1234def"}
    assert by_id["acme/api#1"].kind == ActivityKind.PULL_REQUEST
    assert by_id["acme/api#1"].raw_metadata["merged"] is True
    assert by_id["abc1234def"].kind == ActivityKind.COMMIT
    assert by_id["abc1234def"].title == "Add retry to uploader"


@pytest.mark.asyncio
async def test_jira_follows_next_page_token():
    seen_tokens = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("accessible-resources"):
            return httpx.Response(200, json=[JIRA_SITE])
        assert request.url.path == "/ex/jira/cloud-1/rest/api/3/search/jql"
        page_token = request.url.params.get("nextPageToken")
        seen_tokens.append(page_token)
        if page_token is None:
            issue = {"key": "PAY-1", "fields": {"summary": "Refund flow", "updated": IN_RANGE}}
            return httpx.Response(
                200, json={"issues": [issue], "nextPageToken": "p2", "isLast": False}
            )
        issue = {"key": "PAY-2", "fields": {"summary": "Ledger export", "created": IN_RANGE}}
        return httpx.Response(200, json={"issues": [issue], "isLast": True})

    items = await _adapter(JiraAdapter, handler).fetch_activity(
        "user-123", _token(ProviderType.JIRA), WINDOW
    )

    assert seen_tokens == [None, "p2"]
    assert sorted(item.external_id for item in items) == ["PAY-1", "PAY-2"]
    assert items[0].url.startswith("https://acme.atlassian.net/browse/")
    assert all(item.title.startswith("PAY-") for item in items)


@pytest.mark.asyncio
async def test_jira_results_are_capped_newest_first():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("accessible-resources"):
            return httpx.Response(200, json=[JIRA_SITE])
        issues = [
            {
                "key": f"OPS-{i}",
                "fields": {
                    "summary": "Rotate certs",
                    "updated": (BASE_TIME - timedelta(minutes=i)).isoformat(),
                },
            }
            for i in range(250)
        ]
        return httpx.Response(200, json={"issues": issues, "isLast": True})

    items = await _adapter(JiraAdapter, handler).fetch_activity(
        "user-123", _token(ProviderType.JIRA), WINDOW
    )

    assert len(items) == JiraAdapter.item_cap
    assert items[0].external_id == "OPS-0"
    assert items[0].timestamp > items[-1].timestamp


@pytest.mark.asyncio
async def test_jira_without_accessible_site_returns_nothing():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("accessible-resources"):
            return httpx.Response(200, json=[{"id": "c2", "scopes": ["read:confluence-content"]}])
        raise AssertionError("search must not be called")

    items = await _adapter(JiraAdapter, handler).fetch_activity(
        "user-123", _token(ProviderType.JIRA), WINDOW
    )

    assert items == []


@pytest.mark.asyncio
async def test_slack_pages_through_search_results():
    base_ts = BASE_TIME.timestamp()
    pages_requested = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("auth.test"):
            return httpx.Response(200, json={"ok": True, "user_id": "U1"})
        page = int(request.url.params["page"])
        pages_requested.append(page)
        assert "from:<@U1>" in request.url.params["query"]
        match = {
            "ts": f"{base_ts - page * 60:.6f}",
            "text": f"Deployed <b>release</b> {page}",
            "channel": {"id": "C1", "name": "deploys"},
            "permalink": "https://acme.slack.com/archives/C1/p1",
        }
        return httpx.Response(
            200,
            json={"ok": True, "messages": {"matches": [match], "paging": {"pages": 2}}},
        )

    items = await _adapter(SlackAdapter, handler).fetch_activity(
        "user-123", _token(ProviderType.SLACK), WINDOW
    )

    assert pages_requested == [1, 2]
    assert len(items) == 2
    assert all(item.external_id.startswith("C1:") for item in items)
    assert items[0].title == "Deployed release 1"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error,expected",
    [
        ("invalid_auth", FetchErrorKind.UNAUTHORIZED),
        ("token_revoked", FetchErrorKind.UNAUTHORIZED),
        ("ratelimited", FetchErrorKind.RATE_LIMITED),
        ("internal_error", FetchErrorKind.UNREACHABLE),
        ("method_deprecated", FetchErrorKind.ENDPOINT_GONE),
    ],
)
async def test_slack_payload_errors_are_mapped(error, expected):
    def handler(request):
        return httpx.Response(200, json={"ok": False, "error": error})

    with pytest.raises(FetchError) as exc_info:
        await _adapter(SlackAdapter, handler).fetch_activity(
            "user-123", _token(ProviderType.SLACK), WINDOW
        )

    assert exc_info.value.kind == expected


@pytest.mark.asyncio
async def test_confluence_pages_by_offset_and_strips_markup():
    starts = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("accessible-resources"):
            return httpx.Response(
                200,
                json=[{**JIRA_SITE, "id": "cloud-2", "scopes": ["read:confluence-content.all"]}],
            )
        assert request.url.path == "/ex/confluence/cloud-2/wiki/rest/api/content/search"
        assert "lastmodified" in request.url.params["cql"]
        start = int(request.url.params["start"])
        starts.append(start)
        if start == 0:
            results = [
                {
                    "id": "101",
                    "type": "page",
                    "title": "Deploy checklist",
                    "version": {"when": IN_RANGE, "number": 4},
                    "_links": {"webui": "/spaces/OPS/pages/101"},
                },
                {
                    "id": "102",
                    "type": "page",
                    "title": "Old notes",
                    "version": {"when": TOO_OLD},
                    "history": {"createdDate": TOO_OLD},
                },
            ]
            return httpx.Response(200, json={"results": results, "_links": {"next": "/n"}})
        results = [
            {
                "id": "103",
                "type": "blogpost",
                "title": "<b>Incident</b>   review",
                "history": {"createdDate": IN_RANGE},
            }
        ]
        return httpx.Response(200, json={"results": results, "_links": {}})

    items = await _adapter(ConfluenceAdapter, handler).fetch_activity(
        "user-123", _token(ProviderType.CONFLUENCE), WINDOW
    )

    assert starts == [0, 2]
    by_id = {item.external_id: item for item in items}
    assert set(by_id) == {"101", "103"}
    assert by_id["101"].url == "https://acme.atlassian.net/wiki/spaces/OPS/pages/101"
    assert by_id["103"].title == "Incident review"
    assert by_id["103"].raw_metadata["created_in_range"] is True


@pytest.mark.asyncio
async def test_calendar_skips_cancelled_and_declined_events():
    page_tokens = []
    start = (BASE_TIME - timedelta(hours=2)).isoformat()
    end = (BASE_TIME - timedelta(hours=1, minutes=30)).isoformat()

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/calendar/v3/calendars/primary/events"
        page_token = request.url.params.get("pageToken")
        page_tokens.append(page_token)
        if page_token is None:
            events = [
                {
                    "id": "evt-1",
                    "summary": "Payments design review",
                    "start": {"dateTime": start},
                    "end": {"dateTime": end},
                    "attendees": [{"email": "me@acme.com", "self": True}, {"email": "b@acme.com"}],
                },
                {"id": "evt-2", "status": "cancelled", "start": {"dateTime": start}},
                {
                    "id": "evt-3",
                    "summary": "Optional sync",
                    "start": {"dateTime": start},
                    "attendees": [{"self": True, "responseStatus": "declined"}],
                },
            ]
            return httpx.Response(200, json={"items": events, "nextPageToken": "n2"})
        events = [
            {"id": "evt-4", "summary": "Offsite", "start": {"date": "2025-03-08"}},
            {"id": "evt-5", "summary": "Last month", "start": {"dateTime": TOO_OLD}},
        ]
        return httpx.Response(200, json={"items": events})

    items = await _adapter(GoogleCalendarAdapter, handler).fetch_activity(
        "user-123", _token(ProviderType.GOOGLE_CALENDAR), WINDOW
    )

    assert page_tokens == [None, "n2"]
    by_id = {item.external_id: item for item in items}
    assert set(by_id) == {"evt-1", "evt-4"}
    assert by_id["evt-1"].kind == ActivityKind.MEETING
    assert by_id["evt-1"].raw_metadata["duration_minutes"] == 30
    assert by_id["evt-1"].raw_metadata["attendee_count"] == 2
    assert by_id["evt-4"].raw_metadata["all_day"] is True


@pytest.mark.asyncio
async def test_teams_keeps_own_messages_across_pages():
    message_requests = []

    def message(message_id, sender="me-1", **extra):
        return {
            "id": message_id,
            "messageType": "message",
            "createdDateTime": IN_RANGE,
            "from": {"user": {"id": sender, "displayName": "Ana"}},
            "body": {"content": "<p>Shipped the <b>release</b></p>"},
            **extra,
        }

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/v1.0/me":
            return httpx.Response(200, json={"id": "me-1"})
        if path == "/v1.0/me/chats":
            return httpx.Response(200, json={"value": [{"id": "c1", "topic": "Release"}]})
        assert path == "/v1.0/chats/c1/messages"
        message_requests.append(dict(request.url.params))
        if "$skiptoken" not in request.url.params:
            return httpx.Response(
                200,
                json={
                    "value": [
                        message("m1"),
                        message("m2", messageType="systemEventMessage"),
                        message("m3", sender="someone-else"),
                    ],
                    "@odata.nextLink": (
                        "https://graph.microsoft.com/v1.0/chats/c1/messages?$skiptoken=abc"
                    ),
                },
            )
        return httpx.Response(
            200,
            json={"value": [message("m4", deletedDateTime=IN_RANGE), message("m5")]},
        )

    items = await _adapter(TeamsAdapter, handler).fetch_activity(
        "user-123", _token(ProviderType.TEAMS), WINDOW
    )

    assert sorted(item.external_id for item in items) == ["c1:m1", "c1:m5"]
    assert items[0].title == "Shipped the release"
    assert items[0].raw_metadata["chat_topic"] == "Release"
    assert "$filter" in message_requests[0]
    assert message_requests[1] == {"$skiptoken": "abc"}


@pytest.mark.asyncio
async def test_figma_files_and_own_comments():
    requested = []

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        requested.append(path)
        if path == "/v1/me":
            return httpx.Response(200, json={"id": "u1"})
        if path == "/v1/teams/t1/projects":
            return httpx.Response(200, json={"projects": [{"id": "p1", "name": "Checkout"}]})
        if path == "/v1/projects/p1/files":
            files = [
                {"key": "F1", "name": "Checkout flow", "last_modified": IN_RANGE},
                {"key": "F2", "name": "Old flow", "last_modified": TOO_OLD},
            ]
            return httpx.Response(200, json={"files": files})
        assert path == "/v1/files/F1/comments"
        comments = [
            {
                "id": "c1",
                "user": {"id": "u1", "handle": "ana"},
                "created_at": IN_RANGE,
                "message": "Moved the CTA above the fold",
            },
            {"id": "c2", "user": {"id": "u2"}, "created_at": IN_RANGE, "message": "+1"},
        ]
        return httpx.Response(200, json={"comments": comments})

    adapter = FigmaAdapter(httpx.AsyncClient(transport=httpx.MockTransport(handler)), ["t1"])
    items = await adapter.fetch_activity("user-123", _token(ProviderType.FIGMA), WINDOW)

    by_id = {item.external_id: item for item in items}
    assert set(by_id) == {"F1", "F1:comment:c1"}
    assert by_id["F1"].raw_metadata["project"] == "Checkout"
    assert by_id["F1:comment:c1"].kind == ActivityKind.COMMENT
    assert "/v1/files/F2/comments" not in requested


@pytest.mark.asyncio
async def test_figma_without_team_ids_makes_no_requests():
    def handler(request):
        raise AssertionError("no request expected")

    adapter = FigmaAdapter(httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    assert await adapter.fetch_activity("user-123", _token(ProviderType.FIGMA), WINDOW) == []


def test_zoom_splits_long_windows_into_month_slices():
    window = TimeRange(start=BASE_TIME - timedelta(days=45), end=BASE_TIME)

    slices = date_slices(window)

    assert slices == [("2025-01-24", "2025-02-22"), ("2025-02-23", "2025-03-10")]


@pytest.mark.asyncio
async def test_zoom_meetings_and_recordings():
    meeting_pages = []

    def handler(request: httpx.Request) -> httpx.Response:
        params = request.url.params
        assert params["from"] == "2025-03-03"
        assert params["to"] == "2025-03-10"
        if request.url.path == "/v2/users/me/meetings":
            assert params["type"] == "previous_meetings"
            meeting_pages.append(params.get("next_page_token"))
            if "next_page_token" not in params:
                meeting = {"uuid": "u-1", "id": 11, "topic": "Sprint demo", "start_time": IN_RANGE}
                return httpx.Response(200, json={"meetings": [meeting], "next_page_token": "n2"})
            meeting = {"uuid": "u-2", "id": 12, "topic": "Retro", "start_time": TOO_OLD}
            return httpx.Response(200, json={"meetings": [meeting], "next_page_token": ""})
        assert request.url.path == "/v2/users/me/recordings"
        recording = {
            "uuid": "u-1",
            "id": 11,
            "topic": "Sprint demo",
            "start_time": IN_RANGE,
            "share_url": "https://zoom.us/rec/share/abc",
            "recording_files": [{"id": "f1"}, {"id": "f2"}],
        }
        return httpx.Response(200, json={"meetings": [recording]})

    items = await _adapter(ZoomAdapter, handler).fetch_activity(
        "user-123", _token(ProviderType.ZOOM), WINDOW
    )

    assert meeting_pages == [None, "n2"]
    by_id = {item.external_id: item for item in items}
    assert set(by_id) == {"meeting:u-1", "recording:u-1"}
    assert by_id["recording:u-1"].kind == ActivityKind.RECORDING
    assert by_id["recording:u-1"].title == "Recording: Sprint demo"
    assert by_id["recording:u-1"].raw_metadata["recording_count"] == 2


@pytest.mark.asyncio
async def test_onedrive_recent_files_skip_folders_and_old_items():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1.0/me/drive/recent"
        recent = [
            {
                "id": "d1",
                "name": "Q2 roadmap.docx",
                "lastModifiedDateTime": IN_RANGE,
                "lastModifiedBy": {"user": {"displayName": "Ana"}},
                "webUrl": "https://acme-my.sharepoint.com/d1",
                "file": {"mimeType": "application/msword"},
            },
            {"id": "d2", "name": "Specs", "lastModifiedDateTime": IN_RANGE, "folder": {}},
            {"id": "d3", "name": "Budget.xlsx", "lastModifiedDateTime": TOO_OLD},
            {
                "id": "d4",
                "remoteItem": {"name": "Shared plan.pptx", "lastModifiedDateTime": IN_RANGE},
            },
        ]
        return httpx.Response(200, json={"value": recent})

    items = await _adapter(OneDriveAdapter, handler).fetch_activity(
        "user-123", _token(ProviderType.ONEDRIVE), WINDOW
    )

    by_id = {item.external_id: item for item in items}
    assert set(by_id) == {"d1", "d4"}
    assert by_id["d1"].kind == ActivityKind.DOCUMENT
    assert by_id["d1"].actor == "Ana"
    assert by_id["d4"].title == "Shared plan.pptx"


@pytest.mark.asyncio
async def test_sharepoint_reads_followed_site_libraries():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1.0/me/followedSites":
            return httpx.Response(
                200, json={"value": [{"id": "s1", "displayName": "Engineering"}, {"name": "x"}]}
            )
        assert request.url.path == "/v1.0/sites/s1/drive/root/children"
        assert request.url.params["$orderby"] == "lastModifiedDateTime desc"
        doc = {"id": "i1", "name": "Runbook.docx", "lastModifiedDateTime": IN_RANGE}
        return httpx.Response(200, json={"value": [doc]})

    items = await _adapter(SharePointAdapter, handler).fetch_activity(
        "user-123", _token(ProviderType.SHAREPOINT), WINDOW
    )

    [item] = items
    assert item.external_id == "i1"
    assert item.raw_metadata["site"] == "Engineering"


@pytest.mark.asyncio
async def test_onenote_pages_follow_next_link():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1.0/me/onenote/pages"
        if "$skiptoken" in request.url.params:
            page = {"id": "pg-2", "title": "Retro notes", "createdDateTime": IN_RANGE}
            return httpx.Response(200, json={"value": [page]})
        assert request.url.params["$filter"].startswith("lastModifiedDateTime ge 2025-03-03")
        page = {
            "id": "pg-1",
            "title": "Interview loop",
            "lastModifiedDateTime": IN_RANGE,
            "links": {"oneNoteWebUrl": {"href": "https://onenote.example/pg-1"}},
            "parentNotebook": {"displayName": "Work"},
            "parentSection": {"displayName": "Hiring"},
        }
        return httpx.Response(
            200,
            json={
                "value": [page],
                "@odata.nextLink": "https://graph.microsoft.com/v1.0/me/onenote/pages?$skiptoken=2",
            },
        )

    items = await _adapter(OneNoteAdapter, handler).fetch_activity(
        "user-123", _token(ProviderType.ONENOTE), WINDOW
    )

    by_id = {item.external_id: item for item in items}
    assert set(by_id) == {"pg-1", "pg-2"}
    assert by_id["pg-1"].url == "https://onenote.example/pg-1"
    assert by_id["pg-1"].raw_metadata["section"] == "Hiring"
    assert by_id["pg-2"].kind == ActivityKind.PAGE


@pytest.mark.asyncio
async def test_google_drive_keeps_own_files_and_flags_meet_recordings():
    page_tokens = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/drive/v3/files"
        assert "trashed = false" in request.url.params["q"]
        page_token = request.url.params.get("pageToken")
        page_tokens.append(page_token)
        me = {"displayName": "Ana", "me": True}
        if page_token is None:
            files = [
                {
                    "id": "g1",
                    "name": "Launch plan",
                    "mimeType": "application/vnd.google-apps.document",
                    "modifiedTime": IN_RANGE,
                    "owners": [me],
                },
                {
                    "id": "g2",
                    "name": "Someone else's sheet",
                    "mimeType": "application/vnd.google-apps.spreadsheet",
                    "modifiedTime": IN_RANGE,
                    "owners": [{"displayName": "Bo", "me": False}],
                    "lastModifyingUser": {"displayName": "Bo", "me": False},
                },
            ]
            return httpx.Response(200, json={"files": files, "nextPageToken": "t2"})
        files = [
            {
                "id": "g3",
                "name": "Design sync (2025-03-10) - Meet recording",
                "mimeType": "video/mp4",
                "modifiedTime": IN_RANGE,
                "lastModifyingUser": me,
                "videoMediaMetadata": {"durationMillis": "1800000"},
            }
        ]
        return httpx.Response(200, json={"files": files})

    items = await _adapter(GoogleDriveAdapter, handler).fetch_activity(
        "user-123", _token(ProviderType.GOOGLE_DRIVE), WINDOW
    )

    assert page_tokens == [None, "t2"]
    by_id = {item.external_id: item for item in items}
    assert set(by_id) == {"g1", "g3"}
    assert by_id["g1"].kind == ActivityKind.DOCUMENT
    assert by_id["g3"].kind == ActivityKind.RECORDING
    assert by_id["g3"].raw_metadata["duration_seconds"] == 1800
