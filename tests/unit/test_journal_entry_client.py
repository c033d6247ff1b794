"""
Journal entry handoff client against a mocked journal service.
"""

import json

import httpx
import pytest

from app.models.domain.session_domain import EntryType, GeneratedEntryDraft
from app.services.journal_entry_client import JournalEntryClient, JournalHandoffError

DRAFT = GeneratedEntryDraft(
    title="Made product pages fast",
    text="Added listing caching.",
    entry_type=EntryType.ACHIEVEMENT,
    extracted_skills=["Caching"],
    source_activity_ids=["github:acme/shop#40"],
)


def _client(handler, base_url="https://journal.example.com/api/", api_token="svc-token"):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return JournalEntryClient(http_client=http, base_url=base_url, api_token=api_token)


@pytest.mark.asyncio
async def test_create_entry_posts_draft():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(201, json={"id": 981})

    entry_id = await _client(handler).create_entry("user-123", DRAFT)

    assert entry_id == "981"
    [request] = requests
    assert str(request.url) == "https://journal.example.com/api/entries"
    assert request.headers["authorization"] == "Bearer svc-token"
    body = json.loads(request.content)
    assert body["user_id"] == "user-123"
    assert body["entry_type"] == "achievement"
    assert body["source_activity_ids"] == ["github:acme/shop#40"]


@pytest.mark.asyncio
async def test_server_error_is_recoverable():
    client = _client(lambda request: httpx.Response(503))

    with pytest.raises(JournalHandoffError) as exc_info:
        await client.create_entry("user-123", DRAFT)

    assert exc_info.value.status_code == 503
    assert exc_info.value.recoverable is True


@pytest.mark.asyncio
async def test_rejected_entry_is_not_recoverable():
    client = _client(lambda request: httpx.Response(422, json={"detail": "bad"}))

    with pytest.raises(JournalHandoffError) as exc_info:
        await client.create_entry("user-123", DRAFT)

    assert exc_info.value.recoverable is False


@pytest.mark.asyncio
async def test_unreachable_service():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(JournalHandoffError) as exc_info:
        await _client(handler).create_entry("user-123", DRAFT)

    assert exc_info.value.status_code is None


@pytest.mark.asyncio
async def test_unconfigured_client_refuses():
    client = JournalEntryClient()

    assert client.configured is False
    with pytest.raises(JournalHandoffError) as exc_info:
        await client.create_entry("user-123", DRAFT)

    assert exc_info.value.recoverable is False


@pytest.mark.asyncio
async def test_idempotency_key_is_sent():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(201, json={"id": 982})

    key = DRAFT.handoff_key("session-1", 0)
    await _client(handler).create_entry("user-123", DRAFT, idempotency_key=key)

    assert requests[0].headers["idempotency-key"] == key


def test_handoff_key_follows_session_position_and_content():
    key = DRAFT.handoff_key("session-1", 0)

    assert key == DRAFT.model_copy().handoff_key("session-1", 0)
    assert key != DRAFT.handoff_key("session-1", 1)
    assert key != DRAFT.handoff_key("session-2", 0)
    assert key != DRAFT.model_copy(update={"text": "Rewritten."}).handoff_key("session-1", 0)
