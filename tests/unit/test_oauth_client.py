"""
Tests for the provider-agnostic OAuth client against a mocked token endpoint.
"""

import base64
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from app.errors import CredentialError, CredentialErrorKind
from app.models.domain.credential_domain import ProviderType
from app.services.oauth.oauth_client import (
    OAuthClient,
    TokenEndpointRejected,
    TokenEndpointUnreachable,
)
from app.services.oauth.provider_configs import OAuthProviderConfig, build_provider_configs

CONFIG = OAuthProviderConfig(
    provider=ProviderType.JIRA,
    client_id="client",
    client_secret="secret",
    authorize_url="https://auth.example.com/authorize",
    token_url="https://auth.example.com/token",
    redirect_uri="http://localhost:8000/integrations/jira/callback",
    scopes=["read:jira-work", "offline_access"],
    extra_authorize_params={"audience": "api.atlassian.com", "prompt": "consent"},
)


def _client(handler) -> OAuthClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OAuthClient(http_client=http, backoff_factor=0, max_retries=3)


def test_authorize_url_contains_state_scopes_and_extras():
    url = OAuthClient().build_authorize_url(CONFIG, "state-abc")
    query = parse_qs(urlparse(url).query)

    assert query["state"] == ["state-abc"]
    assert query["scope"] == ["read:jira-work offline_access"]
    assert query["audience"] == ["api.atlassian.com"]
    assert query["redirect_uri"] == [CONFIG.redirect_uri]


def test_slack_uses_user_scope_parameter():
    configs = build_provider_configs()
    slack = configs[ProviderType.SLACK]
    slack = OAuthProviderConfig(**{**slack.__dict__, "client_id": "id", "client_secret": "s"})

    query = parse_qs(urlparse(OAuthClient().build_authorize_url(slack, "s1")).query)

    assert "user_scope" in query
    assert "," in query["user_scope"][0]


def test_default_redirect_uri_matches_callback_route():
    configs = build_provider_configs()

    for provider, config in configs.items():
        assert config.redirect_uri.endswith(f"/integrations/{provider.value}/callback")


@pytest.mark.asyncio
async def test_exchange_code_success():
    def handler(request: httpx.Request) -> httpx.Response:
        assert b"grant_type=authorization_code" in request.content
        return httpx.Response(
            200,
            json={"access_token": "at", "refresh_token": "rt", "expires_in": 3600, "scope": "x"},
        )

    tokens = await _client(handler).exchange_code(CONFIG, "code-1")

    assert tokens.access_token == "at"
    assert tokens.refresh_token == "rt"
    assert tokens.expires_at is not None


@pytest.mark.asyncio
async def test_exchange_code_invalid_grant():
    def handler(request):
        return httpx.Response(400, json={"error": "invalid_grant"})

    with pytest.raises(CredentialError) as exc_info:
        await _client(handler).exchange_code(CONFIG, "bad-code")

    assert exc_info.value.kind == CredentialErrorKind.INVALID_GRANT


@pytest.mark.asyncio
async def test_exchange_code_retries_transient_then_unreachable():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503)

    with pytest.raises(CredentialError) as exc_info:
        await _client(handler).exchange_code(CONFIG, "code")

    assert exc_info.value.kind == CredentialErrorKind.PROVIDER_UNREACHABLE
    assert exc_info.value.recoverable is True
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_refresh_recovers_after_one_transient_failure():
    responses = iter([httpx.Response(502), httpx.Response(200, json={"access_token": "new"})])

    tokens = await _client(lambda request: next(responses)).refresh(CONFIG, "rt")

    assert tokens.access_token == "new"
    assert tokens.refresh_token is None


@pytest.mark.asyncio
async def test_refresh_rejected_raises_rejected():
    def handler(request):
        return httpx.Response(400, json={"error": "invalid_grant", "error_description": "gone"})

    with pytest.raises(TokenEndpointRejected) as exc_info:
        await _client(handler).refresh(CONFIG, "rt")

    assert exc_info.value.error_code == "invalid_grant"


@pytest.mark.asyncio
async def test_refresh_network_error_raises_unreachable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TokenEndpointUnreachable):
        await _client(handler).refresh(CONFIG, "rt")


@pytest.mark.asyncio
async def test_slack_ok_false_is_rejected():
    def handler(request):
        return httpx.Response(200, json={"ok": False, "error": "invalid_refresh_token"})

    with pytest.raises(TokenEndpointRejected) as exc_info:
        await _client(handler).refresh(CONFIG, "rt")

    assert exc_info.value.error_code == "invalid_refresh_token"


@pytest.mark.asyncio
async def test_slack_authed_user_tokens_unwrapped():
    def handler(request):
        return httpx.Response(
            200,
            json={
                "ok": True,
                "access_token": "xoxb-bot",
                "authed_user": {"id": "U1", "access_token": "xoxp-user", "scope": "search:read"},
            },
        )

    tokens = await _client(handler).exchange_code(CONFIG, "code")

    assert tokens.access_token == "xoxp-user"
    assert tokens.scope == "search:read"


@pytest.mark.asyncio
async def test_revoke_failure_returns_false():
    config = OAuthProviderConfig(**{**CONFIG.__dict__, "revoke_url": "https://auth.example.com/r"})

    def handler(request):
        raise httpx.ConnectError("down", request=request)

    assert await _client(handler).revoke(config, "token") is False


@pytest.mark.asyncio
async def test_zoom_sends_client_credentials_as_basic_auth():
    zoom = OAuthProviderConfig(
        **{
            **build_provider_configs()[ProviderType.ZOOM].__dict__,
            "client_id": "zid",
            "client_secret": "zsecret",
        }
    )
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"access_token": "at", "expires_in": 3600})

    await _client(handler).exchange_code(zoom, "code-1")

    [request] = seen
    assert request.headers["authorization"] == "Basic " + base64.b64encode(b"zid:zsecret").decode()
    assert b"client_secret" not in request.content
    assert "scope" not in parse_qs(urlparse(OAuthClient().build_authorize_url(zoom, "s")).query)


def test_microsoft_graph_providers_share_one_app_with_distinct_scopes():
    configs = build_provider_configs()
    graph = [
        ProviderType.TEAMS,
        ProviderType.ONEDRIVE,
        ProviderType.SHAREPOINT,
        ProviderType.ONENOTE,
    ]

    assert len({configs[p].token_url for p in graph}) == 1
    assert configs[ProviderType.ONEDRIVE].scopes == ["User.Read", "Files.Read", "offline_access"]
    assert "Notes.Read" in configs[ProviderType.ONENOTE].scopes
    assert configs[ProviderType.GOOGLE_DRIVE].extra_authorize_params["access_type"] == "offline"
