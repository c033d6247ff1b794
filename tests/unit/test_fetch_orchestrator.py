"""
Fetch orchestrator: per-provider isolation, retries and status reporting.
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.errors import CredentialError, CredentialErrorKind, FetchError, FetchErrorKind
from app.infrastructure.audit import AuditAction
from app.models.domain.activity_domain import ActivityKind, FetchState, TimeRange
from app.models.domain.credential_domain import AccessToken, ProviderType
from app.services.fetch_orchestrator import FetchOrchestrator, FetchPolicy, merge_activities
from tests.fakes import BASE_TIME, RecordingAudit, make_activity

WINDOW = TimeRange(start=BASE_TIME - timedelta(days=7), end=BASE_TIME)


def _token(provider: ProviderType, value: str = "at-1") -> AccessToken:
    return AccessToken(user_id="user-123", provider=provider, access_token=value)


def _vault():
    vault = MagicMock()
    vault.get_valid_token = AsyncMock(side_effect=lambda user_id, p: _token(p))
    vault.force_refresh = AsyncMock(
        side_effect=lambda user_id, p, rejected_token=None: _token(p, "at-2")
    )
    return vault


class ScriptedAdapter:
    """Adapter that plays back a list of outcomes, one per call."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.tokens_seen: list[str] = []

    async def fetch_activity(self, user_id, token, time_range):
        self.tokens_seen.append(token.access_token)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def _github_items(count: int):
    return [
        make_activity(external_id=f"acme/api#{i}", timestamp=BASE_TIME - timedelta(hours=i))
        for i in range(count)
    ]


def _orchestrator(adapters, vault=None, audit=None, sleep=None, **policy):
    return FetchOrchestrator(
        vault=vault or _vault(),
        adapters=adapters,
        policy=FetchPolicy(**{"backoff_base_seconds": 0.5, **policy}),
        audit=audit or RecordingAudit(),
        sleep=sleep or AsyncMock(),
    )


def _status(result, provider):
    return next(s for s in result.statuses if s.provider == provider)


@pytest.mark.asyncio
async def test_one_provider_failing_does_not_affect_others():
    adapters = {
        ProviderType.JIRA: ScriptedAdapter(
            FetchError("gone", kind=FetchErrorKind.ENDPOINT_GONE, provider="jira")
        ),
        ProviderType.GITHUB: ScriptedAdapter(_github_items(5)),
    }

    result = await _orchestrator(adapters).fetch_all(
        "user-123", [ProviderType.JIRA, ProviderType.GITHUB], WINDOW
    )

    assert len(result.activities) == 5
    assert result.any_succeeded is True

    jira = _status(result, ProviderType.JIRA)
    assert jira.state == FetchState.FAILED
    assert jira.reason == "endpoint_gone"
    assert jira.attempts == 1

    github = _status(result, ProviderType.GITHUB)
    assert github.state == FetchState.OK
    assert github.item_count == 5


@pytest.mark.asyncio
async def test_activities_are_deduplicated_across_providers_by_key():
    duplicate = make_activity(external_id="acme/api#1")
    same_id_other_provider = make_activity(
        provider=ProviderType.JIRA, external_id="acme/api#1", kind=ActivityKind.ISSUE
    )
    adapters = {
        ProviderType.GITHUB: ScriptedAdapter([duplicate, duplicate]),
        ProviderType.JIRA: ScriptedAdapter([same_id_other_provider]),
    }

    result = await _orchestrator(adapters).fetch_all(
        "user-123", [ProviderType.GITHUB, ProviderType.JIRA, ProviderType.GITHUB], WINDOW
    )

    assert len(result.statuses) == 2
    assert sorted(a.activity_id for a in result.activities) == [
        "github:acme/api#1",
        "jira:acme/api#1",
    ]


def test_merge_activities_orders_by_timestamp():
    late = make_activity(external_id="acme/api#2", timestamp=BASE_TIME)
    early = make_activity(external_id="acme/api#3", timestamp=BASE_TIME - timedelta(days=1))

    merged = merge_activities([[late], [early, late]])

    assert [a.external_id for a in merged] == ["acme/api#3", "acme/api#2"]


@pytest.mark.asyncio
async def test_rate_limited_provider_is_retried_with_backoff():
    sleep = AsyncMock()
    adapters = {
        ProviderType.GITHUB: ScriptedAdapter(
            FetchError("slow down", kind=FetchErrorKind.RATE_LIMITED, retry_after=4.0),
            _github_items(2),
        )
    }

    result = await _orchestrator(adapters, sleep=sleep).fetch_all(
        "user-123", [ProviderType.GITHUB], WINDOW
    )

    status = _status(result, ProviderType.GITHUB)
    assert status.state == FetchState.OK
    assert status.attempts == 2
    sleep.assert_awaited_once_with(4.0)


@pytest.mark.asyncio
async def test_transient_failures_stop_after_max_attempts():
    sleep = AsyncMock()
    adapter = ScriptedAdapter(FetchError("down", kind=FetchErrorKind.UNREACHABLE))

    result = await _orchestrator(
        {ProviderType.SLACK: adapter}, sleep=sleep, max_attempts=3
    ).fetch_all("user-123", [ProviderType.SLACK], WINDOW)

    status = _status(result, ProviderType.SLACK)
    assert status.reason == "unreachable"
    assert status.attempts == 3
    assert [c.args[0] for c in sleep.await_args_list] == [0.5, 1.0]


def test_backoff_is_capped():
    policy = FetchPolicy(backoff_base_seconds=1.0, backoff_max_seconds=5.0)

    assert policy.backoff(1) == 1.0
    assert policy.backoff(3) == 4.0
    assert policy.backoff(6) == 5.0
    assert policy.backoff(1, retry_after=60.0) == 5.0


@pytest.mark.asyncio
async def test_unauthorized_forces_single_refresh_then_retries():
    vault = _vault()
    adapter = ScriptedAdapter(
        FetchError("401", kind=FetchErrorKind.UNAUTHORIZED), _github_items(1)
    )

    result = await _orchestrator({ProviderType.GITHUB: adapter}, vault=vault).fetch_all(
        "user-123", [ProviderType.GITHUB], WINDOW
    )

    assert _status(result, ProviderType.GITHUB).state == FetchState.OK
    assert adapter.tokens_seen == ["at-1", "at-2"]
    vault.force_refresh.assert_awaited_once()
    assert vault.force_refresh.await_args.kwargs["rejected_token"].access_token == "at-1"


@pytest.mark.asyncio
async def test_repeated_unauthorized_fails_without_second_refresh():
    vault = _vault()
    adapter = ScriptedAdapter(FetchError("401", kind=FetchErrorKind.UNAUTHORIZED))

    result = await _orchestrator({ProviderType.GITHUB: adapter}, vault=vault).fetch_all(
        "user-123", [ProviderType.GITHUB], WINDOW
    )

    status = _status(result, ProviderType.GITHUB)
    assert status.reason == "unauthorized"
    assert status.attempts == 2
    assert vault.force_refresh.await_count == 1


@pytest.mark.asyncio
async def test_missing_credential_reports_not_connected():
    vault = _vault()
    vault.get_valid_token = AsyncMock(
        side_effect=CredentialError("no", kind=CredentialErrorKind.NOT_CONNECTED)
    )
    adapter = ScriptedAdapter(_github_items(1))

    result = await _orchestrator({ProviderType.FIGMA: adapter}, vault=vault).fetch_all(
        "user-123", [ProviderType.FIGMA], WINDOW
    )

    status = _status(result, ProviderType.FIGMA)
    assert status.reason == "not_connected"
    assert adapter.tokens_seen == []


@pytest.mark.asyncio
async def test_empty_provider_is_ok_with_zero_items():
    result = await _orchestrator({ProviderType.TEAMS: ScriptedAdapter([])}).fetch_all(
        "user-123", [ProviderType.TEAMS], WINDOW
    )

    status = _status(result, ProviderType.TEAMS)
    assert status.state == FetchState.OK
    assert status.item_count == 0
    assert result.activities == []


@pytest.mark.asyncio
async def test_disabled_integrations_fetch_nothing():
    vault = _vault()
    adapter = ScriptedAdapter(_github_items(1))

    result = await _orchestrator(
        {ProviderType.GITHUB: adapter}, vault=vault, integrations_enabled=False
    ).fetch_all("user-123", [ProviderType.GITHUB, ProviderType.JIRA], WINDOW)

    assert [s.reason for s in result.statuses] == ["disabled", "disabled"]
    assert result.any_succeeded is False
    vault.get_valid_token.assert_not_awaited()


@pytest.mark.asyncio
async def test_slow_provider_times_out():
    class HangingAdapter:
        async def fetch_activity(self, user_id, token, time_range):
            await asyncio.sleep(10)

    result = await _orchestrator(
        {ProviderType.CONFLUENCE: HangingAdapter()}, provider_timeout_seconds=0.01
    ).fetch_all("user-123", [ProviderType.CONFLUENCE], WINDOW)

    assert _status(result, ProviderType.CONFLUENCE).reason == "timeout"


@pytest.mark.asyncio
async def test_adapter_bug_is_isolated():
    adapters = {
        ProviderType.SLACK: ScriptedAdapter(KeyError("matches")),
        ProviderType.GITHUB: ScriptedAdapter(_github_items(1)),
    }

    result = await _orchestrator(adapters).fetch_all(
        "user-123", [ProviderType.SLACK, ProviderType.GITHUB], WINDOW
    )

    assert _status(result, ProviderType.SLACK).reason == "adapter_error"
    assert _status(result, ProviderType.GITHUB).state == FetchState.OK


@pytest.mark.asyncio
async def test_each_provider_outcome_is_audited():
    audit = RecordingAudit()
    adapters = {
        ProviderType.GITHUB: ScriptedAdapter(_github_items(3)),
        ProviderType.JIRA: ScriptedAdapter(FetchError("x", kind=FetchErrorKind.ENDPOINT_GONE)),
    }

    await _orchestrator(adapters, audit=audit).fetch_all(
        "user-123", [ProviderType.GITHUB, ProviderType.JIRA], WINDOW
    )

    assert audit.actions() == [AuditAction.FETCH_COMPLETED] * 2
    outcomes = {e["provider"]: (e["outcome"], e["item_count"]) for e in audit.events}
    assert outcomes == {"github": ("ok", 3), "jira": ("endpoint_gone", 0)}
