"""
Fetch orchestrator: concurrent, per-provider fault-isolated activity fetch.

Each requested provider gets its own task with its own retry budget and
timeout. One provider failing never affects what the others return.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field

from app.config import Settings, settings
from app.errors import CredentialError, FetchError, FetchErrorKind
from app.infrastructure.audit import AuditAction, AuditLogger, audit_logger
from app.infrastructure.observability.logging import get_logger
from app.models.domain.activity_domain import (
    NormalizedActivity,
    ProviderFetchStatus,
    TimeRange,
)
from app.models.domain.credential_domain import ProviderType
from app.services.credential_vault import CredentialVault
from app.services.providers.base import ProviderAdapter

logger = get_logger(__name__)

_TRANSIENT_KINDS = (FetchErrorKind.RATE_LIMITED, FetchErrorKind.UNREACHABLE)


@dataclass(frozen=True)
class FetchPolicy:
    integrations_enabled: bool = True
    max_attempts: int = 3
    backoff_base_seconds: float = 1.0
    backoff_max_seconds: float = 30.0
    provider_timeout_seconds: float = 60.0

    @classmethod
    def from_settings(cls, cfg: Settings = settings) -> "FetchPolicy":
        return cls(
            integrations_enabled=cfg.INTEGRATIONS_ENABLED,
            max_attempts=cfg.FETCH_MAX_ATTEMPTS,
            backoff_base_seconds=cfg.FETCH_BACKOFF_BASE_SECONDS,
            backoff_max_seconds=cfg.FETCH_BACKOFF_MAX_SECONDS,
            provider_timeout_seconds=cfg.FETCH_PROVIDER_TIMEOUT_SECONDS,
        )

    def backoff(self, attempt: int, retry_after: float | None = None) -> float:
        delay = self.backoff_base_seconds * (2 ** (attempt - 1))
        if retry_after is not None:
            delay = max(delay, retry_after)
        return min(delay, self.backoff_max_seconds)


@dataclass
class FetchResult:
    activities: list[NormalizedActivity] = field(default_factory=list)
    statuses: list[ProviderFetchStatus] = field(default_factory=list)

    @property
    def any_succeeded(self) -> bool:
        return any(s.state == "ok" for s in self.statuses)


def merge_activities(batches: Iterable[list[NormalizedActivity]]) -> list[NormalizedActivity]:
    """Deduplicate by (provider, external_id) keeping first occurrence, stable order."""
    seen: set[tuple[str, str]] = set()
    merged: list[NormalizedActivity] = []
    for batch in batches:
        for activity in batch:
            if activity.key in seen:
                continue
            seen.add(activity.key)
            merged.append(activity)
    merged.sort(key=lambda a: (a.timestamp, a.activity_id))
    return merged


class FetchOrchestrator:
    def __init__(
        self,
        vault: CredentialVault,
        adapters: dict[ProviderType, ProviderAdapter],
        policy: FetchPolicy,
        audit: AuditLogger | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._vault = vault
        self._adapters = adapters
        self._policy = policy
        self._audit = audit or audit_logger
        self._sleep = sleep

    async def fetch_all(
        self, user_id: str, provider_types: Iterable[ProviderType], time_range: TimeRange
    ) -> FetchResult:
        """
        Fetch every requested provider concurrently.

        Never raises for provider-level failures; each provider's outcome is
        reported in ``statuses``.
        """
        providers = list(dict.fromkeys(provider_types))

        if not self._policy.integrations_enabled:
            logger.info("Integrations disabled; skipping fetch", user_id=user_id)
            return FetchResult(
                statuses=[ProviderFetchStatus.failed(p, "disabled") for p in providers]
            )

        outcomes = await asyncio.gather(
            *(self._fetch_provider(user_id, p, time_range) for p in providers)
        )

        statuses = [status for status, _ in outcomes]
        activities = merge_activities(items for _, items in outcomes)

        for status in statuses:
            await self._audit.log(
                user_id=user_id,
                action=AuditAction.FETCH_COMPLETED,
                provider=status.provider.value,
                outcome=status.state.value if status.reason is None else status.reason,
                item_count=status.item_count,
                metadata={"attempts": status.attempts},
            )

        logger.info(
            "Fetch batch completed",
            user_id=user_id,
            providers=[p.value for p in providers],
            succeeded=sum(1 for s in statuses if s.state == "ok"),
            total_activities=len(activities),
        )
        return FetchResult(activities=activities, statuses=statuses)

    async def _fetch_provider(
        self, user_id: str, provider: ProviderType, time_range: TimeRange
    ) -> tuple[ProviderFetchStatus, list[NormalizedActivity]]:
        adapter = self._adapters.get(provider)
        if adapter is None:
            return ProviderFetchStatus.failed(provider, "unsupported"), []

        try:
            return await asyncio.wait_for(
                self._fetch_with_retry(user_id, provider, adapter, time_range),
                timeout=self._policy.provider_timeout_seconds,
            )
        except TimeoutError:
            logger.warning("Provider fetch timed out", user_id=user_id, provider=provider.value)
            return ProviderFetchStatus.failed(provider, "timeout"), []
        except Exception as e:
            # Adapter bugs must not take down the other providers
            logger.exception(
                "Unexpected provider fetch error",
                user_id=user_id,
                provider=provider.value,
                error_type=type(e).__name__,
            )
            return ProviderFetchStatus.failed(provider, "adapter_error"), []

    async def _fetch_with_retry(
        self,
        user_id: str,
        provider: ProviderType,
        adapter: ProviderAdapter,
        time_range: TimeRange,
    ) -> tuple[ProviderFetchStatus, list[NormalizedActivity]]:
        try:
            token = await self._vault.get_valid_token(user_id, provider)
        except CredentialError as e:
            return ProviderFetchStatus.failed(provider, e.kind.value), []

        calls = 0
        transient_failures = 0
        refreshed = False

        while True:
            calls += 1
            try:
                items = await adapter.fetch_activity(user_id, token, time_range)
            except FetchError as e:
                if e.kind == FetchErrorKind.UNAUTHORIZED and not refreshed:
                    refreshed = True
                    logger.info(
                        "Provider rejected token, forcing refresh",
                        user_id=user_id,
                        provider=provider.value,
                    )
                    try:
                        token = await self._vault.force_refresh(
                            user_id, provider, rejected_token=token
                        )
                    except CredentialError as cred_error:
                        return ProviderFetchStatus.failed(
                            provider, cred_error.kind.value, attempts=calls
                        ), []
                    continue

                if e.kind in _TRANSIENT_KINDS:
                    transient_failures += 1
                    if transient_failures < self._policy.max_attempts:
                        delay = self._policy.backoff(transient_failures, e.retry_after)
                        logger.warning(
                            "Transient provider failure, retrying",
                            user_id=user_id,
                            provider=provider.value,
                            kind=e.kind.value,
                            attempt=transient_failures,
                            delay_seconds=delay,
                        )
                        await self._sleep(delay)
                        continue

                logger.warning(
                    "Provider fetch failed",
                    user_id=user_id,
                    provider=provider.value,
                    kind=e.kind.value,
                    attempts=calls,
                )
                return ProviderFetchStatus.failed(provider, e.kind.value, attempts=calls), []

            return ProviderFetchStatus.ok(provider, len(items), attempts=calls), items
