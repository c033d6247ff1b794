# models/domain/activity_domain.py
"""
Provider-agnostic activity records produced by the provider adapters.
"""

from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.models.domain.credential_domain import ProviderType


class ActivityKind(StrEnum):
    COMMIT = "commit"
    PULL_REQUEST = "pull_request"
    ISSUE = "issue"
    PAGE = "page"
    COMMENT = "comment"
    DESIGN_FILE = "design_file"
    DOCUMENT = "document"
    MEETING = "meeting"
    RECORDING = "recording"
    MESSAGE = "message"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class TimeRange(BaseModel):
    """Inclusive UTC window."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def _normalize(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @model_validator(mode="after")
    def _ordered(self) -> "TimeRange":
        if self.start > self.end:
            raise ValueError("time range start must not be after end")
        return self

    @classmethod
    def last_days(cls, days: int, now: datetime | None = None) -> "TimeRange":
        now = now or datetime.now(UTC)
        return cls(start=now - timedelta(days=days), end=now)

    def contains(self, moment: datetime) -> bool:
        return self.start <= _as_utc(moment) <= self.end


class NormalizedActivity(BaseModel):
    """One unit of work from one provider. Identity is (provider, external_id)."""

    model_config = ConfigDict(frozen=True)

    provider: ProviderType
    external_id: str
    kind: ActivityKind
    title: str
    timestamp: datetime
    actor: str | None = None
    url: str | None = None
    description: str | None = None
    raw_metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @property
    def activity_id(self) -> str:
        return f"{self.provider.value}:{self.external_id}"

    @property
    def key(self) -> tuple[str, str]:
        return (self.provider.value, self.external_id)


class FetchState(StrEnum):
    OK = "ok"
    FAILED = "failed"


class ProviderFetchStatus(BaseModel):
    """Outcome of fetching one provider within a batch."""

    provider: ProviderType
    state: FetchState
    item_count: int = 0
    reason: str | None = None
    attempts: int = 0

    @classmethod
    def ok(cls, provider: ProviderType, item_count: int, attempts: int = 1):
        return cls(provider=provider, state=FetchState.OK, item_count=item_count, attempts=attempts)

    @classmethod
    def failed(cls, provider: ProviderType, reason: str, attempts: int = 0):
        return cls(provider=provider, state=FetchState.FAILED, reason=reason, attempts=attempts)
