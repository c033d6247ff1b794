# models/api/activity_session_request.py
"""
Activity session API request models.
"""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field, model_validator

from app.models.domain.credential_domain import ProviderType
from app.models.domain.session_domain import PipelineStage, QualityLevel


class CreateSessionRequest(BaseModel):
    """Start a fetch. Without explicit bounds the configured lookback is used."""

    providers: list[ProviderType] = Field(..., min_length=1, description="Providers to fetch")
    start: datetime | None = Field(None, description="Window start (inclusive)")
    end: datetime | None = Field(None, description="Window end (inclusive)")
    lookback_days: int | None = Field(None, ge=1, le=90, description="Window size ending now")

    @model_validator(mode="after")
    def _window(self) -> "CreateSessionRequest":
        if (self.start is None) != (self.end is None):
            raise ValueError("start and end must be given together")
        if self.start is not None and self.lookback_days is not None:
            raise ValueError("use either start/end or lookback_days")
        return self


class RunStageRequest(BaseModel):
    quality: QualityLevel = Field(QualityLevel.BALANCED, description="Model quality level")


class FinalizeSessionRequest(BaseModel):
    handoff: bool = Field(True, description="Hand drafts to the journal service and erase")


class StageAction(StrEnum):
    ANALYZE = "analyze"
    CORRELATE = "correlate"
    GENERATE = "generate"

    @property
    def stage(self) -> PipelineStage:
        return {
            StageAction.ANALYZE: PipelineStage.ANALYZED,
            StageAction.CORRELATE: PipelineStage.CORRELATED,
            StageAction.GENERATE: PipelineStage.GENERATED,
        }[self]
