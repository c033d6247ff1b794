# models/api/activity_session_response.py
"""
Activity session API response models.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from app.models.domain.activity_domain import ProviderFetchStatus
from app.models.domain.session_domain import (
    GeneratedEntryDraft,
    PipelineStage,
    SessionStatus,
    StageArtifact,
)


class SessionStatusResponse(BaseModel):
    session_id: str
    stage: PipelineStage
    expires_at: datetime
    activity_count: int
    no_activity_found: bool = Field(..., description="Fetch succeeded but returned nothing")
    provider_statuses: list[ProviderFetchStatus]
    completed_stages: list[PipelineStage]
    estimated_cost: float = Field(..., description="Model cost so far in USD")

    @classmethod
    def from_status(cls, status: SessionStatus) -> "SessionStatusResponse":
        return cls(**status.model_dump())


class StageRunResponse(BaseModel):
    session_id: str
    stage: PipelineStage
    artifact: StageArtifact


class FinalizeSessionResponse(BaseModel):
    session_id: str
    drafts: list[GeneratedEntryDraft]
    handed_off: bool
