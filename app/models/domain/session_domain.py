# models/domain/session_domain.py
"""
Processing session and pipeline artifact models.

A session holds one user's fetched activity set plus the artifact each
pipeline stage produced from it. Nothing here is persisted.
"""

import hashlib
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from app.models.domain.activity_domain import NormalizedActivity, ProviderFetchStatus


class PipelineStage(StrEnum):
    """Stages in execution order. FETCHED is the entry state."""

    FETCHED = "fetched"
    ANALYZED = "analyzed"
    CORRELATED = "correlated"
    GENERATED = "generated"

    @property
    def order(self) -> int:
        return list(PipelineStage).index(self)

    @property
    def prerequisite(self) -> "PipelineStage | None":
        if self is PipelineStage.FETCHED:
            return None
        return list(PipelineStage)[self.order - 1]


class QualityLevel(StrEnum):
    BALANCED = "balanced"
    PREMIUM = "premium"


class Importance(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    NORMAL = "normal"

    @property
    def rank(self) -> int:
        return {"high": 2, "medium": 1, "normal": 0}[self.value]


class ActivityCategory(StrEnum):
    ACHIEVEMENT = "achievement"
    LEARNING = "learning"
    COLLABORATION = "collaboration"
    DOCUMENTATION = "documentation"
    PROBLEM_SOLVING = "problem_solving"
    UNCATEGORIZED = "uncategorized"


class EntryType(StrEnum):
    ACHIEVEMENT = "achievement"
    LEARNING = "learning"
    REFLECTION = "reflection"


class ActivityClassification(BaseModel):
    activity_id: str
    category: ActivityCategory = ActivityCategory.UNCATEGORIZED
    importance: Importance = Importance.NORMAL
    skills: list[str] = Field(default_factory=list)
    correlated_with: list[str] = Field(default_factory=list)


class AnalysisArtifact(BaseModel):
    stage: PipelineStage = PipelineStage.ANALYZED
    model: str
    classifications: list[ActivityClassification]

    def by_activity(self) -> dict[str, ActivityClassification]:
        return {c.activity_id: c for c in self.classifications}


class CorrelationGroup(BaseModel):
    group_id: str
    activity_ids: list[str]
    category: ActivityCategory
    importance: Importance
    correlated_with: dict[str, list[str]] = Field(default_factory=dict)
    reason: str
    confidence: float
    theme: str | None = None


class CorrelationArtifact(BaseModel):
    stage: PipelineStage = PipelineStage.CORRELATED
    model: str
    groups: list[CorrelationGroup]
    ungrouped_activity_ids: list[str]


class SuggestedMetadata(BaseModel):
    project: str | None = None
    client: str | None = None


class GeneratedEntryDraft(BaseModel):
    title: str
    text: str
    entry_type: EntryType
    extracted_skills: list[str] = Field(default_factory=list)
    suggested_metadata: SuggestedMetadata = Field(default_factory=SuggestedMetadata)
    source_activity_ids: list[str]

    def handoff_key(self, session_id: str, index: int) -> str:
        """Stable per session, position and content; sent as the idempotency key."""
        digest = hashlib.sha256(self.model_dump_json().encode()).hexdigest()[:16]
        return f"{session_id}:{index}:{digest}"


class GenerationArtifact(BaseModel):
    stage: PipelineStage = PipelineStage.GENERATED
    model: str
    drafts: list[GeneratedEntryDraft]


StageArtifact = AnalysisArtifact | CorrelationArtifact | GenerationArtifact


class StageCost(BaseModel):
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    estimated_cost: float = 0.0


class ProcessingSession(BaseModel):
    session_id: str
    user_id: str
    created_at: datetime
    expires_at: datetime
    stage: PipelineStage = PipelineStage.FETCHED
    activities: list[NormalizedActivity] = Field(default_factory=list)
    activities_sealed: bool = False
    provider_statuses: list[ProviderFetchStatus] = Field(default_factory=list)
    stage_artifacts: dict[PipelineStage, StageArtifact] = Field(default_factory=dict)
    stage_costs: dict[PipelineStage, StageCost] = Field(default_factory=dict)
    # handoff key -> journal entry id, for drafts the journal service already accepted
    handed_off: dict[str, str | None] = Field(default_factory=dict)

    def activity_index(self) -> dict[str, NormalizedActivity]:
        return {a.activity_id: a for a in self.activities}

    @property
    def total_cost(self) -> float:
        return round(sum(c.estimated_cost for c in self.stage_costs.values()), 6)


class SessionStatus(BaseModel):
    """Owner-facing view of a session without activity content."""

    session_id: str
    stage: PipelineStage
    expires_at: datetime
    activity_count: int
    no_activity_found: bool
    provider_statuses: list[ProviderFetchStatus]
    completed_stages: list[PipelineStage]
    estimated_cost: float

    @classmethod
    def from_session(cls, session: ProcessingSession) -> "SessionStatus":
        return cls(
            session_id=session.session_id,
            stage=session.stage,
            expires_at=session.expires_at,
            activity_count=len(session.activities),
            no_activity_found=session.activities_sealed and not session.activities,
            provider_statuses=session.provider_statuses,
            completed_stages=sorted(session.stage_artifacts, key=lambda s: s.order),
            estimated_cost=session.total_cost,
        )
