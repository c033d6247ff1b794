"""
Agent pipeline: runs one stage of analyze -> correlate -> generate over a
session's sealed activity set.

Each stage reads a snapshot of the session, calls its agent, and on success
writes back only its own artifact. A failed stage leaves everything already
in the session untouched.
"""

from app.errors import StageError, StageErrorKind
from app.infrastructure.audit import AuditAction, AuditLogger, audit_logger
from app.infrastructure.observability.logging import get_logger
from app.models.domain.session_domain import (
    AnalysisArtifact,
    CorrelationArtifact,
    PipelineStage,
    ProcessingSession,
    QualityLevel,
    StageArtifact,
)
from app.services.ai.llm_client import LLMError
from app.services.ai.model_selector import ModelHandle, ModelSelector
from app.services.pipeline.analyzer import ActivityAnalyzer
from app.services.pipeline.base import AgentOutput, InvalidArtifactError
from app.services.pipeline.correlator import ActivityCorrelator
from app.services.pipeline.generator import EntryGenerator
from app.services.session_store import SessionStore

logger = get_logger(__name__)

MAX_STAGE_ATTEMPTS = 2


class AgentPipeline:
    def __init__(
        self,
        store: SessionStore,
        selector: ModelSelector,
        analyzer: ActivityAnalyzer,
        correlator: ActivityCorrelator,
        generator: EntryGenerator,
        audit: AuditLogger | None = None,
    ):
        self._store = store
        self._selector = selector
        self._analyzer = analyzer
        self._correlator = correlator
        self._generator = generator
        self._audit = audit or audit_logger

    async def run_stage(
        self,
        session_id: str,
        stage: PipelineStage,
        quality: QualityLevel = QualityLevel.BALANCED,
    ) -> StageArtifact:
        """
        Run one stage and store its artifact.

        Raises:
            StageError: prerequisite missing, or the agent failed twice
            SessionError: session unknown, or expired while the stage ran
        """
        if stage is PipelineStage.FETCHED:
            raise ValueError("FETCHED is populated by the fetch step, not the pipeline")

        session = self._store.get(session_id)
        self._check_prerequisite(session, stage)
        handle = self._selector.select_model(stage, quality)

        last_error: Exception | None = None
        for attempt in range(1, MAX_STAGE_ATTEMPTS + 1):
            try:
                output = await self._invoke(session, stage, handle)
                break
            except (LLMError, InvalidArtifactError) as e:
                last_error = e
                logger.warning(
                    "Pipeline stage attempt failed",
                    session_id=session_id,
                    stage=stage.value,
                    attempt=attempt,
                    error=str(e),
                    error_type=type(e).__name__,
                )
        else:
            await self._fail(session, stage, handle, last_error)

        cost = output.cost(handle.name)
        self._store.set_stage_artifact(session_id, stage, output.artifact, cost)

        await self._audit.log(
            user_id=session.user_id,
            action=AuditAction.STAGE_COMPLETED,
            session_id=session_id,
            outcome=stage.value,
            metadata={
                "model": handle.name,
                "quality": quality.value,
                "input_tokens": cost.input_tokens,
                "output_tokens": cost.output_tokens,
                "estimated_cost": cost.estimated_cost,
            },
        )
        logger.info(
            "Pipeline stage completed",
            session_id=session_id,
            stage=stage.value,
            model=handle.name,
            estimated_cost=cost.estimated_cost,
        )
        return output.artifact

    @staticmethod
    def _check_prerequisite(session: ProcessingSession, stage: PipelineStage) -> None:
        prerequisite = stage.prerequisite
        if prerequisite is PipelineStage.FETCHED:
            satisfied = session.activities_sealed
        else:
            satisfied = prerequisite in session.stage_artifacts
        if not satisfied:
            raise StageError(
                f"Stage {stage.value} requires {prerequisite.value} first",
                StageErrorKind.PREREQUISITE_MISSING,
                stage=stage.value,
                session_id=session.session_id,
                recoverable=False,
            )

    async def _invoke(
        self, session: ProcessingSession, stage: PipelineStage, handle: ModelHandle
    ) -> AgentOutput:
        activities = session.activities
        if stage is PipelineStage.ANALYZED:
            return await self._analyzer.analyze(activities, handle)

        analysis = self._required_artifact(session, stage, PipelineStage.ANALYZED, AnalysisArtifact)
        if stage is PipelineStage.CORRELATED:
            return await self._correlator.correlate(activities, analysis, handle)

        correlation = self._required_artifact(
            session, stage, PipelineStage.CORRELATED, CorrelationArtifact
        )
        return await self._generator.generate(activities, analysis, correlation, handle)

    @staticmethod
    def _required_artifact(
        session: ProcessingSession,
        stage: PipelineStage,
        source: PipelineStage,
        artifact_type: type,
    ):
        artifact = session.stage_artifacts.get(source)
        if not isinstance(artifact, artifact_type):
            raise StageError(
                f"{source.value} artifact missing",
                StageErrorKind.PREREQUISITE_MISSING,
                stage=stage.value,
                session_id=session.session_id,
                recoverable=False,
            )
        return artifact

    async def _fail(
        self,
        session: ProcessingSession,
        stage: PipelineStage,
        handle: ModelHandle,
        error: Exception | None,
    ) -> None:
        kind = (
            StageErrorKind.MODEL_UNAVAILABLE
            if isinstance(error, LLMError)
            else StageErrorKind.INVALID_ARTIFACT
        )
        await self._audit.log(
            user_id=session.user_id,
            action=AuditAction.STAGE_FAILED,
            session_id=session.session_id,
            outcome=kind.value,
            metadata={"stage": stage.value, "model": handle.name, "error": str(error)},
        )
        logger.error(
            "Pipeline stage failed",
            session_id=session.session_id,
            stage=stage.value,
            kind=kind.value,
            error=str(error),
        )
        raise StageError(
            f"Stage {stage.value} failed: {error}",
            kind,
            stage=stage.value,
            session_id=session.session_id,
        ) from error
