"""
Activity journal service: the inbound interface the HTTP routes call.

Coordinates fetch -> session -> pipeline -> handoff for one user and
enforces that a session is only visible to the user who created it.
"""

from collections.abc import Iterable

from app.errors import SessionError, SessionErrorKind, StageError, StageErrorKind
from app.infrastructure.audit import AuditAction, AuditLogger, audit_logger
from app.infrastructure.observability.logging import get_logger
from app.models.domain.activity_domain import TimeRange
from app.models.domain.credential_domain import ProviderType
from app.models.domain.session_domain import (
    GeneratedEntryDraft,
    GenerationArtifact,
    PipelineStage,
    ProcessingSession,
    QualityLevel,
    SessionStatus,
    StageArtifact,
)
from app.services.fetch_orchestrator import FetchOrchestrator
from app.services.journal_entry_client import JournalEntryClient, JournalHandoffError
from app.services.pipeline import AgentPipeline
from app.services.session_store import SessionStore

logger = get_logger(__name__)


class ActivityJournalService:
    def __init__(
        self,
        orchestrator: FetchOrchestrator,
        store: SessionStore,
        pipeline: AgentPipeline,
        journal_client: JournalEntryClient,
        audit: AuditLogger | None = None,
    ):
        self._orchestrator = orchestrator
        self._store = store
        self._pipeline = pipeline
        self._journal = journal_client
        self._audit = audit or audit_logger

    async def initiate_fetch(
        self,
        user_id: str,
        provider_types: Iterable[ProviderType],
        time_range: TimeRange,
    ) -> str:
        """Create a session, fetch every requested provider into it and seal it."""
        session_id = self._store.create(user_id)
        result = await self._orchestrator.fetch_all(user_id, provider_types, time_range)

        self._store.append_activities(session_id, result.activities)
        self._store.set_provider_statuses(session_id, result.statuses)
        self._store.seal_activities(session_id)

        logger.info(
            "Activity fetch stored in session",
            user_id=user_id,
            session_id=session_id,
            activity_count=len(result.activities),
            providers_ok=sum(1 for s in result.statuses if s.state == "ok"),
        )
        return session_id

    def get_session_status(self, user_id: str, session_id: str) -> SessionStatus:
        return SessionStatus.from_session(self._owned_session(user_id, session_id))

    async def run_stage(
        self,
        user_id: str,
        session_id: str,
        stage: PipelineStage,
        quality: QualityLevel = QualityLevel.BALANCED,
    ) -> StageArtifact:
        self._owned_session(user_id, session_id)
        return await self._pipeline.run_stage(session_id, stage, quality)

    async def finalize(
        self, user_id: str, session_id: str, handoff: bool = True
    ) -> list[GeneratedEntryDraft]:
        """
        Return the generated drafts, optionally handing each one off.

        The session is deleted only once every draft was accepted; on a
        failed handoff it stays until its TTL so the user can retry. Drafts
        accepted on an earlier attempt are not posted again.

        Raises:
            StageError: PREREQUISITE_MISSING when nothing has been generated
            JournalHandoffError: a draft could not be handed off
        """
        session = self._owned_session(user_id, session_id)
        artifact = session.stage_artifacts.get(PipelineStage.GENERATED)
        if not isinstance(artifact, GenerationArtifact):
            raise StageError(
                "No generated drafts to finalize",
                StageErrorKind.PREREQUISITE_MISSING,
                stage=PipelineStage.GENERATED.value,
                session_id=session_id,
                recoverable=False,
            )

        drafts = artifact.drafts
        if not handoff:
            return drafts

        handed_off = 0
        skipped = 0
        for index, draft in enumerate(drafts):
            handoff_key = draft.handoff_key(session_id, index)
            if handoff_key in session.handed_off:
                skipped += 1
                continue
            try:
                entry_id = await self._journal.create_entry(
                    user_id, draft, idempotency_key=handoff_key
                )
            except JournalHandoffError as e:
                await self._audit.log(
                    user_id=user_id,
                    action=AuditAction.ENTRY_HANDOFF_FAILED,
                    session_id=session_id,
                    outcome="failed",
                    item_count=handed_off + skipped,
                    metadata={"error": str(e), "status_code": e.status_code},
                )
                raise
            self._store.record_handoff(session_id, handoff_key, entry_id)
            handed_off += 1

        self._store.delete(session_id)
        await self._audit.log(
            user_id=user_id,
            action=AuditAction.SESSION_FINALIZED,
            session_id=session_id,
            outcome="handed_off",
            item_count=handed_off + skipped,
            metadata={"estimated_cost": session.total_cost, "already_handed_off": skipped},
        )
        logger.info(
            "Session finalized",
            user_id=user_id,
            session_id=session_id,
            drafts=handed_off,
            already_handed_off=skipped,
        )
        return drafts

    def clear_session(self, user_id: str, session_id: str) -> None:
        self._owned_session(user_id, session_id)
        self._store.delete(session_id)

    def _owned_session(self, user_id: str, session_id: str) -> ProcessingSession:
        session = self._store.get(session_id)
        if session.user_id != user_id:
            # Indistinguishable from a missing session for non-owners
            raise SessionError("Session not found", SessionErrorKind.NOT_FOUND, session_id)
        return session
