"""
Ephemeral, in-process store for processing sessions.

Sessions hold fetched third-party content, so they live only in memory and
are hard-deleted when their TTL runs out. The TTL is fixed at creation and
never extended by reads or writes.

Expiry is enforced twice: lazily on every access, and by a single
background sweeper that pops a min-heap of expiry times so expired data
does not linger in memory between accesses.
"""

import asyncio
import heapq
import uuid
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta

from app.config import settings
from app.errors import SessionError, SessionErrorKind
from app.infrastructure.observability.logging import get_logger
from app.models.domain.activity_domain import NormalizedActivity, ProviderFetchStatus
from app.models.domain.session_domain import (
    PipelineStage,
    ProcessingSession,
    StageArtifact,
    StageCost,
)

logger = get_logger(__name__)


class SessionStore:
    def __init__(
        self,
        ttl_minutes: int | None = None,
        sweep_interval_seconds: float | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._ttl = timedelta(minutes=ttl_minutes or settings.SESSION_TTL_MINUTES)
        self._sweep_interval = sweep_interval_seconds or settings.SESSION_SWEEP_INTERVAL_SECONDS
        self._now = clock or (lambda: datetime.now(UTC))

        self._sessions: dict[str, ProcessingSession] = {}
        self._expiry_heap: list[tuple[datetime, str]] = []
        # id -> expired_at, so late writers get EXPIRED instead of NOT_FOUND. Holds no data.
        self._tombstones: dict[str, datetime] = {}
        self._sweeper: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create(self, user_id: str) -> str:
        now = self._now()
        session_id = uuid.uuid4().hex
        session = ProcessingSession(
            session_id=session_id,
            user_id=user_id,
            created_at=now,
            expires_at=now + self._ttl,
        )
        self._sessions[session_id] = session
        heapq.heappush(self._expiry_heap, (session.expires_at, session_id))

        logger.info(
            "Session created",
            session_id=session_id,
            user_id=user_id,
            expires_at=session.expires_at.isoformat(),
        )
        return session_id

    def get(self, session_id: str) -> ProcessingSession:
        """
        Snapshot of a live session.

        Raises:
            SessionError: NOT_FOUND for unknown and expired sessions alike
        """
        session = self._sessions.get(session_id)
        if session is None or self._expire_if_due(session):
            raise SessionError("Session not found", SessionErrorKind.NOT_FOUND, session_id)
        return session.model_copy(deep=True)

    def delete(self, session_id: str) -> bool:
        removed = self._sessions.pop(session_id, None) is not None
        if removed:
            logger.info("Session deleted", session_id=session_id)
        return removed

    def active_count(self) -> int:
        return sum(1 for s in self._sessions.values() if s.expires_at > self._now())

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def append_activities(self, session_id: str, items: Iterable[NormalizedActivity]) -> int:
        """Add activities not already present. Returns the number added."""
        session = self._writable(session_id)
        if session.activities_sealed:
            raise SessionError(
                "Activity set is sealed", SessionErrorKind.SEALED, session_id=session_id
            )

        existing = {a.key for a in session.activities}
        added = 0
        for item in items:
            if item.key in existing:
                continue
            existing.add(item.key)
            session.activities.append(item)
            added += 1
        return added

    def seal_activities(self, session_id: str) -> None:
        """Freeze the activity set; later stages only read it."""
        self._writable(session_id).activities_sealed = True

    def set_provider_statuses(
        self, session_id: str, statuses: list[ProviderFetchStatus]
    ) -> None:
        self._writable(session_id).provider_statuses = list(statuses)

    def set_stage_artifact(
        self,
        session_id: str,
        stage: PipelineStage,
        artifact: StageArtifact,
        cost: StageCost | None = None,
    ) -> None:
        """
        Store a stage's artifact, replacing only that stage's previous one.

        The session's stage pointer only moves forward.
        """
        if stage is PipelineStage.FETCHED:
            raise ValueError("FETCHED has no artifact")

        session = self._writable(session_id)
        session.stage_artifacts[stage] = artifact.model_copy(deep=True)
        if cost is not None:
            session.stage_costs[stage] = cost
        if stage.order > session.stage.order:
            session.stage = stage

    def record_handoff(self, session_id: str, handoff_key: str, entry_id: str | None) -> None:
        """Remember a draft the journal service accepted, so a retry skips it."""
        self._writable(session_id).handed_off[handoff_key] = entry_id

    def _writable(self, session_id: str) -> ProcessingSession:
        session = self._sessions.get(session_id)
        if session is not None and not self._expire_if_due(session):
            return session
        if session_id in self._tombstones:
            raise SessionError("Session expired", SessionErrorKind.EXPIRED, session_id)
        raise SessionError("Session not found", SessionErrorKind.NOT_FOUND, session_id)

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    def _expire_if_due(self, session: ProcessingSession) -> bool:
        now = self._now()
        if now < session.expires_at:
            return False
        self._sessions.pop(session.session_id, None)
        self._tombstones[session.session_id] = now
        logger.info("Session expired", session_id=session.session_id)
        return True

    def sweep(self) -> int:
        """Hard-delete every session whose TTL has passed. Returns count removed."""
        now = self._now()
        removed = 0
        while self._expiry_heap and self._expiry_heap[0][0] <= now:
            _, session_id = heapq.heappop(self._expiry_heap)
            session = self._sessions.get(session_id)
            if session is not None and self._expire_if_due(session):
                removed += 1

        # Tombstones only need to outlive any in-flight pipeline stage
        cutoff = now - self._ttl
        for session_id in [sid for sid, at in self._tombstones.items() if at <= cutoff]:
            del self._tombstones[session_id]

        if removed:
            logger.info("Session sweep removed expired sessions", removed=removed)
        return removed

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                self.sweep()
            except Exception as e:
                logger.error("Session sweep failed", error=str(e), error_type=type(e).__name__)

    def start_sweeper(self) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_forever(), name="session-sweeper")
            logger.info("Session sweeper started", interval_seconds=self._sweep_interval)

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
        logger.info("Session sweeper stopped")
