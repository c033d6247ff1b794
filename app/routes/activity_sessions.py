"""
Activity session endpoints: fetch into a session, run pipeline stages,
finalize drafts and erase the session.
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, status

from app.auth.verify import current_user_id
from app.config import settings
from app.dependencies import get_journal_service
from app.errors import SessionError, StageError
from app.infrastructure.observability.logging import get_logger
from app.models.api.activity_session_request import (
    CreateSessionRequest,
    FinalizeSessionRequest,
    RunStageRequest,
    StageAction,
)
from app.models.api.activity_session_response import (
    FinalizeSessionResponse,
    SessionStatusResponse,
    StageRunResponse,
)
from app.models.domain.activity_domain import TimeRange
from app.routes.errors import http_error
from app.services.activity_journal_service import ActivityJournalService
from app.services.journal_entry_client import JournalHandoffError

logger = get_logger(__name__)

router = APIRouter(prefix="/sessions", tags=["activity-sessions"])


def _time_range(body: CreateSessionRequest) -> TimeRange:
    if body.start is not None and body.end is not None:
        return TimeRange(start=body.start, end=body.end)
    days = body.lookback_days or settings.FETCH_DEFAULT_LOOKBACK_DAYS
    return TimeRange.last_days(days, now=datetime.now(UTC))


@router.post("", response_model=SessionStatusResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    body: CreateSessionRequest,
    user_id: str = Depends(current_user_id),
    service: ActivityJournalService = Depends(get_journal_service),
):
    """
    Fetch activity from the requested providers into a new session.

    Provider failures do not fail the request; they show up in
    ``provider_statuses``.
    """
    try:
        time_range = _time_range(body)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from None

    session_id = await service.initiate_fetch(user_id, body.providers, time_range)
    return SessionStatusResponse.from_status(service.get_session_status(user_id, session_id))


@router.get("/{session_id}", response_model=SessionStatusResponse)
async def get_session(
    session_id: str,
    user_id: str = Depends(current_user_id),
    service: ActivityJournalService = Depends(get_journal_service),
):
    try:
        return SessionStatusResponse.from_status(service.get_session_status(user_id, session_id))
    except SessionError as e:
        raise http_error(e) from None


@router.post("/{session_id}/stages/{action}", response_model=StageRunResponse)
async def run_stage(
    session_id: str,
    action: StageAction,
    body: RunStageRequest | None = None,
    user_id: str = Depends(current_user_id),
    service: ActivityJournalService = Depends(get_journal_service),
):
    """
    Run one pipeline stage.

    Raises:
        404: session unknown or not owned by the caller
        409: previous stage has not produced an artifact
        410: session expired while the stage was running
        502/503: model output invalid or model unavailable after retry
    """
    body = body or RunStageRequest()
    try:
        artifact = await service.run_stage(user_id, session_id, action.stage, body.quality)
    except (SessionError, StageError) as e:
        logger.warning(
            "Stage request failed",
            user_id=user_id,
            session_id=session_id,
            stage=action.stage.value,
            kind=e.kind.value,
        )
        raise http_error(e) from None

    return StageRunResponse(session_id=session_id, stage=action.stage, artifact=artifact)


@router.post("/{session_id}/finalize", response_model=FinalizeSessionResponse)
async def finalize_session(
    session_id: str,
    body: FinalizeSessionRequest | None = None,
    user_id: str = Depends(current_user_id),
    service: ActivityJournalService = Depends(get_journal_service),
):
    body = body or FinalizeSessionRequest()
    try:
        drafts = await service.finalize(user_id, session_id, handoff=body.handoff)
    except (SessionError, StageError) as e:
        raise http_error(e) from None
    except JournalHandoffError as e:
        logger.error(
            "Journal handoff failed",
            user_id=user_id,
            session_id=session_id,
            status_code=e.status_code,
        )
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error": "handoff_failed", "message": str(e)},
        ) from None

    return FinalizeSessionResponse(session_id=session_id, drafts=drafts, handed_off=body.handoff)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(
    session_id: str,
    user_id: str = Depends(current_user_id),
    service: ActivityJournalService = Depends(get_journal_service),
):
    try:
        service.clear_session(user_id, session_id)
    except SessionError as e:
        raise http_error(e) from None
