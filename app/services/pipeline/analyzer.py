"""
Analyzer agent: per-activity category, importance and skills.
"""

import json

from app.infrastructure.observability.logging import get_logger
from app.models.domain.activity_domain import NormalizedActivity
from app.models.domain.session_domain import (
    ActivityCategory,
    ActivityClassification,
    AnalysisArtifact,
    Importance,
)
from app.services.ai.llm_client import LLMClient
from app.services.ai.model_selector import ModelHandle
from app.services.pipeline.base import (
    AgentOutput,
    InvalidArtifactError,
    clean_skills,
    parse_json_object,
    truncate,
)
from app.services.pipeline.prompts import ANALYZER_SYSTEM_MESSAGE

logger = get_logger(__name__)

BATCH_SIZE = 25


class ActivityAnalyzer:
    def __init__(self, llm: LLMClient, batch_size: int = BATCH_SIZE):
        self._llm = llm
        self._batch_size = batch_size

    async def analyze(
        self, activities: list[NormalizedActivity], handle: ModelHandle
    ) -> AgentOutput:
        """
        Classify every activity, in input order.

        Entries the model omits or gets wrong, and every entry of a batch
        whose reply is unusable, fall back to uncategorized/normal rather
        than failing the stage.
        """
        output = AgentOutput(artifact=AnalysisArtifact(model=handle.name, classifications=[]))
        classified: dict[str, ActivityClassification] = {}

        for start in range(0, len(activities), self._batch_size):
            batch = activities[start : start + self._batch_size]
            result = await self._llm.complete_json(
                handle, ANALYZER_SYSTEM_MESSAGE, self._build_user_message(batch)
            )
            output.calls.append(result)
            try:
                classified.update(self._parse_batch(result.content, batch))
            except InvalidArtifactError as e:
                logger.warning(
                    "Analyzer batch reply unusable, defaulting its activities",
                    model=handle.name,
                    batch_start=start,
                    batch_size=len(batch),
                    error=str(e),
                )

        output.artifact.classifications = [
            classified.get(a.activity_id) or ActivityClassification(activity_id=a.activity_id)
            for a in activities
        ]

        logger.info(
            "Activities analyzed",
            model=handle.name,
            activity_count=len(activities),
            batches=len(output.calls),
            defaulted=sum(1 for a in activities if a.activity_id not in classified),
        )
        return output

    @staticmethod
    def _build_user_message(batch: list[NormalizedActivity]) -> str:
        payload = [
            {
                "activity_id": a.activity_id,
                "provider": a.provider.value,
                "kind": a.kind.value,
                "title": a.title,
                "timestamp": a.timestamp.isoformat(),
                "description": truncate(a.description, 280),
            }
            for a in batch
        ]
        return "Classify these activities:\n" + json.dumps({"activities": payload}, indent=1)

    @staticmethod
    def _parse_batch(
        content: str, batch: list[NormalizedActivity]
    ) -> dict[str, ActivityClassification]:
        entries = parse_json_object(content, "classifications")
        batch_ids = {a.activity_id for a in batch}
        parsed: dict[str, ActivityClassification] = {}

        for entry in entries:
            if not isinstance(entry, dict):
                continue
            activity_id = entry.get("activity_id")
            if activity_id not in batch_ids or activity_id in parsed:
                continue

            try:
                category = ActivityCategory(entry.get("category"))
                importance = Importance(entry.get("importance"))
            except ValueError:
                category, importance = ActivityCategory.UNCATEGORIZED, Importance.NORMAL

            parsed[activity_id] = ActivityClassification(
                activity_id=activity_id,
                category=category,
                importance=importance,
                skills=clean_skills(entry.get("skills"), limit=5),
            )
        return parsed
