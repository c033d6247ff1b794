"""
Generator agent: drafts journal entries from correlated work units.
"""

import json
from dataclasses import dataclass

from app.infrastructure.observability.logging import get_logger
from app.models.domain.activity_domain import NormalizedActivity
from app.models.domain.session_domain import (
    ActivityCategory,
    ActivityClassification,
    AnalysisArtifact,
    CorrelationArtifact,
    EntryType,
    GeneratedEntryDraft,
    GenerationArtifact,
    Importance,
    SuggestedMetadata,
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
from app.services.pipeline.prompts import GENERATOR_SYSTEM_MESSAGE

logger = get_logger(__name__)

CATEGORY_ENTRY_TYPES = {
    ActivityCategory.ACHIEVEMENT: EntryType.ACHIEVEMENT,
    ActivityCategory.PROBLEM_SOLVING: EntryType.ACHIEVEMENT,
    ActivityCategory.DOCUMENTATION: EntryType.ACHIEVEMENT,
    ActivityCategory.LEARNING: EntryType.LEARNING,
    ActivityCategory.COLLABORATION: EntryType.REFLECTION,
    ActivityCategory.UNCATEGORIZED: EntryType.REFLECTION,
}

MAX_TITLE_LENGTH = 80


@dataclass(frozen=True)
class WorkUnit:
    unit_id: str
    activity_ids: list[str]
    category: ActivityCategory
    importance: Importance
    theme: str | None = None


def build_work_units(
    analysis: AnalysisArtifact, correlation: CorrelationArtifact
) -> list[WorkUnit]:
    """Correlation groups first, then notable ungrouped activities."""
    units = [
        WorkUnit(g.group_id, list(g.activity_ids), g.category, g.importance, g.theme)
        for g in correlation.groups
    ]

    classifications = analysis.by_activity()
    ungrouped = [
        classifications.get(aid) or ActivityClassification(activity_id=aid)
        for aid in correlation.ungrouped_activity_ids
    ]
    notable = [c for c in ungrouped if c.importance in (Importance.HIGH, Importance.MEDIUM)]
    for c in notable or ungrouped:
        units.append(WorkUnit(c.activity_id, [c.activity_id], c.category, c.importance))
    return units


class EntryGenerator:
    def __init__(self, llm: LLMClient):
        self._llm = llm

    async def generate(
        self,
        activities: list[NormalizedActivity],
        analysis: AnalysisArtifact,
        correlation: CorrelationArtifact,
        handle: ModelHandle,
    ) -> AgentOutput:
        units = build_work_units(analysis, correlation)
        if not units:
            raise InvalidArtifactError("No work units to generate entries from")

        index = {a.activity_id: a for a in activities}
        classifications = analysis.by_activity()

        result = await self._llm.complete_json(
            handle,
            GENERATOR_SYSTEM_MESSAGE,
            self._build_user_message(units, index, classifications),
            temperature=0.3,
        )
        drafts = self._parse_drafts(result.content, units, activities, classifications)
        if not drafts:
            raise InvalidArtifactError("Model produced no usable drafts")

        logger.info(
            "Journal drafts generated",
            model=handle.name,
            work_units=len(units),
            drafts=len(drafts),
        )
        return AgentOutput(
            artifact=GenerationArtifact(model=handle.name, drafts=drafts), calls=[result]
        )

    @staticmethod
    def _build_user_message(
        units: list[WorkUnit],
        index: dict[str, NormalizedActivity],
        classifications: dict[str, ActivityClassification],
    ) -> str:
        payload = []
        for unit in units:
            members = [index[aid] for aid in unit.activity_ids if aid in index]
            payload.append(
                {
                    "unit_id": unit.unit_id,
                    "theme": unit.theme,
                    "category": unit.category.value,
                    "importance": unit.importance.value,
                    "activities": [
                        {
                            "provider": a.provider.value,
                            "kind": a.kind.value,
                            "title": a.title,
                            "timestamp": a.timestamp.isoformat(),
                            "description": truncate(a.description, 400),
                            "skills": classifications[a.activity_id].skills
                            if a.activity_id in classifications
                            else [],
                        }
                        for a in members
                    ],
                }
            )
        return "Write journal entries for these work units:\n" + json.dumps(
            {"work_units": payload}, indent=1
        )

    @staticmethod
    def _parse_drafts(
        content: str,
        units: list[WorkUnit],
        activities: list[NormalizedActivity],
        classifications: dict[str, ActivityClassification],
    ) -> list[GeneratedEntryDraft]:
        entries = parse_json_object(content, "drafts")
        units_by_id = {u.unit_id: u for u in units}
        activity_order = {a.activity_id: i for i, a in enumerate(activities)}
        drafts: list[GeneratedEntryDraft] = []

        for entry in entries:
            if not isinstance(entry, dict):
                continue
            unit_ids = entry.get("unit_ids")
            covered = [
                units_by_id[uid]
                for uid in dict.fromkeys(unit_ids if isinstance(unit_ids, list) else [])
                if isinstance(uid, str) and uid in units_by_id
            ]
            title, text = entry.get("title"), entry.get("text")
            if not covered or not isinstance(title, str) or not isinstance(text, str):
                continue
            if not title.strip() or not text.strip():
                continue

            source_ids = sorted(
                {aid for unit in covered for aid in unit.activity_ids if aid in activity_order},
                key=activity_order.__getitem__,
            )
            if not source_ids:
                continue

            try:
                entry_type = EntryType(entry.get("entry_type"))
            except ValueError:
                entry_type = CATEGORY_ENTRY_TYPES[covered[0].category]

            skills = clean_skills(entry.get("skills"))
            if not skills:
                skills = clean_skills(
                    [s for aid in source_ids for s in classifications.get(aid, _NO_SKILLS).skills]
                )

            drafts.append(
                GeneratedEntryDraft(
                    title=title.strip()[:MAX_TITLE_LENGTH],
                    text=text.strip(),
                    entry_type=entry_type,
                    extracted_skills=skills,
                    suggested_metadata=SuggestedMetadata(
                        project=_optional_text(entry.get("project")),
                        client=_optional_text(entry.get("client")),
                    ),
                    source_activity_ids=source_ids,
                )
            )
        return drafts


_NO_SKILLS = ActivityClassification(activity_id="")


def _optional_text(value) -> str | None:
    if isinstance(value, str) and value.strip() and value.strip().lower() != "null":
        return value.strip()
    return None
