"""
Shared plumbing for the pipeline agents.
"""

import json
from dataclasses import dataclass, field
from typing import Any

from app.models.domain.session_domain import StageArtifact, StageCost
from app.services.ai.llm_client import LLMResult


class InvalidArtifactError(Exception):
    """Model output could not be turned into a valid stage artifact."""


@dataclass
class AgentOutput:
    artifact: StageArtifact
    calls: list[LLMResult] = field(default_factory=list)

    def cost(self, model: str) -> StageCost:
        return StageCost(
            model=model,
            input_tokens=sum(c.input_tokens for c in self.calls),
            output_tokens=sum(c.output_tokens for c in self.calls),
            estimated_cost=round(sum(c.estimated_cost for c in self.calls), 6),
        )


def parse_json_object(content: str, required_key: str) -> list[Any]:
    """Return ``content[required_key]`` as a list, or raise InvalidArtifactError."""
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise InvalidArtifactError(f"Model returned invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise InvalidArtifactError("Model response is not a JSON object")

    value = data.get(required_key)
    if not isinstance(value, list):
        raise InvalidArtifactError(f"Model response missing '{required_key}' list")
    return value


def clean_skills(values: Any, limit: int = 8) -> list[str]:
    """Deduplicate case-insensitively, keeping first spelling and order."""
    if not isinstance(values, list):
        return []
    seen: set[str] = set()
    skills: list[str] = []
    for value in values:
        if not isinstance(value, str):
            continue
        skill = value.strip()
        if not skill or skill.lower() in seen:
            continue
        seen.add(skill.lower())
        skills.append(skill)
        if len(skills) >= limit:
            break
    return skills


def truncate(text: str | None, limit: int) -> str | None:
    if not text:
        return None
    return text if len(text) <= limit else text[: limit - 1].rstrip() + "…"
