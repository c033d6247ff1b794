"""
Cost-aware model routing for the agent pipeline.

Two tiers: an economy model for high-volume classification work and a
premium model for user-facing text. The quality level picks which tier
each stage uses.
"""

from dataclasses import dataclass
from enum import StrEnum

from app.config import Settings, settings
from app.models.domain.session_domain import PipelineStage, QualityLevel


class ModelTier(StrEnum):
    ECONOMY = "economy"
    PREMIUM = "premium"


@dataclass(frozen=True)
class ModelHandle:
    name: str
    tier: ModelTier
    input_cost_per_million: float
    output_cost_per_million: float


STAGE_TIERS: dict[QualityLevel, dict[PipelineStage, ModelTier]] = {
    QualityLevel.BALANCED: {
        PipelineStage.ANALYZED: ModelTier.ECONOMY,
        PipelineStage.CORRELATED: ModelTier.ECONOMY,
        PipelineStage.GENERATED: ModelTier.PREMIUM,
    },
    QualityLevel.PREMIUM: {
        PipelineStage.ANALYZED: ModelTier.PREMIUM,
        PipelineStage.CORRELATED: ModelTier.PREMIUM,
        PipelineStage.GENERATED: ModelTier.PREMIUM,
    },
}


class ModelSelector:
    def __init__(self, economy: ModelHandle, premium: ModelHandle):
        self._handles = {ModelTier.ECONOMY: economy, ModelTier.PREMIUM: premium}

    @classmethod
    def from_settings(cls, cfg: Settings = settings) -> "ModelSelector":
        return cls(
            economy=ModelHandle(
                name=cfg.LLM_ECONOMY_MODEL,
                tier=ModelTier.ECONOMY,
                input_cost_per_million=cfg.LLM_ECONOMY_INPUT_COST_PER_MILLION,
                output_cost_per_million=cfg.LLM_ECONOMY_OUTPUT_COST_PER_MILLION,
            ),
            premium=ModelHandle(
                name=cfg.LLM_PREMIUM_MODEL,
                tier=ModelTier.PREMIUM,
                input_cost_per_million=cfg.LLM_PREMIUM_INPUT_COST_PER_MILLION,
                output_cost_per_million=cfg.LLM_PREMIUM_OUTPUT_COST_PER_MILLION,
            ),
        )

    def select_model(self, stage: PipelineStage, quality: QualityLevel) -> ModelHandle:
        try:
            tier = STAGE_TIERS[quality][stage]
        except KeyError:
            raise ValueError(f"No model routing for stage {stage} at quality {quality}") from None
        return self._handles[tier]

    @staticmethod
    def estimate_cost(handle: ModelHandle, input_tokens: int, output_tokens: int) -> float:
        """Estimated USD cost of one call."""
        return round(
            input_tokens / 1_000_000 * handle.input_cost_per_million
            + output_tokens / 1_000_000 * handle.output_cost_per_million,
            6,
        )
