"""
Model routing, cost estimation and the OpenAI client wrapper.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from app.models.domain.session_domain import PipelineStage, QualityLevel
from app.services.ai.llm_client import LLMClient, LLMError
from app.services.ai.model_selector import ModelSelector, ModelTier
from tests.fakes import ECONOMY, PREMIUM

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def _completion(content: str | None, prompt_tokens: int = 1200, completion_tokens: int = 300):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


def _openai(*outcomes):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(side_effect=list(outcomes))
    return client


def _status_error(cls, status: int):
    return cls("error", response=httpx.Response(status, request=_REQUEST), body=None)


@pytest.mark.parametrize(
    "stage,quality,expected",
    [
        (PipelineStage.ANALYZED, QualityLevel.BALANCED, ModelTier.ECONOMY),
        (PipelineStage.CORRELATED, QualityLevel.BALANCED, ModelTier.ECONOMY),
        (PipelineStage.GENERATED, QualityLevel.BALANCED, ModelTier.PREMIUM),
        (PipelineStage.ANALYZED, QualityLevel.PREMIUM, ModelTier.PREMIUM),
        (PipelineStage.GENERATED, QualityLevel.PREMIUM, ModelTier.PREMIUM),
    ],
)
def test_stage_routing(selector, stage, quality, expected):
    assert selector.select_model(stage, quality).tier == expected


def test_fetched_stage_has_no_model(selector):
    with pytest.raises(ValueError):
        selector.select_model(PipelineStage.FETCHED, QualityLevel.BALANCED)


def test_cost_estimate_uses_per_million_rates():
    assert ModelSelector.estimate_cost(ECONOMY, 1_000_000, 0) == 0.15
    assert ModelSelector.estimate_cost(PREMIUM, 2000, 1000) == 0.015


def test_selector_reads_models_from_settings():
    selector = ModelSelector.from_settings()

    economy = selector.select_model(PipelineStage.ANALYZED, QualityLevel.BALANCED)
    premium = selector.select_model(PipelineStage.GENERATED, QualityLevel.BALANCED)

    assert economy.name != premium.name
    assert economy.input_cost_per_million < premium.input_cost_per_million


@pytest.mark.asyncio
async def test_complete_json_reports_usage_and_cost():
    client = _openai(_completion('  {"classifications": []}  '))

    result = await LLMClient(client=client, max_retries=3).complete_json(ECONOMY, "sys", "user")

    assert result.content == '{"classifications": []}'
    assert result.model == "economy-model"
    assert (result.input_tokens, result.output_tokens) == (1200, 300)
    assert result.estimated_cost == ModelSelector.estimate_cost(ECONOMY, 1200, 300)
    kwargs = client.chat.completions.create.await_args.kwargs
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["model"] == "economy-model"


@pytest.mark.asyncio
async def test_transient_errors_are_retried():
    client = _openai(
        openai.APIConnectionError(request=_REQUEST),
        _status_error(openai.InternalServerError, 500),
        _completion("{}"),
    )

    result = await LLMClient(client=client, max_retries=3).complete_json(PREMIUM, "s", "u")

    assert result.content == "{}"
    assert client.chat.completions.create.await_count == 3


@pytest.mark.asyncio
async def test_rate_limit_backs_off_before_retry():
    client = _openai(_status_error(openai.RateLimitError, 429), _completion("{}"))

    with patch("app.services.ai.llm_client.asyncio.sleep", new=AsyncMock()) as sleep:
        await LLMClient(client=client, max_retries=3).complete_json(ECONOMY, "s", "u")

    sleep.assert_awaited_once_with(1)


@pytest.mark.asyncio
async def test_client_error_is_not_retried():
    client = _openai(_status_error(openai.BadRequestError, 400), _completion("{}"))

    with pytest.raises(LLMError):
        await LLMClient(client=client, max_retries=3).complete_json(ECONOMY, "s", "u")

    assert client.chat.completions.create.await_count == 1


@pytest.mark.asyncio
async def test_empty_content_exhausts_retries():
    client = _openai(_completion(None), _completion(""))

    with pytest.raises(LLMError) as exc_info:
        await LLMClient(client=client, max_retries=2).complete_json(ECONOMY, "s", "u")

    assert exc_info.value.recoverable is True
    assert client.chat.completions.create.await_count == 2


@pytest.mark.asyncio
async def test_missing_api_key_is_not_recoverable():
    with patch("app.services.ai.llm_client.settings") as mock_settings:
        mock_settings.OPENAI_API_KEY = None
        mock_settings.LLM_MAX_RETRIES = 3
        mock_settings.LLM_MAX_TOKENS = 100

        with pytest.raises(LLMError) as exc_info:
            await LLMClient().complete_json(ECONOMY, "s", "u")

    assert exc_info.value.recoverable is False
