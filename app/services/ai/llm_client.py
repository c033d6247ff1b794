"""
OpenAI chat-completion client used by the pipeline agents.
Requests JSON output and reports token usage and estimated cost per call.
"""

import asyncio
from dataclasses import dataclass

import openai
from openai import AsyncOpenAI

from app.config import settings
from app.infrastructure.observability.logging import get_logger
from app.services.ai.model_selector import ModelHandle, ModelSelector

logger = get_logger(__name__)


class LLMError(Exception):
    """Raised when no usable completion could be obtained."""

    def __init__(self, message: str, api_error: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.api_error = api_error
        self.recoverable = recoverable


@dataclass(frozen=True)
class LLMResult:
    content: str
    model: str
    input_tokens: int
    output_tokens: int
    estimated_cost: float


class LLMClient:
    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        max_retries: int | None = None,
        max_tokens: int | None = None,
    ):
        self._client = client
        self._max_retries = max_retries or settings.LLM_MAX_RETRIES
        self._max_tokens = max_tokens or settings.LLM_MAX_TOKENS

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not settings.OPENAI_API_KEY:
                raise LLMError("OPENAI_API_KEY not configured", recoverable=False)
            self._client = AsyncOpenAI(
                api_key=settings.OPENAI_API_KEY,
                base_url=settings.OPENAI_BASE_URL,
                timeout=settings.LLM_TIMEOUT_SECONDS,
                max_retries=0,
            )
            logger.info("OpenAI client initialized", timeout=settings.LLM_TIMEOUT_SECONDS)
        return self._client

    async def complete_json(
        self,
        handle: ModelHandle,
        system_message: str,
        user_message: str,
        temperature: float = 0.0,
    ) -> LLMResult:
        """Call the model with retry on rate limits, timeouts and 5xx."""
        client = self._get_client()
        last_error: Exception | None = None

        for attempt in range(self._max_retries):
            try:
                response = await client.chat.completions.create(
                    model=handle.name,
                    messages=[
                        {"role": "system", "content": system_message},
                        {"role": "user", "content": user_message},
                    ],
                    max_tokens=self._max_tokens,
                    temperature=temperature,
                    seed=7,
                    response_format={"type": "json_object"},
                )

                if not response.choices or not response.choices[0].message.content:
                    raise LLMError("Empty response from model")

                usage = response.usage
                input_tokens = usage.prompt_tokens if usage else 0
                output_tokens = usage.completion_tokens if usage else 0
                result = LLMResult(
                    content=response.choices[0].message.content.strip(),
                    model=handle.name,
                    input_tokens=input_tokens,
                    output_tokens=output_tokens,
                    estimated_cost=ModelSelector.estimate_cost(handle, input_tokens, output_tokens),
                )

                logger.info(
                    "Model call successful",
                    model=handle.name,
                    tier=handle.tier.value,
                    attempt=attempt + 1,
                    input_tokens=input_tokens,
                    output_tokens=output_tokens,
                    estimated_cost=result.estimated_cost,
                )
                return result

            except openai.RateLimitError as e:
                last_error = e
                wait_time = min(2**attempt, 30)
                logger.warning(
                    "Model rate limit hit, retrying",
                    model=handle.name,
                    attempt=attempt + 1,
                    wait_time=wait_time,
                )
                if attempt < self._max_retries - 1:
                    await asyncio.sleep(wait_time)

            except openai.APITimeoutError as e:
                last_error = e
                logger.warning(
                    "Model call timed out, retrying", model=handle.name, attempt=attempt + 1
                )

            except openai.APIStatusError as e:
                last_error = e
                if 400 <= e.status_code < 500:
                    logger.error(
                        "Model client error (not retrying)",
                        model=handle.name,
                        status_code=e.status_code,
                        error=str(e),
                    )
                    break
                logger.warning("Model API error, retrying", model=handle.name, attempt=attempt + 1)

            except openai.APIConnectionError as e:
                last_error = e
                logger.warning(
                    "Model API unreachable, retrying", model=handle.name, attempt=attempt + 1
                )

            except LLMError as e:
                last_error = e
                logger.warning("Model returned no content", model=handle.name, attempt=attempt + 1)

        logger.error(
            "Model call failed after retries",
            model=handle.name,
            max_retries=self._max_retries,
            final_error=str(last_error),
        )
        raise LLMError(
            f"Model {handle.name} failed after {self._max_retries} attempts",
            api_error=str(last_error),
        ) from last_error
