"""Concrete implementation of the TextGenerationModel interface using the OpenAI API.

Hides the specifics of the OpenAI client library and translates its failures
into ApiCallError.
"""

import asyncio
import logging
import os
import time
from typing import Any, Optional

from openai import OpenAI, RateLimitError, APIError

from quotaguard.domain.interfaces.ai_model import TextGenerationModel
from quotaguard.domain.models.common import ErrorKind, GeneratedText, ModelName, PromptText
from quotaguard.domain.models.errors import ApiCallError
from quotaguard.infrastructure.resilience.error_classifier import ErrorClassifier

logger = logging.getLogger(__name__)


class GptClient(TextGenerationModel):
    """OpenAI implementation of the TextGenerationModel interface."""

    provider_name = "openai"
    DEFAULT_MODEL = ModelName("gpt-4o-mini")

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        classifier: Optional[ErrorClassifier] = None,
        client: Optional[Any] = None,
    ):
        """Initializes the OpenAI client.

        Args:
            api_key: OpenAI API key. Reads from OPENAI_API_KEY env var if None.
            model: The default OpenAI model to use.
            classifier: Classifier for errors that are not rate-limit errors.
            client: Pre-built SDK client, mainly for tests.
        """
        self.classifier = classifier or ErrorClassifier()
        if client is not None:
            self.client = client
        else:
            effective_api_key = api_key or os.getenv("OPENAI_API_KEY")
            if not effective_api_key:
                raise ValueError("OpenAI API key not provided and not found in environment variables.")
            self.client = OpenAI(api_key=effective_api_key)

        self._model = ModelName(model or self.DEFAULT_MODEL)
        logger.info(f"GptClient initialized for model: {self._model}")

    @property
    def default_model(self) -> ModelName:
        return self._model

    async def generate_content(self, prompt: PromptText, model: Optional[ModelName] = None) -> GeneratedText:
        selected = model or self._model
        logger.debug(f"Sending prompt ({len(prompt)} chars) to OpenAI model: {selected}")
        start_time = time.perf_counter()
        try:
            response = await asyncio.to_thread(
                self.client.chat.completions.create,
                model=selected,
                messages=[{"role": "user", "content": prompt}],
            )
        except RateLimitError as e:
            # Covers both per-minute limits and insufficient_quota
            logger.warning(f"OpenAI Rate Limit Error encountered: {e}")
            raise ApiCallError(
                str(e), kind=ErrorKind.QUOTA_EXHAUSTED, status_code=429, provider=self.provider_name
            ) from e
        except APIError as e:
            logger.warning(f"OpenAI API Error encountered (Status: {getattr(e, 'status_code', 'N/A')}): {e}")
            raise self.classifier.to_api_error(e, provider=self.provider_name) from e

        latency_ms = (time.perf_counter() - start_time) * 1000
        try:
            content = response.choices[0].message.content or ""
        except (AttributeError, IndexError, TypeError) as e:
            logger.error(f"Failed to parse OpenAI response structure: {e}")
            raise ApiCallError(f"Invalid response structure from OpenAI: {e}", provider=self.provider_name) from e
        logger.debug(f"Received response from OpenAI in {latency_ms:.2f}ms.")
        return GeneratedText(content)
