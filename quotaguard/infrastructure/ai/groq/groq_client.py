"""Concrete implementation of the TextGenerationModel interface using the Groq API.

Hides the specifics of the Groq client library and translates its failures
into ApiCallError so the governor can tell quota exhaustion from other errors.
"""

import asyncio
import logging
import os
import time
from typing import Any, Optional

from groq import Groq as GroqSDKClient, RateLimitError, APIError

from quotaguard.domain.interfaces.ai_model import TextGenerationModel
from quotaguard.domain.models.common import ErrorKind, GeneratedText, ModelName, PromptText
from quotaguard.domain.models.errors import ApiCallError
from quotaguard.infrastructure.resilience.error_classifier import ErrorClassifier

logger = logging.getLogger(__name__)


class GroqClient(TextGenerationModel):
    """Groq implementation of the TextGenerationModel interface."""

    provider_name = "groq"
    DEFAULT_MODEL = ModelName("llama-3.3-70b-versatile")

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        classifier: Optional[ErrorClassifier] = None,
        client: Optional[Any] = None,
    ):
        """Initializes the Groq client.

        Args:
            api_key: Groq API key. Reads from GROQ_API_KEY env var if None.
            model: The default Groq model to use.
            classifier: Classifier for errors that are not rate-limit errors.
            client: Pre-built SDK client (tests inject a mock here).
        """
        self.classifier = classifier or ErrorClassifier()
        if client is not None:
            self.client = client
        else:
            effective_api_key = api_key or os.getenv("GROQ_API_KEY")
            if not effective_api_key:
                raise ValueError("Groq API key not provided and not found in environment variables.")
            self.client = GroqSDKClient(api_key=effective_api_key)

        self._model = ModelName(model or self.DEFAULT_MODEL)
        logger.info(f"GroqClient initialized for model: {self._model}")

    @property
    def default_model(self) -> ModelName:
        return self._model

    async def generate_content(self, prompt: PromptText, model: Optional[ModelName] = None) -> GeneratedText:
        """Sends a single-turn prompt to Groq asynchronously."""
        selected = model or self._model
        logger.debug(f"Sending prompt ({len(prompt)} chars) to Groq model: {selected}")
        start_time = time.perf_counter()
        try:
            # The official Groq SDK is synchronous
            completion = await asyncio.to_thread(
                self.client.chat.completions.create,
                model=selected,
                messages=[{"role": "user", "content": prompt}],
            )
        except RateLimitError as e:
            logger.warning(f"Groq Rate Limit Error encountered: {e}")
            raise ApiCallError(
                str(e), kind=ErrorKind.QUOTA_EXHAUSTED, status_code=429, provider=self.provider_name
            ) from e
        except APIError as e:
            logger.warning(f"Groq API Error encountered (Status: {getattr(e, 'status_code', 'N/A')}): {e}")
            raise self.classifier.to_api_error(e, provider=self.provider_name) from e

        latency_ms = (time.perf_counter() - start_time) * 1000
        try:
            content = completion.choices[0].message.content or ""
        except (AttributeError, IndexError, TypeError) as e:
            logger.error(f"Failed to parse Groq response structure: {e}")
            raise ApiCallError(f"Invalid response structure from Groq: {e}", provider=self.provider_name) from e
        logger.debug(f"Received response from Groq in {latency_ms:.2f}ms.")
        return GeneratedText(content)
