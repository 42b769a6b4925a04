"""Interface for text-generation models.

Defines the contract for sending a prompt to different AI providers
(e.g., Groq Llama, OpenAI GPT) and receiving generated text.
"""

import abc
from typing import Optional

from ..models.common import GeneratedText, ModelName, PromptText


class TextGenerationModel(abc.ABC):
    """Abstract Base Class for text-generation providers."""

    #: Provider name used in cache keys and log messages
    provider_name: str = "unknown"

    @property
    @abc.abstractmethod
    def default_model(self) -> ModelName:
        """The model used when a call does not select one."""
        pass

    @abc.abstractmethod
    async def generate_content(
        self, prompt: PromptText, model: Optional[ModelName] = None
    ) -> GeneratedText:
        """Generates content for a prompt asynchronously.

        Args:
            prompt: The prompt text.
            model: Optional model override; the provider default is used if None.

        Returns:
            The generated text.

        Raises:
            ApiCallError: On any failure, with ``kind`` set so the governor can
                tell quota exhaustion apart from other transient failures.
        """
        pass
