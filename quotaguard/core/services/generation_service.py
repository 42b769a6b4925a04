"""Application Service for governed text generation.

Routes prompts through the RequestGovernor (plain generation) or through the
DedupResolver (contextual generation whose result depends on a state
snapshot), using the configured TextGenerationModel.
"""

import hashlib
import logging
from typing import Optional

from quotaguard.domain.interfaces.ai_model import TextGenerationModel
from quotaguard.domain.models.common import (
    CacheKey, GeneratedText, ModelName, Priority, PromptText,
)
from quotaguard.domain.models.errors import ProviderUnavailableError
from quotaguard.domain.models.fingerprint import StateSnapshot
from quotaguard.domain.models.limiter import ExecuteOptions
from quotaguard.infrastructure.resilience.dedup import DedupResolver
from quotaguard.infrastructure.resilience.governor import RequestGovernor

logger = logging.getLogger(__name__)

PROMPT_DIGEST_LENGTH = 16


class GenerationService:
    """Orchestrates governed calls to the text-generation provider."""

    def __init__(
        self,
        governor: RequestGovernor,
        dedup: DedupResolver,
        ai_model: Optional[TextGenerationModel] = None,
    ):
        """Initializes the GenerationService.

        Args:
            governor: Governor all provider calls go through.
            dedup: Deduplication layer for contextual results.
            ai_model: Provider client. Generation raises ProviderUnavailableError without one.
        """
        self.governor = governor
        self.dedup = dedup
        self.ai_model = ai_model

    def _require_model(self) -> TextGenerationModel:
        if self.ai_model is None:
            raise ProviderUnavailableError(
                "No text-generation provider configured. Set GROQ_API_KEY or OPENAI_API_KEY."
            )
        return self.ai_model

    def cache_key_for(self, prompt: PromptText, model: Optional[ModelName] = None) -> CacheKey:
        """Cache key of a plain generation: provider, model and a digest of the prompt."""
        ai_model = self._require_model()
        selected = model or ai_model.default_model
        digest = hashlib.sha256(prompt.encode("utf-8")).hexdigest()[:PROMPT_DIGEST_LENGTH]
        return CacheKey(f"generate:{ai_model.provider_name}:{selected}:{digest}")

    async def generate(
        self,
        prompt: PromptText,
        model: Optional[ModelName] = None,
        priority: Priority = Priority.NORMAL,
        use_cache: bool = True,
        force_refresh: bool = False,
        cache_duration_ms: Optional[int] = None,
    ) -> GeneratedText:
        """Generates text for ``prompt`` under the governor's admission control.

        Raises:
            ProviderUnavailableError: If no provider client is configured.
            CooldownActiveError: If the API is cooling down and nothing is cached.
            RetriesExhaustedError: If the provider kept failing.
        """
        ai_model = self._require_model()
        cache_key = self.cache_key_for(prompt, model)
        logger.info(f"Generating with {ai_model.provider_name} (priority={priority.value}, key={cache_key})")
        options = ExecuteOptions(
            cache_duration_ms=cache_duration_ms,
            priority=priority,
            skip_cache=not use_cache,
            force_refresh=force_refresh,
        )
        return await self.governor.execute(
            cache_key, lambda: ai_model.generate_content(prompt, model), options
        )

    async def generate_contextual(
        self,
        key: str,
        prompt: PromptText,
        snapshot: StateSnapshot,
        ttl_ms: float,
        force_refresh: bool = False,
        model: Optional[ModelName] = None,
    ) -> GeneratedText:
        """Generates a result that stays valid while ``snapshot`` is unchanged.

        Concurrent calls for the same key and state share one provider call.
        """
        ai_model = self._require_model()
        state_hash = snapshot.fingerprint()
        logger.info(f"Contextual generation '{key}' (state={state_hash}, force_refresh={force_refresh})")
        return await self.dedup.resolve_deduped(
            key,
            state_hash,
            lambda: ai_model.generate_content(prompt, model),
            ttl_ms,
            force_refresh=force_refresh,
        )
