"""Short, single-sentence track descriptions with a three-tier prompt fallback.

Tier is picked by the best signal available:

* interpretation text → summarize it
* any audio-feature value → describe the sonic character
* otherwise → neutral description from title, artist and album
"""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from moodscope.llm.base import BaseLLM
    from moodscope.prompts import PromptRenderer
    from moodscope.types import AudioFeatures, Generation

__all__ = [
    "DESCRIPTION_MAX_TOKENS",
    "DescriptionTier",
    "ShortDescriber",
]

logger = logging.getLogger(__name__)

DESCRIPTION_MAX_TOKENS = 100


class DescriptionTier(enum.Enum):
    INTERPRETATION = "interpretation"
    AUDIO_FEATURES = "audio_features"
    METADATA = "metadata"


class ShortDescriber:
    """Generates short descriptions; shared by ingestion and the backfill."""

    def __init__(self, llm: BaseLLM, prompts: PromptRenderer, model: str) -> None:
        self._llm = llm
        self._prompts = prompts
        self._model = model

    def build_prompt(
        self,
        title: str,
        artist: str,
        album: str,
        interpretation: str | None,
        features: AudioFeatures | None,
    ) -> tuple[str, DescriptionTier]:
        if interpretation:
            prompt = self._prompts.short_description(title, artist, interpretation)
            return prompt, DescriptionTier.INTERPRETATION
        if features is not None and features.has_any_value():
            prompt = self._prompts.instrumental_short_description(title, artist, album, features)
            return prompt, DescriptionTier.AUDIO_FEATURES
        prompt = self._prompts.metadata_short_description(title, artist, album)
        return prompt, DescriptionTier.METADATA

    def describe(
        self,
        title: str,
        artist: str,
        album: str,
        interpretation: str | None = None,
        features: AudioFeatures | None = None,
    ) -> Generation:
        """Generate a description.

        Raises:
            LLMError: If generation fails.
            PromptError: If the prompt cannot be rendered.
        """
        prompt, tier = self.build_prompt(title, artist, album, interpretation, features)
        generation = self._llm.generate(prompt, DESCRIPTION_MAX_TOKENS, model=self._model)
        logger.debug("Short description for %r from %s tier", title, tier.value)
        return generation

    def try_describe(
        self,
        title: str,
        artist: str,
        album: str,
        interpretation: str | None = None,
        features: AudioFeatures | None = None,
    ) -> Generation | None:
        """Like :meth:`describe` but any failure is logged and gives None."""
        try:
            return self.describe(title, artist, album, interpretation, features)
        except Exception as e:
            logger.warning("Short description failed for %r by %r: %s", title, artist, e)
            return None
