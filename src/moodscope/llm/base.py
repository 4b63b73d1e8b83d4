"""Abstract base class for LLM text-generation providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from moodscope.types import Generation

__all__ = ["BaseLLM"]


class BaseLLM(ABC):
    """Base class for all text-generation providers."""

    @abstractmethod
    def generate(
        self,
        prompt: str,
        max_output_tokens: int,
        *,
        model: str | None = None,
        system: str | None = None,
        temperature: float | None = None,
    ) -> Generation:
        """Generate a completion for a single user prompt.

        Args:
            prompt: User message text.
            max_output_tokens: Upper bound on generated tokens.
            model: Model override; providers fall back to their configured default.
            system: Optional system prompt.
            temperature: Optional sampling temperature.

        Returns:
            Generation with the completion text and token usage.

        Raises:
            LLMError: If the call fails or the completion is empty.
        """

    def is_healthy(self) -> bool:
        """Return True if the provider looks usable.

        Must not generate tokens. Providers without a free probe endpoint
        keep this default.
        """
        return True
