"""Abstract base class for embedding providers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from moodscope.exceptions import EmbeddingError

__all__ = ["BaseEmbedder", "validate_dimension", "zero_vector"]

logger = logging.getLogger(__name__)


def zero_vector(dimension: int) -> tuple[float, ...]:
    """Placeholder vector for tracks with nothing to embed."""
    return (0.0,) * dimension


def validate_dimension(vector: list[float], dimension: int) -> None:
    """Raise a non-retryable EmbeddingError if ``vector`` has the wrong length.

    A mismatch means the model and the configured index dimension disagree,
    which no retry will fix.
    """
    if len(vector) != dimension:
        raise EmbeddingError(
            f"Embedding must be exactly {dimension} dimensions, got {len(vector)}",
            500,
            retryable=False,
        )


class BaseEmbedder(ABC):
    """Base class for all embedding providers.

    Subclasses turn text into fixed-length dense vectors.
    """

    @abstractmethod
    def embed(self, text: str) -> list[float]:
        """Generate an embedding for ``text``.

        Raises:
            EmbeddingError: If embedding generation fails or the vector has
                the wrong dimension.
        """

    def embed_with_instruct(self, text: str, instruction: str) -> list[float]:
        """Embed ``text`` prefixed by an instruction (asymmetric query embedding)."""
        return self.embed(f"{instruction} {text}")

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Return the dimensionality of the embedding vectors."""

    def is_healthy(self) -> bool:
        """Return True if the provider answers a probe request."""
        try:
            self.embed("health probe")
        except EmbeddingError as e:
            logger.warning("Embedding provider unhealthy: %s", e)
            return False
        return True
