"""Embedding clients: abstract provider interface and concrete providers."""

from moodscope.embed.base import BaseEmbedder, validate_dimension, zero_vector
from moodscope.embed.openai_compat import OpenAICompatEmbedder
from moodscope.embed.tei import TEIEmbedder
from moodscope.registry import default_registry

__all__ = [
    "BaseEmbedder",
    "OpenAICompatEmbedder",
    "TEIEmbedder",
    "validate_dimension",
    "zero_vector",
]

# Register built-in embedding providers
default_registry.register("embedding", "tei", lambda cfg: TEIEmbedder(cfg))
default_registry.register("embedding", "openai", lambda cfg: OpenAICompatEmbedder(cfg))
