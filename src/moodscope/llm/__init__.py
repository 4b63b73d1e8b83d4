"""LLM clients: text generation and query expansion."""

from moodscope.llm.anthropic import AnthropicLLM
from moodscope.llm.base import BaseLLM
from moodscope.llm.expansion import QueryExpander, parse_expansion
from moodscope.registry import default_registry

__all__ = ["AnthropicLLM", "BaseLLM", "QueryExpander", "parse_expansion"]

default_registry.register("llm", "anthropic", lambda cfg: AnthropicLLM(cfg))
