"""Query expansion: rewrite one free-text query into 1-3 search phrasings.

The model is asked for a bare JSON array. Its answer is parsed in three
steps, each more lenient than the last:

1. the whole response as strict JSON
2. the first ``[...]`` span found inside the response
3. the original query echoed back as the only phrasing

Parsing never raises; only failures of the LLM call itself propagate.
"""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING

from moodscope.types import ExpansionResult, ExpansionStrategy

if TYPE_CHECKING:
    from moodscope.llm.base import BaseLLM
    from moodscope.prompts import PromptRenderer

__all__ = [
    "EXPANSION_MAX_TOKENS",
    "EXPANSION_TEMPERATURE",
    "QueryExpander",
    "parse_expansion",
]

logger = logging.getLogger(__name__)

EXPANSION_MAX_TOKENS = 200
EXPANSION_TEMPERATURE = 0.3

_ARRAY_PATTERN = re.compile(r"\[[\s\S]*\]")


def _validate_queries(parsed: object, max_queries: int) -> tuple[str, ...]:
    if not isinstance(parsed, list) or not 1 <= len(parsed) <= max_queries:
        raise ValueError(f"expected a list of 1-{max_queries} strings")
    if not all(isinstance(q, str) and q.strip() for q in parsed):
        raise ValueError("every query must be a non-blank string")
    return tuple(q.strip() for q in parsed)


def parse_expansion(
    text: str, query: str, max_queries: int = 3
) -> tuple[tuple[str, ...], ExpansionStrategy]:
    """Parse a model response into phrasings and the strategy that produced them."""
    try:
        return _validate_queries(json.loads(text.strip()), max_queries), ExpansionStrategy.STRICT
    except ValueError as strict_error:
        match = _ARRAY_PATTERN.search(text)
        if match:
            try:
                queries = _validate_queries(json.loads(match.group(0)), max_queries)
                return queries, ExpansionStrategy.EXTRACTED
            except ValueError:
                logger.debug("Extracted array did not validate: %s", match.group(0)[:200])
        logger.warning(
            "Query expansion parse failed, falling back to original query: %s (%s)",
            text[:200],
            strict_error,
        )
        return (query,), ExpansionStrategy.FALLBACK


class QueryExpander:
    """Expands user queries with an LLM.

    Args:
        llm: Text-generation provider.
        prompts: Prompt renderer supplying the expansion templates.
        model: Expansion model name.
        max_queries: Upper bound on returned phrasings (1-3).
    """

    def __init__(
        self,
        llm: BaseLLM,
        prompts: PromptRenderer,
        model: str,
        max_queries: int = 3,
    ) -> None:
        self._llm = llm
        self._prompts = prompts
        self._model = model
        self._max_queries = max_queries

    def expand(self, query: str) -> ExpansionResult:
        """Expand ``query`` into 1-``max_queries`` phrasings.

        Raises:
            LLMError: If the LLM call fails.
        """
        generation = self._llm.generate(
            self._prompts.query_expansion(query, self._max_queries),
            EXPANSION_MAX_TOKENS,
            model=self._model,
            system=self._prompts.query_expansion_system(),
            temperature=EXPANSION_TEMPERATURE,
        )
        queries, strategy = parse_expansion(generation.text, query, self._max_queries)
        logger.info("Expanded query into %d phrasing(s) (%s)", len(queries), strategy.value)
        return ExpansionResult(
            queries=queries,
            model=generation.model,
            input_tokens=generation.input_tokens,
            output_tokens=generation.output_tokens,
            strategy=strategy,
        )

    def is_healthy(self) -> bool:
        """Delegate to the LLM provider's token-free check."""
        return self._llm.is_healthy()
