"""Discovery search: natural-language query to one page of fused results.

Pipeline per call:
  validate → expand (LLM) → embed each phrasing (concurrently) → sparse
  vectors → one hybrid index search → pagination bookkeeping

Collaborator failures never escape :meth:`DiscoveryService.search`; they are
mapped to a :class:`~moodscope.types.DiscoverySearchError` with a retry hint.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import TYPE_CHECKING

from moodscope.exceptions import EmbeddingError, LLMError, StoreError
from moodscope.sparse import text_to_sparse_vector
from moodscope.types import (
    DiscoverySearchError,
    DiscoverySearchResponse,
    ErrorCode,
    ExpandedQuery,
)

if TYPE_CHECKING:
    from moodscope.config import MoodscopeConfig
    from moodscope.embed.base import BaseEmbedder
    from moodscope.index.base import BaseIndex
    from moodscope.llm.expansion import QueryExpander
    from moodscope.types import DiscoverySearchResult

__all__ = ["DiscoveryService"]

logger = logging.getLogger(__name__)

MSG_EMPTY_QUERY = "Please enter a search term"
MSG_UNAVAILABLE = "Search service temporarily unavailable. Please try again."
MSG_TIMEOUT = "Search took too long. Please try a simpler query."
MSG_INTERNAL = "An unexpected error occurred. Please try again."


def _check_deadline(deadline: float, stage: str) -> None:
    """Stop a pipeline whose caller has already given up on it."""
    if time.monotonic() >= deadline:
        logger.debug("Abandoning discovery pipeline after %s", stage)
        raise TimeoutError(f"Discovery deadline passed after {stage}")


class DiscoveryService:
    """Stateless-per-call hybrid discovery search.

    Args:
        expander: Query expansion client.
        embedder: Dense embedding client.
        index: Hybrid track index.
        config: Project configuration (``[discovery]``, ``[embedding]`` and
            ``[user]`` sections are used).
    """

    def __init__(
        self,
        expander: QueryExpander,
        embedder: BaseEmbedder,
        index: BaseIndex,
        config: MoodscopeConfig,
    ) -> None:
        self._expander = expander
        self._embedder = embedder
        self._index = index
        self._settings = config.discovery
        self._instruction = config.embedding.query_instruction
        self._default_user_id = config.user.default_user_id

    def _start_pipeline(
        self, query: str, page: int, page_size: int, offset: int
    ) -> Future[DiscoverySearchResponse]:
        """Run one request's pipeline on a daemon thread of its own."""
        future: Future[DiscoverySearchResponse] = Future()
        deadline = time.monotonic() + self._settings.request_timeout_s

        def _target() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(self._execute(query, page, page_size, offset, deadline))
            except Exception as e:
                future.set_exception(e)

        threading.Thread(target=_target, name="discovery-search", daemon=True).start()
        return future

    def search(
        self,
        query: str,
        page: int = 0,
        page_size: int | None = None,
        *,
        user_id: str | None = None,
    ) -> DiscoverySearchResult:
        """Run one discovery search.

        Args:
            query: Free-text mood/theme description.
            page: Zero-based page number (negative values clamp to 0).
            page_size: Results per page, clamped to ``1..max_page_size``.
            user_id: Caller identity, used for logging only.

        Returns:
            A response page, or a typed error. Never raises for collaborator
            failures.
        """
        user_id = user_id or self._default_user_id
        text = (query or "").strip()
        if not text:
            logger.debug("Empty discovery query from user %s", user_id)
            return DiscoverySearchError(MSG_EMPTY_QUERY, ErrorCode.EMPTY_QUERY, retryable=False)
        if len(text) > self._settings.max_query_length:
            return DiscoverySearchError(
                f"Search term must be at most {self._settings.max_query_length} characters",
                ErrorCode.EMPTY_QUERY,
                retryable=False,
            )

        if page_size is None:
            page_size = self._settings.default_page_size
        page_size = min(max(page_size, 1), self._settings.max_page_size)
        page = max(page, 0)
        offset = page * page_size
        ceiling = self._settings.max_total_results

        if offset >= ceiling:
            logger.debug("Page %d is past the %d-result ceiling", page, ceiling)
            return DiscoverySearchResponse(
                results=(),
                query=text,
                expanded_queries=(text,),
                page=page,
                page_size=page_size,
                total_results=0,
                has_more=False,
            )

        start = time.monotonic()
        future = self._start_pipeline(text, page, page_size, offset)
        try:
            response = future.result(timeout=self._settings.request_timeout_s)
        except FutureTimeoutError:
            logger.error(
                "Discovery search timed out after %.1fs (query=%r)",
                self._settings.request_timeout_s,
                text,
            )
            return DiscoverySearchError(MSG_TIMEOUT, ErrorCode.TIMEOUT, retryable=True)
        except Exception as e:
            logger.error("Discovery search failed (query=%r): %s", text, e)
            return self._classify(e)

        logger.info(
            "Discovery search for user %s: %d result(s), %d phrasing(s), page %d in %dms",
            user_id,
            len(response.results),
            len(response.expanded_queries),
            page,
            int((time.monotonic() - start) * 1000),
        )
        return response

    def _execute(
        self, query: str, page: int, page_size: int, offset: int, deadline: float
    ) -> DiscoverySearchResponse:
        ceiling = self._settings.max_total_results
        limit = min(page_size, ceiling - offset)

        expansion = self._expander.expand(query)
        phrasings = expansion.queries
        logger.debug("Expanded %r into %s (%s)", query, list(phrasings), expansion.strategy.value)
        _check_deadline(deadline, "expansion")

        expanded = self._prepare_queries(phrasings)
        _check_deadline(deadline, "embedding")

        prefetch_limit = min(
            offset + limit + self._settings.prefetch_extra,
            ceiling + self._settings.prefetch_extra,
        )
        results = self._index.hybrid_search(
            expanded, limit=limit, offset=offset, prefetch_limit=prefetch_limit
        )

        full_page = len(results) == limit and offset + limit < ceiling
        total_results = min(offset + limit + 1, ceiling) if full_page else offset + len(results)
        has_more = offset + len(results) < total_results and len(results) == page_size

        return DiscoverySearchResponse(
            results=tuple(results),
            query=query,
            expanded_queries=phrasings,
            page=page,
            page_size=page_size,
            total_results=total_results,
            has_more=has_more,
        )

    def _prepare_queries(self, phrasings: tuple[str, ...]) -> list[ExpandedQuery]:
        """Embed every phrasing concurrently; output order follows input order."""

        def _one(text: str) -> ExpandedQuery:
            dense = self._embedder.embed_with_instruct(text, self._instruction)
            return ExpandedQuery(
                text=text,
                dense_vector=tuple(dense),
                sparse_vector=text_to_sparse_vector(text),
            )

        if len(phrasings) <= 1:
            return [_one(text) for text in phrasings]
        with ThreadPoolExecutor(
            max_workers=len(phrasings), thread_name_prefix="discovery-embed"
        ) as pool:
            return list(pool.map(_one, phrasings))

    @staticmethod
    def _classify(error: Exception) -> DiscoverySearchError:
        if isinstance(error, LLMError):
            return DiscoverySearchError(
                MSG_UNAVAILABLE, ErrorCode.LLM_UNAVAILABLE, retryable=error.retryable
            )
        if isinstance(error, EmbeddingError):
            return DiscoverySearchError(
                MSG_UNAVAILABLE, ErrorCode.EMBEDDING_UNAVAILABLE, retryable=error.retryable
            )
        if isinstance(error, StoreError):
            return DiscoverySearchError(
                MSG_UNAVAILABLE, ErrorCode.INDEX_UNAVAILABLE, retryable=True
            )
        if isinstance(error, TimeoutError):
            return DiscoverySearchError(MSG_TIMEOUT, ErrorCode.TIMEOUT, retryable=True)
        return DiscoverySearchError(MSG_INTERNAL, ErrorCode.INTERNAL_ERROR, retryable=True)

    def is_healthy(self) -> bool:
        """Return True only if the LLM, the embedder and the index are all healthy."""
        healthy = [
            self._expander.is_healthy(),
            self._embedder.is_healthy(),
            self._index.is_healthy(),
        ]
        return all(healthy)

    def indexed_count(self) -> int:
        """Number of tracks currently searchable.

        Raises:
            StoreError: If the index cannot be counted.
        """
        return self._index.count()
