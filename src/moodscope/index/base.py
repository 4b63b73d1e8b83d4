"""Abstract base class for the track index."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from moodscope.exceptions import StoreError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from moodscope.types import DiscoveryResult, ExpandedQuery, TrackDocument, TrackPayload

__all__ = ["BaseIndex"]

logger = logging.getLogger(__name__)


class BaseIndex(ABC):
    """Base class for hybrid (dense + sparse) track indexes.

    One document per ISRC, keyed by :func:`moodscope.isrc.isrc_to_point_id`.
    Every backend failure surfaces as :class:`StoreError`.
    """

    @abstractmethod
    def hybrid_search(
        self,
        queries: Sequence[ExpandedQuery],
        limit: int,
        offset: int = 0,
        prefetch_limit: int | None = None,
    ) -> list[DiscoveryResult]:
        """Rank tracks against all expanded queries at once.

        Each query contributes a dense and a sparse ranking, each cut at
        ``prefetch_limit`` (default ``offset + limit + 50``). The rankings
        are merged by reciprocal rank fusion and deduplicated by ISRC before
        ``offset`` and ``limit`` are applied.

        Raises:
            StoreError: If the search fails.
        """

    @abstractmethod
    def check_existence(self, isrcs: Sequence[str]) -> dict[str, bool]:
        """Return ``{isrc: indexed?}`` for each (normalized) ISRC.

        Raises:
            StoreError: If the lookup fails.
        """

    @abstractmethod
    def upsert(self, document: TrackDocument) -> None:
        """Insert or replace a track document.

        Raises:
            StoreError: If the write fails.
        """

    @abstractmethod
    def get_payload(self, isrc: str) -> TrackPayload | None:
        """Return the stored payload for ``isrc`` or None when it is not indexed."""

    @abstractmethod
    def scroll(self, after: str | None, limit: int) -> list[tuple[str, TrackPayload]]:
        """Return up to ``limit`` ``(point_id, payload)`` pairs ordered by point id.

        Args:
            after: Exclusive cursor; None starts from the beginning.
            limit: Maximum number of documents to return.
        """

    @abstractmethod
    def set_payload(self, point_id: str, fields: dict[str, object]) -> None:
        """Merge ``fields`` into an existing document's payload.

        Raises:
            StoreError: If the point does not exist or the write fails.
        """

    @abstractmethod
    def count(self) -> int:
        """Return the number of indexed tracks."""

    def is_healthy(self) -> bool:
        """Return True if the backend answers a count request."""
        try:
            self.count()
        except StoreError as e:
            logger.warning("Index unhealthy: %s", e)
            return False
        return True
