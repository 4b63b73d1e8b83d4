"""Reciprocal rank fusion and ISRC de-duplication."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from moodscope.types import DiscoveryResult

__all__ = ["RRF_K", "dedupe_by_isrc", "reciprocal_rank_fusion"]

RRF_K = 60


def reciprocal_rank_fusion(
    rankings: Iterable[Sequence[str]], k: int = RRF_K
) -> list[tuple[str, float]]:
    """Fuse ranked id lists into one ranking by ``sum(1 / (k + rank))``.

    Ranks start at 1. Ties keep the order in which ids were first seen.
    """
    scores: dict[str, float] = {}
    for ranking in rankings:
        for rank, item_id in enumerate(ranking, start=1):
            scores[item_id] = scores.get(item_id, 0.0) + 1.0 / (k + rank)
    # sorted() is stable, so equal scores stay in first-seen order
    return sorted(scores.items(), key=lambda pair: pair[1], reverse=True)


def dedupe_by_isrc(results: Iterable[DiscoveryResult]) -> list[DiscoveryResult]:
    """Keep the first (highest-ranked) result for each ISRC, case-insensitively."""
    seen: set[str] = set()
    unique: list[DiscoveryResult] = []
    for result in results:
        key = result.isrc.upper()
        if key in seen:
            continue
        seen.add(key)
        unique.append(result)
    return unique
