"""Shared fixtures and in-memory fakes for moodscope tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from moodscope.config import MoodscopeConfig, save_config
from moodscope.embed.base import BaseEmbedder
from moodscope.index.base import BaseIndex
from moodscope.index.fusion import dedupe_by_isrc, reciprocal_rank_fusion
from moodscope.isrc import isrc_to_point_id, validate_and_normalize_isrc
from moodscope.llm.base import BaseLLM
from moodscope.project import CONFIG_FILE, PROJECT_DIR
from moodscope.types import DiscoveryResult, Generation, TrackPayload

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from pathlib import Path

    from moodscope.types import ExpandedQuery, TrackDocument


class FakeEmbedder(BaseEmbedder):
    """Deterministic embedder; records every text it embeds."""

    def __init__(self, dimension: int = 4, error: Exception | None = None) -> None:
        self._dimension = dimension
        self.error = error
        self.calls: list[str] = []

    def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return [float(len(text) % 7 + 1)] + [0.5] * (self._dimension - 1)

    @property
    def dimension(self) -> int:
        return self._dimension


class FakeLLM(BaseLLM):
    """Returns canned completions in order (the last one repeats)."""

    def __init__(
        self,
        responses: Sequence[str] = ("generated text",),
        error: Exception | None = None,
    ) -> None:
        self.responses = list(responses)
        self.error = error
        self.healthy = True
        self.calls: list[dict[str, object]] = []

    def is_healthy(self) -> bool:
        return self.healthy

    def generate(
        self,
        prompt: str,
        max_output_tokens: int,
        *,
        model: str | None = None,
        system: str | None = None,
        temperature: float | None = None,
    ) -> Generation:
        self.calls.append(
            {
                "prompt": prompt,
                "max_output_tokens": max_output_tokens,
                "model": model,
                "system": system,
                "temperature": temperature,
            }
        )
        if self.error is not None:
            raise self.error
        index = min(len(self.calls) - 1, len(self.responses) - 1)
        return Generation(self.responses[index], model or "fake", 10, 5)


class InMemoryIndex(BaseIndex):
    """Dict-backed index. ``search_results`` feeds hybrid_search directly."""

    def __init__(self) -> None:
        self.documents: dict[str, TrackDocument] = {}
        self.payloads: dict[str, TrackPayload] = {}
        self.search_calls: list[dict[str, object]] = []
        self.search_results: list[DiscoveryResult] | None = None
        self.existence_error: Exception | None = None
        self.search_error: Exception | None = None
        self.existence_calls: list[list[str]] = []

    def hybrid_search(
        self,
        queries: Sequence[ExpandedQuery],
        limit: int,
        offset: int = 0,
        prefetch_limit: int | None = None,
    ) -> list[DiscoveryResult]:
        self.search_calls.append(
            {
                "queries": list(queries),
                "limit": limit,
                "offset": offset,
                "prefetch_limit": prefetch_limit,
            }
        )
        if self.search_error is not None:
            raise self.search_error
        if self.search_results is not None:
            return self.search_results[:limit]
        ranking = sorted(self.payloads)
        fused = reciprocal_rank_fusion([ranking])
        results = [
            DiscoveryResult(
                id=point_id,
                isrc=self.payloads[point_id].isrc,
                title=self.payloads[point_id].title,
                artist=self.payloads[point_id].artist,
                album=self.payloads[point_id].album,
                score=score,
            )
            for point_id, score in fused
        ]
        return dedupe_by_isrc(results)[offset : offset + limit]

    def check_existence(self, isrcs: Sequence[str]) -> dict[str, bool]:
        self.existence_calls.append(list(isrcs))
        if self.existence_error is not None:
            raise self.existence_error
        return {isrc: isrc_to_point_id(isrc) in self.payloads for isrc in isrcs}

    def upsert(self, document: TrackDocument) -> None:
        self.documents[document.id] = document
        self.payloads[document.id] = document.payload

    def get_payload(self, isrc: str) -> TrackPayload | None:
        normalized = validate_and_normalize_isrc(isrc)
        if normalized is None:
            return None
        return self.payloads.get(isrc_to_point_id(normalized))

    def scroll(self, after: str | None, limit: int) -> list[tuple[str, TrackPayload]]:
        ids = [i for i in sorted(self.payloads) if after is None or i > after]
        return [(i, self.payloads[i]) for i in ids[:limit]]

    def set_payload(self, point_id: str, fields: dict[str, object]) -> None:
        current = self.payloads[point_id]
        self.payloads[point_id] = TrackPayload.from_dict({**current.to_dict(), **fields})

    def count(self) -> int:
        return len(self.payloads)


def make_payload(
    isrc: str = "USRC11700001",
    title: str = "Bohemian Rhapsody",
    artist: str = "Queen",
    album: str = "A Night at the Opera",
    **kwargs: object,
) -> TrackPayload:
    return TrackPayload(
        isrc=isrc, title=title, artist=artist, album=album, **kwargs  # type: ignore[arg-type]
    )


@pytest.fixture
def config() -> MoodscopeConfig:
    """Default config with a small embedding dimension and no delays."""
    cfg = MoodscopeConfig()
    cfg.embedding.dimension = 4
    cfg.backfill.delay_s = 0.0
    cfg.ingestion.backoff_base_s = 0.0
    return cfg


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """A temporary directory simulating a project root."""
    return tmp_path


@pytest.fixture
def initialized_project(tmp_path: Path) -> Path:
    """A temporary project with .moodscope/ already initialized."""
    project = tmp_path / PROJECT_DIR
    project.mkdir()
    for subdir in ("index", "prompts"):
        (project / subdir).mkdir(parents=True)

    config = MoodscopeConfig()
    config.user.default_user_id = "listener"
    save_config(config, project / CONFIG_FILE)
    return tmp_path


@pytest.fixture
def no_sleep() -> Callable[[float], None]:
    """Sleep replacement that records requested delays."""
    delays: list[float] = []

    def _sleep(seconds: float) -> None:
        delays.append(seconds)

    _sleep.delays = delays  # type: ignore[attr-defined]
    return _sleep
