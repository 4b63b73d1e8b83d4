"""Data contracts for moodscope.

Frozen dataclasses that flow between the search and ingestion stages:
  query → ExpandedQuery → DiscoveryResult → DiscoverySearchResponse
  IngestionRequest → (AudioFeatures, LyricsContent, Generation) → TrackDocument
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, fields
from typing import ClassVar

__all__ = [
    "AUDIO_FEATURE_BOUNDS",
    "AlbumIngestionRequest",
    "AlbumTrack",
    "AudioFeatures",
    "BackfillProgress",
    "BatchSchedulingResult",
    "DiscoveryResult",
    "DiscoverySearchError",
    "DiscoverySearchResponse",
    "DiscoverySearchResult",
    "ErrorCode",
    "ExpandedQuery",
    "ExpansionResult",
    "ExpansionStrategy",
    "Generation",
    "IngestionFailure",
    "IngestionRequest",
    "IngestionSummary",
    "LyricsContent",
    "SchedulingResult",
    "SparseVector",
    "TrackDocument",
    "TrackPayload",
]


@dataclass(frozen=True)
class SparseVector:
    """Lexical term-frequency vector: parallel (index, weight) tuples."""

    indices: tuple[int, ...] = ()
    values: tuple[float, ...] = ()

    def __post_init__(self) -> None:
        if len(self.indices) != len(self.values):
            raise ValueError(
                f"indices and values must have same length "
                f"({len(self.indices)} != {len(self.values)})"
            )

    def __len__(self) -> int:
        return len(self.indices)

    @property
    def is_empty(self) -> bool:
        return not self.indices

    def as_dict(self) -> dict[int, float]:
        return dict(zip(self.indices, self.values, strict=True))

    def dot(self, other: SparseVector) -> float:
        """Sum of weight products over shared indices."""
        if self.is_empty or other.is_empty:
            return 0.0
        mine = self.as_dict()
        return sum(mine.get(i, 0.0) * v for i, v in zip(other.indices, other.values, strict=True))


@dataclass(frozen=True)
class ExpandedQuery:
    """One rewritten query with its dense and sparse vectors."""

    text: str
    dense_vector: tuple[float, ...]
    sparse_vector: SparseVector


class ExpansionStrategy(enum.Enum):
    """Which parsing branch produced the expanded queries."""

    STRICT = "strict"
    EXTRACTED = "extracted"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class ExpansionResult:
    """Output of query expansion."""

    queries: tuple[str, ...]
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    strategy: ExpansionStrategy = ExpansionStrategy.STRICT


@dataclass(frozen=True)
class DiscoveryResult:
    """A candidate track returned by hybrid search."""

    id: str
    isrc: str
    title: str
    artist: str
    album: str
    score: float
    artwork_url: str | None = None


class ErrorCode(enum.Enum):
    """Discovery search failure codes."""

    EMPTY_QUERY = "EMPTY_QUERY"
    LLM_UNAVAILABLE = "LLM_UNAVAILABLE"
    EMBEDDING_UNAVAILABLE = "EMBEDDING_UNAVAILABLE"
    INDEX_UNAVAILABLE = "INDEX_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"
    INTERNAL_ERROR = "INTERNAL_ERROR"


@dataclass(frozen=True)
class DiscoverySearchResponse:
    """One page of fused discovery results."""

    ok: ClassVar[bool] = True

    results: tuple[DiscoveryResult, ...]
    query: str
    expanded_queries: tuple[str, ...]
    page: int
    page_size: int
    total_results: int
    has_more: bool


@dataclass(frozen=True)
class DiscoverySearchError:
    """Typed discovery failure returned instead of a response."""

    ok: ClassVar[bool] = False

    message: str
    code: ErrorCode
    retryable: bool


DiscoverySearchResult = DiscoverySearchResponse | DiscoverySearchError


@dataclass(frozen=True)
class IngestionRequest:
    """One track to ingest, keyed by its normalized ISRC."""

    isrc: str
    title: str
    artist: str
    album: str
    artwork_url: str | None = None
    priority: int = 0
    force: bool = False


# (min, max) accepted for each audio feature; ``key`` and ``mode`` are integers.
AUDIO_FEATURE_BOUNDS: dict[str, tuple[float, float]] = {
    "acousticness": (0.0, 1.0),
    "danceability": (0.0, 1.0),
    "energy": (0.0, 1.0),
    "instrumentalness": (0.0, 1.0),
    "key": (-1, 11),
    "liveness": (0.0, 1.0),
    "loudness": (-60.0, 0.0),
    "mode": (0, 1),
    "speechiness": (0.0, 1.0),
    "tempo": (0.0, 250.0),
    "valence": (0.0, 1.0),
}


@dataclass(frozen=True)
class AudioFeatures:
    """Per-track audio analysis; every field is independently nullable."""

    acousticness: float | None = None
    danceability: float | None = None
    energy: float | None = None
    instrumentalness: float | None = None
    key: int | None = None
    liveness: float | None = None
    loudness: float | None = None
    mode: int | None = None
    speechiness: float | None = None
    tempo: float | None = None
    valence: float | None = None

    def has_any_value(self) -> bool:
        return any(getattr(self, f.name) is not None for f in fields(self))

    def to_dict(self) -> dict[str, float | int | None]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class LyricsContent:
    """Lyrics body for a track."""

    body: str
    language: str | None = None
    explicit: bool | None = None


@dataclass(frozen=True)
class Generation:
    """A single LLM completion with its token accounting."""

    text: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass(frozen=True)
class TrackPayload:
    """Stored per-track payload; everything but the identifiers is nullable."""

    isrc: str
    title: str
    artist: str
    album: str
    artwork_url: str | None = None
    lyrics: str | None = None
    interpretation: str | None = None
    short_description: str | None = None
    audio_features: AudioFeatures = field(default_factory=AudioFeatures)

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "isrc": self.isrc,
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "artwork_url": self.artwork_url,
            "lyrics": self.lyrics,
            "interpretation": self.interpretation,
            "short_description": self.short_description,
        }
        data.update(self.audio_features.to_dict())
        return data

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> TrackPayload:
        def _opt_str(key: str) -> str | None:
            value = data.get(key)
            return None if value is None else str(value)

        feature_values = {}
        for name in AUDIO_FEATURE_BOUNDS:
            value = data.get(name)
            feature_values[name] = value if isinstance(value, (int, float)) else None

        return cls(
            isrc=str(data.get("isrc", "")),
            title=str(data.get("title", "")),
            artist=str(data.get("artist", "")),
            album=str(data.get("album", "")),
            artwork_url=_opt_str("artwork_url"),
            lyrics=_opt_str("lyrics"),
            interpretation=_opt_str("interpretation"),
            short_description=_opt_str("short_description"),
            audio_features=AudioFeatures(**feature_values),  # type: ignore[arg-type]
        )


@dataclass(frozen=True)
class TrackDocument:
    """The unit stored in the index, one per ISRC."""

    id: str
    vector: tuple[float, ...]
    payload: TrackPayload


@dataclass(frozen=True)
class IngestionSummary:
    """Completion signal published after a track is stored."""

    isrc: str
    run_id: str
    completed_at: str
    duration_ms: int
    has_lyrics: bool
    has_audio_features: bool
    has_interpretation: bool
    has_short_description: bool
    embedding_dimension: int


@dataclass(frozen=True)
class IngestionFailure:
    """Failure signal published when a step exhausts its retries."""

    isrc: str
    run_id: str
    failed_step: str
    error: str
    retries: int
    failed_at: str


@dataclass(frozen=True)
class AlbumTrack:
    """One track of an album handed to the scheduler."""

    isrc: str | None
    title: str


@dataclass(frozen=True)
class AlbumIngestionRequest:
    """All tracks of an album added to a library."""

    album_title: str
    artist_name: str
    tracks: tuple[AlbumTrack, ...] = ()
    artwork_url: str | None = None


@dataclass(frozen=True)
class SchedulingResult:
    """Outcome of scheduling one track."""

    isrc: str
    title: str
    scheduled: bool
    reason: str | None = None


@dataclass(frozen=True)
class BatchSchedulingResult:
    """Outcome of scheduling every track on an album."""

    total_tracks: int
    scheduled_count: int
    skipped_count: int
    results: tuple[SchedulingResult, ...] = ()


@dataclass
class BackfillProgress:
    """Resumable cursor for the short-description backfill."""

    started_at: str
    updated_at: str
    last_point_id: str | None = None
    processed_count: int = 0
    success_count: int = 0
    error_count: int = 0
    skipped_count: int = 0
    is_complete: bool = False
