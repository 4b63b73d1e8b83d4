"""Track ingestion workflow: one ISRC from provider lookups to a stored document."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

from moodscope.embed.base import zero_vector
from moodscope.isrc import isrc_to_point_id
from moodscope.types import AudioFeatures, IngestionSummary, TrackDocument, TrackPayload

if TYPE_CHECKING:
    from moodscope.config import MoodscopeConfig
    from moodscope.embed.base import BaseEmbedder
    from moodscope.index.base import BaseIndex
    from moodscope.ingest.describe import ShortDescriber
    from moodscope.ingest.runtime import StepContext
    from moodscope.llm.base import BaseLLM
    from moodscope.prompts import PromptRenderer
    from moodscope.types import Generation, IngestionRequest, LyricsContent

__all__ = [
    "INTERPRETATION_MAX_TOKENS",
    "STEPS",
    "AudioFeatureSource",
    "LyricsSource",
    "TrackIngestionWorkflow",
]

logger = logging.getLogger(__name__)

INTERPRETATION_MAX_TOKENS = 1024

STEP_FETCH_AUDIO_FEATURES = "fetch-audio-features"
STEP_FETCH_LYRICS = "fetch-lyrics"
STEP_GENERATE_INTERPRETATION = "generate-interpretation"
STEP_GENERATE_SHORT_DESCRIPTION = "generate-short-description"
STEP_EMBED_INTERPRETATION = "embed-interpretation"
STEP_STORE_DOCUMENT = "store-document"
STEP_EMIT_COMPLETION = "emit-completion"

STEPS = (
    STEP_FETCH_AUDIO_FEATURES,
    STEP_FETCH_LYRICS,
    STEP_GENERATE_INTERPRETATION,
    STEP_GENERATE_SHORT_DESCRIPTION,
    STEP_EMBED_INTERPRETATION,
    STEP_STORE_DOCUMENT,
    STEP_EMIT_COMPLETION,
)


class AudioFeatureSource(Protocol):
    def get_audio_features(self, isrc: str) -> AudioFeatures | None: ...


class LyricsSource(Protocol):
    def get_lyrics(self, isrc: str) -> LyricsContent | None: ...


class TrackIngestionWorkflow:
    """Sequential ingestion steps for a single track.

    "Not found" from either provider is not a failure: the signal is stored
    as absent and the run continues. Tracks without lyrics skip the
    interpretation and are stored with a zero vector.

    Args:
        audio_source: Audio-feature provider, or None to skip the lookup.
        lyrics_source: Lyrics provider, or None to skip the lookup.
        llm: Text-generation provider for interpretations.
        embedder: Embedding provider for interpretation text.
        index: Destination index.
        prompts: Prompt renderer.
        describer: Short-description generator.
        config: Project configuration.
    """

    def __init__(
        self,
        audio_source: AudioFeatureSource | None,
        lyrics_source: LyricsSource | None,
        llm: BaseLLM,
        embedder: BaseEmbedder,
        index: BaseIndex,
        prompts: PromptRenderer,
        describer: ShortDescriber,
        config: MoodscopeConfig,
    ) -> None:
        self._audio_source = audio_source
        self._lyrics_source = lyrics_source
        self._llm = llm
        self._embedder = embedder
        self._index = index
        self._prompts = prompts
        self._describer = describer
        self._interpretation_model = config.llm.interpretation_model
        self._dimension = config.embedding.dimension

    def run(self, request: IngestionRequest, ctx: StepContext) -> IngestionSummary:
        isrc = request.isrc

        features = ctx.run(STEP_FETCH_AUDIO_FEATURES, lambda: self._fetch_features(isrc))
        lyrics = ctx.run(STEP_FETCH_LYRICS, lambda: self._fetch_lyrics(isrc))
        interpretation = ctx.run(
            STEP_GENERATE_INTERPRETATION, lambda: self._interpret(request, lyrics)
        )
        interpretation_text = interpretation.text if interpretation else None

        description = ctx.run(
            STEP_GENERATE_SHORT_DESCRIPTION,
            lambda: self._describer.try_describe(
                request.title, request.artist, request.album, interpretation_text, features
            ),
        )
        vector = ctx.run(STEP_EMBED_INTERPRETATION, lambda: self._embed(interpretation_text))

        payload = TrackPayload(
            isrc=isrc,
            title=request.title,
            artist=request.artist,
            album=request.album,
            artwork_url=request.artwork_url,
            lyrics=lyrics.body if lyrics else None,
            interpretation=interpretation_text,
            short_description=description.text if description else None,
            audio_features=features if features is not None else AudioFeatures(),
        )
        ctx.run(STEP_STORE_DOCUMENT, lambda: self._store(payload, vector))

        def _emit() -> IngestionSummary:
            summary = IngestionSummary(
                isrc=isrc,
                run_id=ctx.run_id,
                completed_at=datetime.now(UTC).isoformat(),
                duration_ms=ctx.elapsed_ms,
                has_lyrics=lyrics is not None,
                has_audio_features=features is not None,
                has_interpretation=interpretation_text is not None,
                has_short_description=description is not None,
                embedding_dimension=len(vector),
            )
            ctx.emit_completed(summary)
            return summary

        return ctx.run(STEP_EMIT_COMPLETION, _emit)

    def _fetch_features(self, isrc: str) -> AudioFeatures | None:
        if self._audio_source is None:
            return None
        features = self._audio_source.get_audio_features(isrc)
        if features is None:
            logger.info("No audio features for %s", isrc)
        return features

    def _fetch_lyrics(self, isrc: str) -> LyricsContent | None:
        if self._lyrics_source is None:
            return None
        lyrics = self._lyrics_source.get_lyrics(isrc)
        if lyrics is None:
            logger.info("No lyrics for %s", isrc)
        return lyrics

    def _interpret(
        self, request: IngestionRequest, lyrics: LyricsContent | None
    ) -> Generation | None:
        if lyrics is None or not lyrics.body.strip():
            return None
        prompt = self._prompts.interpretation(
            request.title, request.artist, request.album, lyrics.body
        )
        return self._llm.generate(
            prompt, INTERPRETATION_MAX_TOKENS, model=self._interpretation_model
        )

    def _embed(self, interpretation: str | None) -> tuple[float, ...]:
        if not interpretation:
            return zero_vector(self._dimension)
        return tuple(self._embedder.embed(interpretation))

    def _store(self, payload: TrackPayload, vector: tuple[float, ...]) -> str:
        point_id = isrc_to_point_id(payload.isrc)
        self._index.upsert(TrackDocument(id=point_id, vector=vector, payload=payload))
        return point_id
