"""External enrichment providers: audio features and lyrics."""

from moodscope.sources.audio_features import ReccoBeatsClient, parse_audio_features
from moodscope.sources.lyrics import MusixmatchClient

__all__ = ["MusixmatchClient", "ReccoBeatsClient", "parse_audio_features"]
