"""ReccoBeats audio-feature client."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from moodscope.exceptions import ProviderError
from moodscope.http import request_json
from moodscope.types import AUDIO_FEATURE_BOUNDS, AudioFeatures

if TYPE_CHECKING:
    from moodscope.config import MoodscopeConfig

__all__ = ["ReccoBeatsClient", "parse_audio_features"]

logger = logging.getLogger(__name__)

_INTEGER_FEATURES = frozenset({"key", "mode"})


def _check_feature(name: str, value: object) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number, got {type(value).__name__}")
    if name in _INTEGER_FEATURES and value != int(value):
        raise ValueError(f"{name} must be an integer, got {value}")
    low, high = AUDIO_FEATURE_BOUNDS[name]
    if not low <= value <= high:
        raise ValueError(f"{name}={value} outside [{low}, {high}]")


def parse_audio_features(item: dict[str, object]) -> AudioFeatures:
    """Validate one ReccoBeats ``content`` entry.

    Raises:
        ValueError: If the entry has no ISRC or a value is out of bounds.
    """
    if not isinstance(item.get("isrc"), str):
        raise ValueError("entry has no isrc")
    values: dict[str, object] = {}
    for name in AUDIO_FEATURE_BOUNDS:
        value = item.get(name)
        _check_feature(name, value)
        if value is not None and name in _INTEGER_FEATURES:
            value = int(value)  # type: ignore[call-overload]
        values[name] = value
    return AudioFeatures(**values)  # type: ignore[arg-type]


class ReccoBeatsClient:
    """Fetches audio features by ISRC from ``GET /audio-features?ids=``.

    Missing or malformed data degrades to None; only transport failures and
    error statuses other than 404 raise.
    """

    def __init__(self, base_url: str, timeout: float = 10.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    @classmethod
    def from_config(cls, config: MoodscopeConfig) -> ReccoBeatsClient:
        return cls(config.providers.reccobeats_url, config.providers.timeout_s)

    def get_audio_features(self, isrc: str) -> AudioFeatures | None:
        """Return the features for ``isrc`` or None when the provider has none.

        Raises:
            ProviderError: On rate limiting, server errors or transport
                failures (retryable) and on 400/401/403 (not retryable).
        """
        resp = request_json(
            f"{self._base_url}/audio-features",
            error_cls=ProviderError,
            params={"ids": isrc},
            timeout=self._timeout,
        )
        if resp.status == 404:
            return None
        if resp.status == 429:
            raise ProviderError("ReccoBeats rate limit exceeded", 429, retryable=True)
        if not resp.ok:
            raise ProviderError.from_status(
                resp.status, f"Failed to fetch audio features: HTTP {resp.status} {resp.reason}"
            )

        content = resp.data.get("content") if isinstance(resp.data, dict) else None
        if not isinstance(content, list):
            logger.warning("ReccoBeats response for %s has no content list", isrc)
            return None
        if not content:
            return None
        if len(content) > 1:
            logger.warning(
                "ReccoBeats returned %d results for ISRC %s, using first result",
                len(content),
                isrc,
            )

        try:
            features = [parse_audio_features(item) for item in content if isinstance(item, dict)]
        except ValueError as e:
            logger.warning("ReccoBeats response validation failed for %s: %s", isrc, e)
            return None
        if len(features) != len(content):
            logger.warning("ReccoBeats response for %s has non-object entries", isrc)
            return None
        return features[0]
