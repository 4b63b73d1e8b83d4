"""Musixmatch lyrics client."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from moodscope.exceptions import ConfigError, ProviderError
from moodscope.http import request_json
from moodscope.types import LyricsContent

if TYPE_CHECKING:
    from moodscope.config import MoodscopeConfig

__all__ = ["MusixmatchClient"]

logger = logging.getLogger(__name__)


class MusixmatchClient:
    """Fetches lyrics by ISRC from ``GET track.lyrics.get``.

    Musixmatch reports its own status inside ``message.header.status_code``;
    both that and the HTTP status are checked.
    """

    def __init__(self, base_url: str, api_key: str, timeout: float = 10.0) -> None:
        if not api_key:
            raise ConfigError("Musixmatch API key is not set")
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout

    @classmethod
    def from_config(cls, config: MoodscopeConfig) -> MusixmatchClient:
        """Build a client reading the API key from the configured env var.

        Raises:
            ConfigError: If the env var is unset.
        """
        env = config.providers.musixmatch_key_env
        api_key = os.environ.get(env, "")
        if not api_key:
            raise ConfigError(f"{env} environment variable is not set")
        return cls(config.providers.musixmatch_url, api_key, config.providers.timeout_s)

    def get_lyrics(self, isrc: str) -> LyricsContent | None:
        """Return lyrics for ``isrc`` or None when the track has none.

        Raises:
            ProviderError: On rate limiting, server errors or transport
                failures (retryable) and on auth/request errors (not retryable).
        """
        resp = request_json(
            f"{self._base_url}/track.lyrics.get",
            error_cls=ProviderError,
            params={"track_isrc": isrc, "apikey": self._api_key},
            timeout=self._timeout,
        )
        if resp.status == 404:
            return None
        if resp.status == 401:
            raise ProviderError("Invalid Musixmatch API key", 401, retryable=False)
        if not resp.ok:
            raise ProviderError.from_status(
                resp.status, f"Failed to fetch lyrics: HTTP {resp.status} {resp.reason}"
            )

        try:
            message = resp.data["message"]  # type: ignore[index]
            api_status = int(message["header"]["status_code"])
            body = message.get("body") or {}
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning("Musixmatch response validation failed for %s: %s", isrc, e)
            return None

        if api_status == 404:
            return None
        if api_status == 401:
            raise ProviderError("Invalid Musixmatch API key", 401, retryable=False)
        if api_status == 429:
            raise ProviderError("Musixmatch rate limit exceeded", 429, retryable=True)
        if api_status != 200:
            raise ProviderError.from_status(
                api_status, f"Musixmatch API returned status {api_status}"
            )

        lyrics = body.get("lyrics") if isinstance(body, dict) else None
        if not isinstance(lyrics, dict) or not lyrics.get("lyrics_body"):
            return None

        explicit = lyrics.get("explicit")
        return LyricsContent(
            body=str(lyrics["lyrics_body"]),
            language=lyrics.get("lyrics_language") or None,
            explicit=bool(explicit) if explicit is not None else None,
        )
