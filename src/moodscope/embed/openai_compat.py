"""Embeddings from any server speaking the OpenAI ``/v1/embeddings`` protocol.

Used when ``[embedding] provider = "openai"``: OpenAI itself, or a LiteLLM,
vLLM or TEI deployment exposing the same route. ``dimensions`` is always
sent so Matryoshka models truncate to the index's configured width.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any

from moodscope.embed.base import BaseEmbedder, validate_dimension
from moodscope.exceptions import EmbeddingError
from moodscope.http import request_json

if TYPE_CHECKING:
    from moodscope.config import MoodscopeConfig

__all__ = ["OpenAICompatEmbedder"]

logger = logging.getLogger(__name__)

_OPENAI_API = "https://api.openai.com/v1"


def _first_embedding(body: Any) -> list[float]:
    """Pull the vector for input 0 out of an embeddings response body."""
    try:
        items = sorted(body["data"], key=lambda item: item.get("index", 0))
        return items[0]["embedding"]
    except (KeyError, IndexError, TypeError, AttributeError) as e:
        raise EmbeddingError(
            "Embeddings response is missing 'embedding' for input 0", 500, retryable=False
        ) from e


class OpenAICompatEmbedder(BaseEmbedder):
    """Dense vectors for track documents and queries via ``POST {base_url}/embeddings``.

    An empty ``api_key_env`` means the server needs no auth (typical for a
    self-hosted proxy); a named but unset variable is logged once here and
    left for the server to reject.
    """

    def __init__(self, config: MoodscopeConfig) -> None:
        settings = config.embedding
        self._endpoint = (settings.base_url or _OPENAI_API).rstrip("/") + "/embeddings"
        self._model = settings.model
        self._dimension = settings.dimension
        self._timeout = settings.timeout_s
        self._headers: dict[str, str] = {}

        if settings.api_key_env:
            key = os.environ.get(settings.api_key_env)
            if key:
                self._headers["Authorization"] = f"Bearer {key}"
            else:
                logger.warning(
                    "%s is unset; embedding requests go out unauthenticated",
                    settings.api_key_env,
                )

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str) -> list[float]:
        resp = request_json(
            self._endpoint,
            error_cls=EmbeddingError,
            payload={"model": self._model, "input": [text], "dimensions": self._dimension},
            headers=self._headers,
            timeout=self._timeout,
        )
        if not resp.ok:
            raise EmbeddingError.from_status(
                resp.status, f"{self._model} embedding request returned HTTP {resp.status}"
            )

        vector = _first_embedding(resp.data)
        validate_dimension(vector, self._dimension)
        return [float(v) for v in vector]
