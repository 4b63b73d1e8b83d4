"""Text Embeddings Inference (TEI) provider using the /embed endpoint.

Default provider for moodscope: a locally hosted TEI server running
mxbai-embed-large-v1 (1024 dimensions).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from moodscope.embed.base import BaseEmbedder, validate_dimension
from moodscope.exceptions import EmbeddingError
from moodscope.http import request_json

if TYPE_CHECKING:
    from moodscope.config import MoodscopeConfig

__all__ = ["TEIEmbedder"]

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "http://localhost:8080"


class TEIEmbedder(BaseEmbedder):
    """Embedding provider backed by a Hugging Face TEI server.

    Config fields used::

        [embedding]
        provider = "tei"
        base_url = ""           # empty = http://localhost:8080
        dimension = 1024
        timeout_s = 60
    """

    def __init__(self, config: MoodscopeConfig) -> None:
        self._base_url = (config.embedding.base_url or _DEFAULT_BASE_URL).rstrip("/")
        self._dimension = config.embedding.dimension
        self._timeout = config.embedding.timeout_s

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str) -> list[float]:
        """Generate an embedding via ``POST /embed``.

        Raises:
            EmbeddingError: On transport errors, error statuses, unexpected
                response shapes or dimension mismatch.
        """
        url = f"{self._base_url}/embed"
        resp = request_json(
            url,
            error_cls=EmbeddingError,
            payload={"inputs": text},
            timeout=self._timeout,
        )

        if resp.status == 503:
            raise EmbeddingError(
                "TEI model not loaded. Wait for model download to complete.",
                503,
                retryable=True,
            )
        if not resp.ok:
            raise EmbeddingError.from_status(
                resp.status, f"TEI embedding failed (HTTP {resp.status}): {resp.reason}"
            )

        # TEI answers [[...]] for batched inputs and [...] for a single one
        data = resp.data
        if isinstance(data, list) and data and isinstance(data[0], list):
            vector = data[0]
        elif isinstance(data, list) and data and isinstance(data[0], (int, float)):
            vector = data
        else:
            raise EmbeddingError(
                f"Unexpected response format from TEI: {type(data).__name__}",
                500,
                retryable=False,
            )

        validate_dimension(vector, self._dimension)
        return [float(v) for v in vector]

    def is_healthy(self) -> bool:
        """Check the TEI ``/health`` endpoint."""
        try:
            resp = request_json(
                f"{self._base_url}/health", error_cls=EmbeddingError, timeout=5.0
            )
        except EmbeddingError as e:
            logger.warning("TEI health check failed: %s", e)
            return False
        return resp.ok
