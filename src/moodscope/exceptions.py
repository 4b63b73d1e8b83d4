"""Custom exception hierarchy for moodscope."""

from __future__ import annotations

import socket

__all__ = [
    "BackfillError",
    "ClientError",
    "ConfigError",
    "EmbeddingError",
    "LLMError",
    "MoodscopeError",
    "PluginError",
    "ProjectError",
    "PromptError",
    "ProviderError",
    "StepFailedError",
    "StoreError",
    "WorkflowError",
    "is_retryable",
]

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


class MoodscopeError(Exception):
    """Base exception for all moodscope errors."""


class ConfigError(MoodscopeError):
    """Raised when configuration loading or validation fails."""


class ProjectError(MoodscopeError):
    """Raised when project initialization or discovery fails."""


class PluginError(MoodscopeError):
    """Raised when plugin loading or registration fails."""


class PromptError(MoodscopeError):
    """Raised when a prompt template is missing or fails to render."""


class ClientError(MoodscopeError):
    """Raised when a call to an external HTTP service fails.

    Carries the upstream status code (500 when there was no response) and
    whether the failure is transient enough to be retried.
    """

    service = "external"

    def __init__(self, message: str, status_code: int = 500, retryable: bool = False) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable

    @classmethod
    def from_status(cls, status_code: int, message: str) -> ClientError:
        """Build an error whose retryable flag follows the HTTP status code."""
        return cls(message, status_code, status_code in RETRYABLE_STATUS_CODES)


class LLMError(ClientError):
    """Raised when LLM text generation fails."""

    service = "llm"


class EmbeddingError(ClientError):
    """Raised when embedding generation fails."""

    service = "embedding"


class ProviderError(ClientError):
    """Raised when an audio-feature or lyrics provider call fails."""

    service = "provider"


class StoreError(MoodscopeError):
    """Raised when vector index operations fail."""


class WorkflowError(MoodscopeError):
    """Raised when the ingestion workflow runtime fails."""


class StepFailedError(WorkflowError):
    """Raised when a workflow step exhausts its retry budget."""

    def __init__(self, step: str, message: str, retries: int) -> None:
        super().__init__(f"Step '{step}' failed after {retries} retries: {message}")
        self.step = step
        self.error = message
        self.retries = retries


class BackfillError(MoodscopeError):
    """Raised when the short-description backfill cannot proceed."""


def is_retryable(error: BaseException) -> bool:
    """Return True if ``error`` looks transient and the call should be retried."""
    if isinstance(error, ClientError):
        return error.retryable
    if isinstance(error, (TimeoutError, socket.timeout, ConnectionError)):
        return True
    message = str(error).lower()
    return any(
        marker in message
        for marker in ("econnrefused", "econnreset", "etimedout", "timed out", "network")
    )
