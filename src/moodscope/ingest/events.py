"""Completion and failure signals published by the ingestion runtime."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from moodscope.types import IngestionFailure, IngestionSummary

__all__ = ["EventSink", "LoggingEventSink", "MemoryEventSink"]

logger = logging.getLogger(__name__)


class EventSink(ABC):
    """Receives one signal per finished ingestion run."""

    @abstractmethod
    def completed(self, summary: IngestionSummary) -> None:
        """Called after a track has been stored."""

    @abstractmethod
    def failed(self, failure: IngestionFailure) -> None:
        """Called when a step fails for good."""


class LoggingEventSink(EventSink):
    """Writes signals to the log; failures at ERROR for operator visibility."""

    def completed(self, summary: IngestionSummary) -> None:
        logger.info(
            "Ingested %s in %dms (lyrics=%s, features=%s, interpretation=%s, description=%s)",
            summary.isrc,
            summary.duration_ms,
            summary.has_lyrics,
            summary.has_audio_features,
            summary.has_interpretation,
            summary.has_short_description,
        )

    def failed(self, failure: IngestionFailure) -> None:
        logger.error(
            "Ingestion of %s failed at step %s after %d retries: %s",
            failure.isrc,
            failure.failed_step,
            failure.retries,
            failure.error,
        )


class MemoryEventSink(LoggingEventSink):
    """Logs signals and keeps them in memory for later inspection."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.summaries: list[IngestionSummary] = []
        self.failures: list[IngestionFailure] = []

    def completed(self, summary: IngestionSummary) -> None:
        super().completed(summary)
        with self._lock:
            self.summaries.append(summary)

    def failed(self, failure: IngestionFailure) -> None:
        super().failed(failure)
        with self._lock:
            self.failures.append(failure)
