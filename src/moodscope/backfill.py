"""Resumable backfill of short descriptions for already-indexed tracks.

Progress is written to a JSON file after every track so an interrupted run
resumes from the last processed point id.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, fields
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from moodscope.exceptions import BackfillError
from moodscope.types import BackfillProgress

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from moodscope.config import BackfillConfig
    from moodscope.index.base import BaseIndex
    from moodscope.ingest.describe import ShortDescriber
    from moodscope.types import TrackPayload

__all__ = ["BackfillRunner", "initial_progress", "load_progress", "save_progress"]

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(UTC).isoformat()


def initial_progress() -> BackfillProgress:
    now = _now()
    return BackfillProgress(started_at=now, updated_at=now)


def _validate_progress(data: object) -> BackfillProgress:
    if not isinstance(data, dict):
        raise ValueError("progress must be a JSON object")
    known = {f.name for f in fields(BackfillProgress)}
    missing = {"started_at", "updated_at"} - data.keys()
    if missing:
        raise ValueError(f"missing keys: {sorted(missing)}")
    progress = BackfillProgress(**{k: v for k, v in data.items() if k in known})
    counts = (
        progress.processed_count,
        progress.success_count,
        progress.error_count,
        progress.skipped_count,
    )
    if any(not isinstance(c, int) or c < 0 for c in counts):
        raise ValueError("counts must be non-negative integers")
    if progress.last_point_id is not None and not isinstance(progress.last_point_id, str):
        raise ValueError("last_point_id must be a string or null")
    return progress


def load_progress(path: Path) -> BackfillProgress:
    """Load progress from ``path``; a missing or corrupt file starts fresh."""
    if not path.exists():
        return initial_progress()
    try:
        return _validate_progress(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, ValueError, TypeError) as e:
        logger.error("Failed to load backfill progress from %s, starting fresh: %s", path, e)
        return initial_progress()


def save_progress(progress: BackfillProgress, path: Path) -> None:
    """Stamp ``updated_at`` and write ``progress`` to ``path``.

    Raises:
        BackfillError: If the file cannot be written.
    """
    progress.updated_at = _now()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(asdict(progress), indent=2), encoding="utf-8")
    except OSError as e:
        raise BackfillError(f"Failed to save backfill progress to {path}: {e}") from e


class BackfillRunner:
    """Adds a short description to every indexed track that lacks one.

    Args:
        index: Index to scroll and update.
        describer: Short-description generator.
        progress_path: JSON file holding the resumable cursor.
        config: ``[backfill]`` settings (batch size, per-track delay).
        sleep: Sleep function (injectable for tests).
    """

    def __init__(
        self,
        index: BaseIndex,
        describer: ShortDescriber,
        progress_path: Path,
        config: BackfillConfig,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._index = index
        self._describer = describer
        self._progress_path = progress_path
        self._config = config
        self._sleep = sleep

    def run(
        self,
        *,
        reset: bool = False,
        on_track: Callable[[TrackPayload, str | None], None] | None = None,
    ) -> BackfillProgress:
        """Process every remaining track.

        Args:
            reset: Discard saved progress and start from the first track.
            on_track: Called with each processed payload and its new
                description (None when generation failed).

        Returns:
            The final progress, with ``is_complete`` set.
        """
        if reset:
            logger.info("Resetting backfill progress")
            progress = initial_progress()
            save_progress(progress, self._progress_path)
        else:
            progress = load_progress(self._progress_path)

        total = self._index.count()
        logger.info(
            "Backfill starting: %d tracks indexed, resuming after %s (%d processed)",
            total,
            progress.last_point_id,
            progress.processed_count,
        )

        while True:
            batch = self._index.scroll(progress.last_point_id, self._config.batch_size)
            if not batch:
                break
            for point_id, payload in batch:
                self._process(point_id, payload, progress, on_track)

        progress.is_complete = True
        save_progress(progress, self._progress_path)
        logger.info(
            "Backfill complete: %d processed, %d described, %d errors, %d skipped",
            progress.processed_count,
            progress.success_count,
            progress.error_count,
            progress.skipped_count,
        )
        return progress

    def _process(
        self,
        point_id: str,
        payload: TrackPayload,
        progress: BackfillProgress,
        on_track: Callable[[TrackPayload, str | None], None] | None,
    ) -> None:
        if payload.short_description:
            progress.skipped_count += 1
            progress.processed_count += 1
            progress.last_point_id = point_id
            save_progress(progress, self._progress_path)
            return

        description: str | None = None
        try:
            generation = self._describer.describe(
                payload.title,
                payload.artist,
                payload.album,
                payload.interpretation,
                payload.audio_features,
            )
            self._index.set_payload(point_id, {"short_description": generation.text})
            description = generation.text
            progress.success_count += 1
        except Exception as e:
            logger.error("Backfill failed for %s (%r): %s", payload.isrc, payload.title, e)
            progress.error_count += 1

        progress.processed_count += 1
        progress.last_point_id = point_id
        save_progress(progress, self._progress_path)
        if on_track is not None:
            on_track(payload, description)

        if self._config.delay_s > 0:
            self._sleep(self._config.delay_s)
