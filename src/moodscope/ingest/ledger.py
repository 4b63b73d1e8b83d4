"""Completion times per ISRC, shared by every runtime in a project.

Backs the ingestion idempotency window. With a ``path`` the ledger is a
JSON object ``{"<ISRC>": <unix seconds>}`` under ``.moodscope/``, re-read
before each lookup so separate CLI invocations see each other's runs.
Without one it lives in memory only.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

__all__ = ["CompletionLedger"]

logger = logging.getLogger(__name__)


class CompletionLedger:
    """ISRC → last successful completion, pruned to ``window_s``."""

    def __init__(self, window_s: float, path: Path | None = None) -> None:
        self._window = window_s
        self._path = path
        self._entries: dict[str, float] = {}
        self._lock = threading.Lock()

    @property
    def path(self) -> Path | None:
        return self._path

    def __len__(self) -> int:
        return len(self._entries)

    def _read(self) -> dict[str, float]:
        if self._path is None or not self._path.exists():
            return dict(self._entries)
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("ledger must be a JSON object")
            return {
                str(isrc): float(at)
                for isrc, at in data.items()
                if isinstance(at, (int, float)) and not isinstance(at, bool)
            }
        except (OSError, ValueError) as e:
            logger.error("Ignoring unreadable ingestion ledger %s: %s", self._path, e)
            return dict(self._entries)

    def _write(self) -> None:
        if self._path is None:
            return
        tmp = self._path.with_suffix(".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(self._entries, indent=2, sort_keys=True), encoding="utf-8")
            os.replace(tmp, self._path)
        except OSError as e:
            logger.error("Failed to save ingestion ledger %s: %s", self._path, e)

    def _prune(self, now: float) -> None:
        expired = [isrc for isrc, at in self._entries.items() if now - at >= self._window]
        for isrc in expired:
            del self._entries[isrc]
        if expired:
            logger.debug("Pruned %d expired ledger entries", len(expired))

    def completed_recently(self, isrc: str, now: float) -> bool:
        """True when ``isrc`` finished less than ``window_s`` before ``now``."""
        with self._lock:
            self._entries = self._read()
            self._prune(now)
            return isrc in self._entries

    def record(self, isrc: str, now: float) -> None:
        with self._lock:
            self._entries = self._read()
            self._prune(now)
            self._entries[isrc] = now
            self._write()
