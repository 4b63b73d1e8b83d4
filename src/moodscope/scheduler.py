"""Ingestion scheduling for tracks and albums added to a library.

Scheduling is best effort: invalid ISRCs are skipped, an unavailable index
is treated as "not indexed", and dispatch failures are logged rather than
raised, so the library mutation that triggered it never fails because of
background enrichment.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from typing import TYPE_CHECKING, TypeVar

from moodscope.isrc import is_valid_isrc
from moodscope.types import BatchSchedulingResult, IngestionRequest, SchedulingResult

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from moodscope.config import SchedulingConfig
    from moodscope.index.base import BaseIndex
    from moodscope.ingest.runtime import WorkflowRuntime
    from moodscope.types import AlbumIngestionRequest

__all__ = [
    "REASON_ALREADY_INDEXED",
    "REASON_DISPATCH_ERROR",
    "REASON_INVALID_ISRC",
    "REASON_MISSING_ISRC",
    "Dispatcher",
    "IngestionScheduler",
    "LibraryIngestionHook",
    "RuntimeDispatcher",
    "parallel_with_limit",
]

logger = logging.getLogger(__name__)

REASON_MISSING_ISRC = "missing_isrc"
REASON_INVALID_ISRC = "invalid_isrc"
REASON_ALREADY_INDEXED = "already_indexed"
REASON_DISPATCH_ERROR = "dispatch_error"

_T = TypeVar("_T")
_R = TypeVar("_R")


def parallel_with_limit(
    items: Sequence[_T], fn: Callable[[_T], _R], concurrency: int
) -> list[_R]:
    """Apply ``fn`` to every item with at most ``concurrency`` in flight.

    Results are returned in input order. The first exception raised by
    ``fn`` propagates.
    """
    if not items:
        return []
    workers = max(1, min(concurrency, len(items)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="schedule") as pool:
        return list(pool.map(fn, items))


class Dispatcher(ABC):
    """Hands an ingestion request to whatever executes it."""

    @abstractmethod
    def dispatch(self, request: IngestionRequest) -> None:
        """Queue ``request`` for ingestion without waiting for it to finish.

        Raises:
            Exception: Any failure to queue; the scheduler logs it.
        """


class RuntimeDispatcher(Dispatcher):
    """Dispatches to :meth:`WorkflowRuntime.submit` (background execution)."""

    def __init__(self, runtime: WorkflowRuntime) -> None:
        self._runtime = runtime

    def dispatch(self, request: IngestionRequest) -> None:
        future = self._runtime.submit(request)
        future.add_done_callback(lambda f: self._log_outcome(request, f))

    @staticmethod
    def _log_outcome(request: IngestionRequest, future: Future[object]) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.debug("Background ingestion of %s ended with %s", request.isrc, error)


class IngestionScheduler:
    """Validates, de-duplicates and dispatches ingestion requests.

    Args:
        index: Index used for the existence check.
        dispatcher: Where accepted requests go.
        config: ``[scheduling]`` settings (worker pool size, SLA threshold).
    """

    def __init__(
        self, index: BaseIndex, dispatcher: Dispatcher, config: SchedulingConfig
    ) -> None:
        self._index = index
        self._dispatcher = dispatcher
        self._config = config

    def schedule_track(self, request: IngestionRequest) -> SchedulingResult:
        """Schedule one track unless it is invalid or already indexed."""
        start = time.monotonic()
        reason = self._validate(request.isrc)
        if reason is not None:
            return self._skipped(request.isrc, request.title, reason)

        isrc = request.isrc.upper()
        if self._existence([isrc]).get(isrc, False):
            return self._skipped(isrc, request.title, REASON_ALREADY_INDEXED)

        result = self._dispatch(replace(request, isrc=isrc))
        if result.scheduled:
            logger.info(
                "Scheduled ingestion of %r (%s) in %dms",
                request.title,
                isrc,
                int((time.monotonic() - start) * 1000),
            )
        return result

    def schedule_album_tracks(
        self, album: AlbumIngestionRequest, concurrency: int | None = None
    ) -> BatchSchedulingResult:
        """Schedule every missing track of an album.

        One batched existence check covers all valid ISRCs; dispatches run on
        a bounded worker pool. Results follow the album's track order.
        """
        concurrency = concurrency or self._config.concurrency
        start = time.monotonic()

        results: list[SchedulingResult | None] = [None] * len(album.tracks)
        valid: list[tuple[int, str]] = []
        for position, track in enumerate(album.tracks):
            reason = self._validate(track.isrc)
            if reason is not None:
                results[position] = self._skipped(track.isrc, track.title, reason)
            else:
                valid.append((position, track.isrc.upper()))  # type: ignore[union-attr]

        exists = self._existence([isrc for _, isrc in valid]) if valid else {}

        pending: list[tuple[int, IngestionRequest]] = []
        for position, isrc in valid:
            title = album.tracks[position].title
            if exists.get(isrc, False):
                results[position] = self._skipped(isrc, title, REASON_ALREADY_INDEXED)
            else:
                request = IngestionRequest(
                    isrc=isrc,
                    title=title,
                    artist=album.artist_name,
                    album=album.album_title,
                    artwork_url=album.artwork_url,
                )
                pending.append((position, request))

        dispatched = parallel_with_limit([r for _, r in pending], self._dispatch, concurrency)
        for (position, _), result in zip(pending, dispatched, strict=True):
            results[position] = result

        final = tuple(r for r in results if r is not None)
        scheduled = sum(1 for r in final if r.scheduled)
        batch = BatchSchedulingResult(
            total_tracks=len(album.tracks),
            scheduled_count=scheduled,
            skipped_count=len(final) - scheduled,
            results=final,
        )
        self._log_batch(album.album_title, batch, int((time.monotonic() - start) * 1000))
        return batch

    @staticmethod
    def _skipped(isrc: str | None, title: str, reason: str) -> SchedulingResult:
        logger.info("Skipping ingestion of %r (%s): %s", title, isrc, reason)
        return SchedulingResult(isrc or "", title, False, reason)

    @staticmethod
    def _validate(isrc: str | None) -> str | None:
        if not isrc or not isrc.strip():
            return REASON_MISSING_ISRC
        if not is_valid_isrc(isrc):
            return REASON_INVALID_ISRC
        return None

    def _existence(self, isrcs: list[str]) -> dict[str, bool]:
        """Existence check that fails open: errors mean "nothing is indexed"."""
        try:
            return self._index.check_existence(isrcs)
        except Exception as e:
            logger.warning(
                "Existence check for %d ISRC(s) failed, assuming none indexed: %s", len(isrcs), e
            )
            return {}

    def _dispatch(self, request: IngestionRequest) -> SchedulingResult:
        try:
            self._dispatcher.dispatch(request)
        except Exception as e:
            logger.error("Failed to dispatch ingestion of %s: %s", request.isrc, e)
            return SchedulingResult(request.isrc, request.title, False, REASON_DISPATCH_ERROR)
        return SchedulingResult(request.isrc, request.title, True)

    def _log_batch(self, album_title: str, batch: BatchSchedulingResult, duration_ms: int) -> None:
        logger.info(
            "Album %r: %d track(s), %d scheduled, %d skipped in %dms",
            album_title,
            batch.total_tracks,
            batch.scheduled_count,
            batch.skipped_count,
            duration_ms,
        )
        if duration_ms > self._config.sla_ms:
            logger.warning(
                "Scheduling SLA exceeded for album %r: %dms > %dms",
                album_title,
                duration_ms,
                self._config.sla_ms,
            )


_hook_logger = logging.getLogger(f"{__name__}.hook")


class LibraryIngestionHook:
    """Fire-and-forget scheduling for library mutations.

    The returned futures may be ignored; failures are reported on the
    ``moodscope.scheduler.hook`` logger and never reach the caller.
    """

    def __init__(self, scheduler: IngestionScheduler, max_workers: int = 2) -> None:
        self._scheduler = scheduler
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="library-hook"
        )

    def track_added(self, request: IngestionRequest, user_id: str) -> Future[SchedulingResult]:
        future = self._executor.submit(self._scheduler.schedule_track, request)
        future.add_done_callback(lambda f: self._report(f, "track", request.isrc, user_id))
        return future

    def album_added(
        self, album: AlbumIngestionRequest, user_id: str
    ) -> Future[BatchSchedulingResult]:
        future = self._executor.submit(self._scheduler.schedule_album_tracks, album)
        future.add_done_callback(lambda f: self._report(f, "album", album.album_title, user_id))
        return future

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    @staticmethod
    def _report(future: Future[object], kind: str, subject: str | None, user_id: str) -> None:
        if future.cancelled():
            _hook_logger.warning("Background scheduling for %s %r was cancelled", kind, subject)
            return
        error = future.exception()
        if error is not None:
            _hook_logger.error(
                "Background scheduling for %s %r (user %s) failed: %s",
                kind,
                subject,
                user_id,
                error,
            )
        else:
            _hook_logger.debug(
                "Background scheduling for %s %r (user %s) done", kind, subject, user_id
            )
