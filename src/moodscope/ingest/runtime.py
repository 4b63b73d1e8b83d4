"""In-process step-workflow runtime for track ingestion.

Gives each run:

* per-step memoization (a step that already succeeded in this run is not
  executed again)
* per-step retry with exponential backoff for retryable errors
* a global concurrency ceiling and a sliding-window throttle
* ISRC-keyed idempotency: duplicate triggers while a run is in flight
  collapse into it, and a completed ISRC is not re-run inside the
  idempotency window unless the request sets ``force``
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol, TypeVar

from moodscope.exceptions import StepFailedError, is_retryable
from moodscope.ingest.ledger import CompletionLedger
from moodscope.types import IngestionFailure

if TYPE_CHECKING:
    from collections.abc import Callable

    from moodscope.config import IngestionConfig
    from moodscope.ingest.events import EventSink
    from moodscope.types import IngestionRequest, IngestionSummary

__all__ = ["StepContext", "Throttle", "Workflow", "WorkflowRuntime"]

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

_MAX_BACKOFF_S = 60.0


def _utc_now() -> str:
    return datetime.now(UTC).isoformat()


class Workflow(Protocol):
    """Anything the runtime can execute: a sequence of named steps."""

    def run(self, request: IngestionRequest, ctx: StepContext) -> IngestionSummary: ...


class Throttle:
    """Sliding-window rate limit: at most ``limit`` starts per ``period_s``."""

    def __init__(
        self,
        limit: int,
        period_s: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._limit = limit
        self._period = period_s
        self._clock = clock
        self._sleep = sleep
        self._starts: deque[float] = deque()
        self._lock = threading.Lock()

    def acquire(self) -> float:
        """Block until a slot is free; return the seconds spent waiting."""
        waited = 0.0
        while True:
            with self._lock:
                now = self._clock()
                while self._starts and now - self._starts[0] >= self._period:
                    self._starts.popleft()
                if len(self._starts) < self._limit:
                    self._starts.append(now)
                    return waited
                wait = self._period - (now - self._starts[0])
            logger.debug("Throttle full, waiting %.2fs", wait)
            self._sleep(wait)
            waited += wait


class StepContext:
    """Per-run handle the workflow uses to execute its steps.

    Args:
        run_id: Unique id of this run.
        request: The ingestion request being processed.
        retries: Retry budget per step (attempts = retries + 1).
        backoff_base_s: First retry delay; doubles on each further retry.
        sleep: Sleep function (injectable for tests).
        on_completed: Callback receiving the completion summary.
    """

    def __init__(
        self,
        run_id: str,
        request: IngestionRequest,
        *,
        retries: int,
        backoff_base_s: float,
        sleep: Callable[[float], None] = time.sleep,
        on_completed: Callable[[IngestionSummary], None] | None = None,
    ) -> None:
        self.run_id = run_id
        self.request = request
        self.started_at = time.monotonic()
        self._retries = retries
        self._backoff_base = backoff_base_s
        self._sleep = sleep
        self._on_completed = on_completed
        self._results: dict[str, object] = {}
        self.attempts: dict[str, int] = {}

    def run(self, name: str, fn: Callable[[], _T]) -> _T:
        """Execute step ``name`` once, retrying retryable failures.

        Raises:
            StepFailedError: When the error is not retryable or the retry
                budget is exhausted.
        """
        if name in self._results:
            logger.debug("Step %s already completed in run %s", name, self.run_id)
            return self._results[name]  # type: ignore[return-value]

        attempt = 0
        while True:
            attempt += 1
            self.attempts[name] = attempt
            try:
                result = fn()
            except Exception as e:
                retries_used = attempt - 1
                if not is_retryable(e) or retries_used >= self._retries:
                    raise StepFailedError(name, str(e), retries_used) from e
                delay = min(self._backoff_base * (2**retries_used), _MAX_BACKOFF_S)
                logger.warning(
                    "Step %s failed (attempt %d/%d), retrying in %.1fs: %s",
                    name,
                    attempt,
                    self._retries + 1,
                    delay,
                    e,
                )
                self._sleep(delay)
                continue
            self._results[name] = result
            return result

    def emit_completed(self, summary: IngestionSummary) -> None:
        if self._on_completed is not None:
            self._on_completed(summary)

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)


class WorkflowRuntime:
    """Executes ingestion runs under concurrency, throttle and idempotency rules.

    Completion times live in ``ledger``; pass one backed by a file so the
    idempotency window holds across processes. ``clock`` drives the throttle,
    ``wall_clock`` the ledger timestamps.

    Usage::

        runtime = WorkflowRuntime(workflow, LoggingEventSink(), config.ingestion)
        runtime.submit(request)        # background
        summary = runtime.run(request) # blocking; None when deduplicated
    """

    def __init__(
        self,
        workflow: Workflow,
        sink: EventSink,
        config: IngestionConfig,
        *,
        ledger: CompletionLedger | None = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._workflow = workflow
        self._sink = sink
        self._config = config
        self._wall_clock = wall_clock
        self._sleep = sleep
        self._semaphore = threading.BoundedSemaphore(config.concurrency)
        self._throttle = Throttle(
            config.throttle_limit, config.throttle_period_s, clock=clock, sleep=sleep
        )
        self._lock = threading.Lock()
        self._in_flight: set[str] = set()
        self._ledger = ledger or CompletionLedger(self.idempotency_window_s)
        self._executor: ThreadPoolExecutor | None = None

    @property
    def idempotency_window_s(self) -> float:
        return self._config.idempotency_window_hours * 3600

    @property
    def ledger(self) -> CompletionLedger:
        return self._ledger

    def _claim(self, request: IngestionRequest) -> bool:
        """Reserve the ISRC for a new run; False means the trigger collapses."""
        with self._lock:
            if request.isrc in self._in_flight:
                logger.info("Ingestion of %s already in flight; trigger collapsed", request.isrc)
                return False
            recent = self._ledger.completed_recently(request.isrc, self._wall_clock())
            if recent and not request.force:
                logger.info("Ingestion of %s completed recently; skipping", request.isrc)
                return False
            self._in_flight.add(request.isrc)
            return True

    def run(self, request: IngestionRequest) -> IngestionSummary | None:
        """Run one ingestion in the calling thread.

        Returns:
            The completion summary, or None when the trigger was deduplicated.

        Raises:
            StepFailedError: If a step fails for good (the failure signal
                has already been published).
        """
        if not self._claim(request):
            return None
        return self._execute(request)

    def submit(self, request: IngestionRequest) -> Future[IngestionSummary | None]:
        """Run one ingestion in the background; deduplicated triggers resolve to None."""
        if not self._claim(request):
            done: Future[IngestionSummary | None] = Future()
            done.set_result(None)
            return done
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._config.concurrency, thread_name_prefix="ingest"
                )
            executor = self._executor
        return executor.submit(self._execute, request)

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)

    def _execute(self, request: IngestionRequest) -> IngestionSummary:
        run_id = uuid.uuid4().hex
        try:
            with self._semaphore:
                waited = self._throttle.acquire()
                if waited:
                    logger.info("Ingestion of %s throttled for %.1fs", request.isrc, waited)
                ctx = StepContext(
                    run_id,
                    request,
                    retries=self._config.retries,
                    backoff_base_s=self._config.backoff_base_s,
                    sleep=self._sleep,
                    on_completed=self._sink.completed,
                )
                logger.info("Starting ingestion run %s for %s", run_id, request.isrc)
                summary = self._workflow.run(request, ctx)
            self._ledger.record(request.isrc, self._wall_clock())
        except StepFailedError as e:
            self._sink.failed(
                IngestionFailure(
                    isrc=request.isrc,
                    run_id=run_id,
                    failed_step=e.step,
                    error=e.error,
                    retries=e.retries,
                    failed_at=_utc_now(),
                )
            )
            raise
        finally:
            with self._lock:
                self._in_flight.discard(request.isrc)

        return summary
