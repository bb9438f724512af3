"""Bounded-concurrency dispatcher for per-repository workers."""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed

from .cancel import CancelToken
from .config import DEFAULT_PARALLEL
from .errors import ConfigurationError, OperationCancelled
from .log import KeyValueLogger, null_logger
from .models import OperationOutcome, OperationStatus

Worker = Callable[[str], OperationOutcome]
ProgressCallback = Callable[[int, int, str], None]
ErrorOutcome = Callable[[str, Exception], OperationOutcome]


def default_error_outcome(path: str, error: Exception) -> OperationOutcome:
    return OperationOutcome(
        path=path,
        relative_path=path,
        operation="",
        status=OperationStatus.ERROR,
        message=str(error),
        error=error,
    )


def dispatch(
    repos: Sequence[str],
    worker: Worker,
    concurrency: int = DEFAULT_PARALLEL,
    progress: ProgressCallback | None = None,
    cancel: CancelToken | None = None,
    error_outcome: ErrorOutcome = default_error_outcome,
    logger: KeyValueLogger | None = None,
) -> list[OperationOutcome]:
    """Run ``worker`` over ``repos`` with at most ``concurrency`` in flight.

    The result list is index-aligned with ``repos``. A worker exception is
    captured into that repository's outcome (status ``error``) and never
    aborts the batch. Workers that start after ``cancel`` fires return without
    touching their repository; once in-flight workers settle, a cancelled
    batch raises OperationCancelled.
    """
    if concurrency < 1:
        raise ConfigurationError(f"concurrency must be >= 1, got {concurrency}")
    logger = logger or null_logger()
    cancel = cancel or CancelToken()

    total = len(repos)
    outcomes: list[OperationOutcome | None] = [None] * total
    if total == 0:
        return []

    slots = threading.Semaphore(concurrency)
    progress_lock = threading.Lock()
    started = 0

    def report_start(path: str) -> None:
        nonlocal started
        with progress_lock:
            started += 1
            if progress is not None:
                progress(started, total, path)

    def run_one(index: int, path: str) -> None:
        if cancel.cancelled:
            return
        with slots:
            if cancel.cancelled:
                return
            report_start(path)
            try:
                outcome = worker(path)
            except OperationCancelled as e:
                outcome = error_outcome(path, e)
            except Exception as e:
                logger.error("worker failed", path=path, error=e)
                outcome = error_outcome(path, e)
            outcomes[index] = outcome

    with ThreadPoolExecutor(max_workers=min(concurrency, total)) as pool:
        futures = [pool.submit(run_one, index, path) for index, path in enumerate(repos)]
        try:
            for future in as_completed(futures):
                future.result()
        except KeyboardInterrupt:
            # Queued workers see the token and return; running git commands are killed.
            cancel.cancel()
            raise

    if cancel.cancelled:
        done = sum(1 for outcome in outcomes if outcome is not None)
        logger.warning("batch cancelled", completed=done, total=total)
        raise OperationCancelled(f"cancelled after {done} of {total} repositories")

    results: list[OperationOutcome] = []
    for path, outcome in zip(repos, outcomes):
        if outcome is None:
            outcome = error_outcome(path, RuntimeError("worker returned no outcome"))
        results.append(outcome)
    return results
