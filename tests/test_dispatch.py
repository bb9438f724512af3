"""Tests for the bounded-concurrency dispatcher."""

from __future__ import annotations

import threading
import time

import pytest

from git_flotilla.cancel import CancelToken
from git_flotilla.dispatch import dispatch
from git_flotilla.errors import ConfigurationError, OperationCancelled
from git_flotilla.models import OperationOutcome, OperationStatus


def ok(path: str) -> OperationOutcome:
    return OperationOutcome(path=path, relative_path=path, operation="test", status=OperationStatus.UP_TO_DATE)


def test_results_are_index_aligned():
    repos = [f"repo-{i}" for i in range(20)]

    def worker(path):
        # Later repositories finish first.
        time.sleep(0.001 * (20 - int(path.split("-")[1])))
        return ok(path)

    results = dispatch(repos, worker, concurrency=8)
    assert [r.path for r in results] == repos


def test_empty_input():
    assert dispatch([], ok) == []


def test_concurrency_is_bounded():
    lock = threading.Lock()
    in_flight = 0
    peak = 0

    def worker(path):
        nonlocal in_flight, peak
        with lock:
            in_flight += 1
            peak = max(peak, in_flight)
        time.sleep(0.01)
        with lock:
            in_flight -= 1
        return ok(path)

    dispatch([str(i) for i in range(12)], worker, concurrency=3)
    assert 1 <= peak <= 3


def test_worker_exception_is_isolated():
    def worker(path):
        if path == "bad":
            raise RuntimeError("boom")
        return ok(path)

    results = dispatch(["a", "bad", "c"], worker, concurrency=2)
    assert [r.status for r in results] == [
        OperationStatus.UP_TO_DATE,
        OperationStatus.ERROR,
        OperationStatus.UP_TO_DATE,
    ]
    assert results[1].message == "boom"
    assert isinstance(results[1].error, RuntimeError)


def test_custom_error_outcome():
    def error_outcome(path, error):
        return OperationOutcome(path=path, relative_path="rel/" + path, operation="pull", status=OperationStatus.ERROR)

    def worker(path):
        raise ValueError(path)

    results = dispatch(["x"], worker, error_outcome=error_outcome)
    assert results[0].relative_path == "rel/x"
    assert results[0].operation == "pull"


def test_progress_reports_every_repository():
    calls = []
    lock = threading.Lock()

    def progress(done, total, path):
        with lock:
            calls.append((done, total, path))

    repos = ["a", "b", "c", "d"]
    dispatch(repos, ok, concurrency=2, progress=progress)
    assert sorted(c[0] for c in calls) == [1, 2, 3, 4]
    assert {c[1] for c in calls} == {4}
    assert sorted(c[2] for c in calls) == repos


def test_invalid_concurrency():
    with pytest.raises(ConfigurationError):
        dispatch(["a"], ok, concurrency=0)


def test_cancellation_raises_after_in_flight_workers_settle():
    token = CancelToken()
    touched = []
    lock = threading.Lock()

    def worker(path):
        with lock:
            touched.append(path)
        if path == "0":
            token.cancel()
        time.sleep(0.01)
        return ok(path)

    with pytest.raises(OperationCancelled):
        dispatch([str(i) for i in range(50)], worker, concurrency=1, cancel=token)
    assert len(touched) < 50


def test_already_cancelled_token_runs_nothing():
    token = CancelToken()
    token.cancel()
    touched = []

    def worker(path):
        touched.append(path)
        return ok(path)

    with pytest.raises(OperationCancelled):
        dispatch(["a", "b"], worker, cancel=token)
    assert touched == []
