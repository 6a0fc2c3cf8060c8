# Copyright (c) 2020, 2026, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import threading
import time

import pytest

from mysqlreconciler.controller.errors import ConfigurationError
from mysqlreconciler.controller.labeler.workqueue import WorkQueue, Worker


@pytest.fixture
def queue() -> WorkQueue:
    return WorkQueue("test", base_delay=0.01, max_delay=0.05)


def test_pending_key_is_queued_once(queue) -> None:
    queue.add("ns/a")
    queue.add("ns/b")
    queue.add("ns/a")

    assert len(queue) == 2
    assert queue.get(timeout=0) == ("ns/a", False)
    assert queue.get(timeout=0) == ("ns/b", False)
    assert queue.get(timeout=0) == (None, False)


def test_key_added_while_processing_waits_for_done(queue) -> None:
    queue.add("ns/a")
    key, _ = queue.get(timeout=0)

    queue.add("ns/a")
    queue.add("ns/a")
    # not handed out to a second worker while the first one is busy
    assert queue.get(timeout=0) == (None, False)

    queue.done(key)
    assert queue.get(timeout=0) == ("ns/a", False)
    queue.done("ns/a")
    assert queue.get(timeout=0) == (None, False)


def test_backoff_grows_and_is_capped(queue) -> None:
    assert queue.when("ns/a") == pytest.approx(0.01)
    assert queue.when("ns/a") == pytest.approx(0.02)
    assert queue.when("ns/a") == pytest.approx(0.04)
    assert queue.when("ns/a") == pytest.approx(0.05)
    assert queue.num_requeues("ns/a") == 4
    assert queue.when("ns/b") == pytest.approx(0.01)

    queue.forget("ns/a")
    assert queue.num_requeues("ns/a") == 0
    assert queue.when("ns/a") == pytest.approx(0.01)


def test_rate_limited_key_becomes_available_later(queue) -> None:
    queue.add_rate_limited("ns/a")
    assert len(queue) == 0
    assert queue.waiting() == 1

    key, shutdown = queue.get(timeout=2)
    assert (key, shutdown) == ("ns/a", False)
    assert queue.waiting() == 0


def test_shutdown_wakes_up_getters(queue) -> None:
    results = []

    def getter():
        results.append(queue.get())

    t = threading.Thread(target=getter)
    t.start()
    time.sleep(0.05)
    queue.shutdown()
    t.join(timeout=2)

    assert not t.is_alive()
    assert results == [(None, True)]

    queue.add("ns/a")
    assert len(queue) == 0


def test_shutdown_stops_handing_out_queued_keys(queue) -> None:
    queue.add("ns/a")
    queue.add("ns/b")
    key, _ = queue.get(timeout=0)
    queue.add(key)

    queue.shutdown()

    assert queue.get(timeout=0) == (None, True)
    # re-added while in flight, but not queued again after shutdown
    queue.done(key)
    assert len(queue) == 1
    assert queue.get(timeout=0) == (None, True)


def test_waiting_key_keeps_earliest_ready_time(queue) -> None:
    queue.add_after("ns/a", 0.5)
    queue.add_after("ns/a", 60)
    queue.add_after("ns/a", 0.01)
    queue.add_after("ns/b", 60)

    assert queue.waiting() == 2
    assert queue.get(timeout=2) == ("ns/a", False)
    queue.done("ns/a")
    assert queue.waiting() == 1
    assert queue.get(timeout=0.6) == (None, False)


def test_worker_uses_given_queue() -> None:
    queue = WorkQueue("test")
    worker = Worker("Test", max_retries=1, threadiness=1, reconcile=lambda key: None, queue=queue)

    assert worker.queue is queue


def test_worker_stop_lets_in_flight_key_finish() -> None:
    started = threading.Event()
    release = threading.Event()
    calls = []

    def reconcile(key):
        calls.append(key)
        started.set()
        release.wait(2)

    worker = Worker("Test", max_retries=0, threadiness=1, reconcile=reconcile)
    for key in ("ns/a", "ns/b", "ns/c"):
        worker.queue.add(key)
    stop = threading.Event()
    t = threading.Thread(target=worker.run, args=(stop,))
    t.start()

    assert started.wait(2)
    stop.set()
    time.sleep(0.05)
    release.set()
    t.join(timeout=5)

    assert not t.is_alive()
    assert calls == ["ns/a"]


def test_worker_does_not_retry_configuration_errors() -> None:
    attempts = []

    def reconcile(key):
        attempts.append(key)
        raise ConfigurationError("missing 'MYSQL_ROOT_USERNAME' env in MySQL Pod")

    queue = WorkQueue("test", base_delay=0.001, max_delay=0.001)
    worker = Worker("Test", max_retries=3, threadiness=1, reconcile=reconcile, queue=queue)
    queue.add("ns/a")

    assert worker.process_next_entry()

    assert attempts == ["ns/a"]
    assert queue.num_requeues("ns/a") == 0
    assert queue.waiting() == 0
    assert queue.get(timeout=0.1) == (None, False)


def test_worker_drops_key_after_max_retries() -> None:
    attempts = []

    def reconcile(key):
        attempts.append(key)
        raise RuntimeError("boom")

    queue = WorkQueue("test", base_delay=0.001, max_delay=0.001)
    worker = Worker("Test", max_retries=3, threadiness=1, reconcile=reconcile, queue=queue)
    queue.add("ns/a")

    for _ in range(4):
        assert worker.process_next_entry()

    assert attempts == ["ns/a"] * 4
    assert queue.num_requeues("ns/a") == 0
    assert queue.waiting() == 0
    assert queue.get(timeout=0.05) == (None, False)


def test_worker_forgets_failures_on_success() -> None:
    outcomes = [RuntimeError("boom"), None]

    def reconcile(key):
        err = outcomes.pop(0)
        if err:
            raise err

    queue = WorkQueue("test", base_delay=0.001, max_delay=0.001)
    worker = Worker("Test", max_retries=5, threadiness=1, reconcile=reconcile, queue=queue)
    queue.add("ns/a")

    assert worker.process_next_entry()
    assert queue.num_requeues("ns/a") == 1
    assert worker.process_next_entry()
    assert queue.num_requeues("ns/a") == 0
    assert outcomes == []


def test_worker_never_runs_a_key_concurrently() -> None:
    lock = threading.Lock()
    running = set()
    overlaps = []
    calls = []

    def reconcile(key):
        with lock:
            if key in running:
                overlaps.append(key)
            running.add(key)
        time.sleep(0.01)
        with lock:
            running.discard(key)
            calls.append(key)

    worker = Worker("Test", max_retries=0, threadiness=4, reconcile=reconcile)
    stop = threading.Event()
    t = threading.Thread(target=worker.run, args=(stop,))
    t.start()
    for _ in range(20):
        for key in ("ns/a", "ns/b"):
            worker.queue.add(key)
        time.sleep(0.002)
    time.sleep(0.1)
    stop.set()
    t.join(timeout=5)

    assert not t.is_alive()
    assert overlaps == []
    assert set(calls) == {"ns/a", "ns/b"}
