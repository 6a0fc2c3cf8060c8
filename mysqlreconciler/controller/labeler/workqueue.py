# Copyright (c) 2020, 2026, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

"""De-duplicating work queue with per key exponential backoff

A key is either waiting in the queue, being processed by a worker, or both
(when it was re-added while processing). It's never waiting twice and never
processed by two workers at once: a key added during processing only becomes
available again after done() is called for it.

Once shut down the queue hands out no more keys, including ones already
queued. Workers finish what they are processing and exit.
"""

from collections import deque
from logging import Logger, getLogger
from typing import Callable, Dict, List, Optional, Set, Tuple
import heapq
import itertools
import threading
import time

from ..errors import ConfigurationError


class WorkQueue:
    def __init__(self, name: str, base_delay: float = 0.005,
                 max_delay: float = 1000.0) -> None:
        self.name = name
        self.base_delay = base_delay
        self.max_delay = max_delay

        self._cond = threading.Condition()
        self._queue: deque = deque()
        self._dirty: Set[str] = set()
        self._processing: Set[str] = set()
        # (ready_at, seq, key), entries not matching _ready_at are stale
        self._waiting: List[Tuple[float, int, str]] = []
        self._ready_at: Dict[str, float] = {}
        self._seq = itertools.count()
        self._failures: Dict[str, int] = {}
        self._shutting_down = False

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    def waiting(self) -> int:
        """Number of keys scheduled for a later add"""
        with self._cond:
            return len(self._ready_at)

    @property
    def shutting_down(self) -> bool:
        with self._cond:
            return self._shutting_down

    def add(self, key: str) -> None:
        with self._cond:
            self._add(key)

    def _add(self, key: str) -> None:
        if self._shutting_down or key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            # queued once the current worker calls done()
            return
        self._queue.append(key)
        self._cond.notify()

    def add_after(self, key: str, delay: float) -> None:
        if delay <= 0:
            self.add(key)
            return
        with self._cond:
            if self._shutting_down:
                return
            ready_at = time.monotonic() + delay
            current = self._ready_at.get(key)
            if current is not None and current <= ready_at:
                return
            self._ready_at[key] = ready_at
            heapq.heappush(self._waiting, (ready_at, next(self._seq), key))
            # wake up a getter so it recomputes how long to sleep
            self._cond.notify()

    def when(self, key: str) -> float:
        with self._cond:
            failures = self._failures.get(key, 0)
            self._failures[key] = failures + 1
        return min(self.base_delay * (2 ** failures), self.max_delay)

    def add_rate_limited(self, key: str) -> None:
        self.add_after(key, self.when(key))

    def forget(self, key: str) -> None:
        with self._cond:
            self._failures.pop(key, None)

    def num_requeues(self, key: str) -> int:
        with self._cond:
            return self._failures.get(key, 0)

    def _promote_ready(self) -> Optional[float]:
        """Move due keys to the queue, return seconds until the next one"""
        now = time.monotonic()
        while self._waiting:
            ready_at, _, key = self._waiting[0]
            if self._ready_at.get(key) != ready_at:
                heapq.heappop(self._waiting)
                continue
            if ready_at > now:
                return ready_at - now
            heapq.heappop(self._waiting)
            del self._ready_at[key]
            self._add(key)
        return None

    def get(self, timeout: Optional[float] = None) -> Tuple[Optional[str], bool]:
        """
        Block until a key is available. Returns (key, shutdown); key is None
        on shutdown or when timeout expires.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                if self._shutting_down:
                    return None, True
                next_ready = self._promote_ready()
                if self._queue:
                    break

                wait = next_ready
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return None, False
                    wait = remaining if wait is None else min(wait, remaining)
                self._cond.wait(wait)

            key = self._queue.popleft()
            self._processing.add(key)
            self._dirty.discard(key)
            return key, False

    def done(self, key: str) -> None:
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty and not self._shutting_down:
                self._queue.append(key)
                self._cond.notify()

    def shutdown(self) -> None:
        with self._cond:
            self._shutting_down = True
            self._waiting.clear()
            self._ready_at.clear()
            self._cond.notify_all()


class Worker:
    """
    Runs reconcile(key) on a pool of threads fed by a WorkQueue. Failed keys
    are retried with backoff up to max_retries times, then dropped until
    they get added again.
    """

    def __init__(self, name: str, max_retries: int, threadiness: int,
                 reconcile: Callable[[str], None],
                 queue: Optional[WorkQueue] = None,
                 logger: Optional[Logger] = None) -> None:
        self.name = name
        self.max_retries = max_retries
        self.threadiness = threadiness
        self.reconcile = reconcile
        self.queue = queue if queue is not None else WorkQueue(name)
        self.logger = logger or getLogger(f"{name.lower()}-worker")
        self._threads: List[threading.Thread] = []

    def process_next_entry(self) -> bool:
        key, shutdown = self.queue.get()
        if shutdown:
            return False

        try:
            self.reconcile(key)
        except Exception as err:
            self.handle_error(err, key)
        else:
            self.queue.forget(key)
        finally:
            self.queue.done(key)
        return True

    def handle_error(self, err: Exception, key: str) -> None:
        if isinstance(err, ConfigurationError):
            # retrying won't help until the configuration is fixed
            self.queue.forget(key)
            self.logger.error(f"Dropping {self.name} {key} out of the queue: {err}")
            return

        if self.queue.num_requeues(key) < self.max_retries:
            self.logger.info(f"Error syncing {self.name} {key}: {err}")
            self.queue.add_rate_limited(key)
            return

        self.queue.forget(key)
        self.logger.error(f"Dropping {self.name} {key} out of the queue: {err}")

    def _run_worker(self) -> None:
        while self.process_next_entry():
            pass

    def start(self) -> None:
        for i in range(self.threadiness):
            t = threading.Thread(target=self._run_worker, daemon=True,
                                 name=f"{self.name.lower()}-worker-{i}")
            t.start()
            self._threads.append(t)

    def stop(self) -> None:
        """Stop handing out keys and wait for running reconciles"""
        self.queue.shutdown()
        for t in self._threads:
            t.join()
        self._threads = []

    def run(self, stop: threading.Event) -> None:
        self.logger.info(f"Starting {self.name} workers")
        self.start()
        stop.wait()
        self.logger.info(f"Shutting down {self.name} workers")
        self.stop()
