"""
chronicle/serializer.py -- Per-key FIFO execution lanes.

Every read-merge-write against one entity record (and every write to the
conflict log) goes through the lane for its key.  Operations on one key run
one at a time in submission order while different keys proceed in parallel.

A lane is only a queue: all lanes share one bounded thread pool, and a
key's queue is dropped as soon as it drains, so a long-lived engine over a
large registry holds no per-entity threads.  An operation that raises
delivers the exception through its ``Future``; later operations on the same
key still run.

Usage::

    from chronicle.serializer import UpdateSerializer

    serializer = UpdateSerializer()
    record = serializer.run("elena", store.read, "Elena")
    future = serializer.submit("elena", apply_batch, facts)
    serializer.close()

A lane must never be waited on from inside a lane operation: ``run(...)``
called from an operation already running on the pool can deadlock.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

logger = logging.getLogger(__name__)

# Reserved key for the conflict log; entity keys are lower-cased names.
CONFLICT_LOG_KEY = "\x00conflict-log"

DEFAULT_WORKERS = 4


def entity_key(name: str) -> str:
    return name.lower()


class UpdateSerializer:
    """Runs queued operations per key, FIFO, on a shared worker pool.

    Parameters
    ----------
    max_workers : int, optional
        Upper bound on threads across all keys (default ``DEFAULT_WORKERS``).
    """

    def __init__(self, max_workers: int = DEFAULT_WORKERS) -> None:
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="chronicle-lane")
        self._queues: dict[str, deque] = {}
        self._lock = threading.Lock()
        self._closed = False

    def submit(self, key: str, fn: Callable[..., Any], *args: Any) -> Future:
        """Queue ``fn(*args)`` on the lane for *key*.

        Returns
        -------
        concurrent.futures.Future
            Resolves to ``fn``'s return value or raises its exception.

        Raises
        ------
        RuntimeError
            If the serializer has been closed.
        """
        future: Future = Future()
        with self._lock:
            if self._closed:
                raise RuntimeError("update serializer is closed")
            queue = self._queues.get(key)
            if queue is not None:
                # A drain for this key is already scheduled or running.
                queue.append((future, fn, args))
            else:
                self._queues[key] = deque([(future, fn, args)])
                self._pool.submit(self._drain, key)
        return future

    def run(self, key: str, fn: Callable[..., Any], *args: Any) -> Any:
        """Queue ``fn(*args)`` on the lane for *key* and wait for the result."""
        return self.submit(key, fn, *args).result()

    def close(self) -> None:
        """Finish queued work and shut the worker pool down."""
        with self._lock:
            self._closed = True
        self._pool.shutdown(wait=True)
        logger.debug("Update serializer closed")

    @property
    def lane_count(self) -> int:
        """Number of keys with queued or running work."""
        with self._lock:
            return len(self._queues)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _drain(self, key: str) -> None:
        while True:
            with self._lock:
                queue = self._queues[key]
                if not queue:
                    del self._queues[key]
                    return
                future, fn, args = queue.popleft()
            if not future.set_running_or_notify_cancel():
                continue
            try:
                result = fn(*args)
            except BaseException as exc:
                future.set_exception(exc)
            else:
                future.set_result(result)

    def __enter__(self) -> UpdateSerializer:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
