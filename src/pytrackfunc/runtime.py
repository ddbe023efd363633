"""Function timing collector used by code instrumented with pytrackfunc.

Instrumented functions open ``with pytrackfunc.hook(name, start):`` on
entry. When the block exits, the elapsed time is queued and a background
thread appends it to the trace log as ``<name> 1 <elapsed_ns>``.

The log goes to ``pytrackfunc.log`` in the working directory, or to the
path in ``PYTRACKFUNC_LOG``. Summarize it with ``pytrackfunc summarize``.

This file only needs the standard library. pytrackfunc never overwrites
it once it exists.
"""

from __future__ import annotations

import atexit
import os
import queue
import sys
import threading
import time

LOG_PATH_ENV = "PYTRACKFUNC_LOG"
DEFAULT_LOG_PATH = "pytrackfunc.log"
QUEUE_SIZE = 1000
PUT_TIMEOUT_S = 0.1
SHUTDOWN_TIMEOUT_S = 2.0

_SHUTDOWN = object()


class Collector:
    """Bounded event queue drained by a single writer thread.

    Producers block while the queue is full, as long as the writer is
    alive. Once the writer is gone (log unopenable, write failure or
    shutdown) events are dropped and counted instead.
    """

    def __init__(self, log_path: str, maxsize: int = QUEUE_SIZE) -> None:
        self.log_path = log_path
        self.dropped = 0
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._alive = threading.Event()
        self._alive.set()
        self._drop_lock = threading.Lock()
        self._thread = threading.Thread(target=self._run, name="pytrackfunc-writer", daemon=True)
        self._thread.start()

    @property
    def alive(self) -> bool:
        return self._alive.is_set()

    def publish(self, name: str, elapsed_ns: int) -> None:
        event = (name, elapsed_ns)
        while self._alive.is_set():
            try:
                self._queue.put(event, timeout=PUT_TIMEOUT_S)
            except queue.Full:
                continue
            if not self._alive.is_set():
                # The writer stopped while we were putting; nobody drains now.
                self._discard_queued()
            return
        self._count_dropped()

    def flush(self, timeout: float = 5.0) -> bool:
        """Wait until everything queued so far is written. False on timeout."""
        if not self._alive.is_set():
            return False
        marker = threading.Event()
        try:
            self._queue.put(marker, timeout=timeout)
        except queue.Full:
            return False
        return marker.wait(timeout)

    def close(self, timeout: float = SHUTDOWN_TIMEOUT_S) -> None:
        """Write out queued events and stop the writer."""
        if not self._alive.is_set():
            return
        try:
            self._queue.put(_SHUTDOWN, timeout=timeout)
        except queue.Full:
            return
        self._thread.join(timeout)

    def _count_dropped(self, n: int = 1) -> None:
        with self._drop_lock:
            self.dropped += n

    def _run(self) -> None:
        try:
            log = open(self.log_path, "a", encoding="utf-8")  # noqa: SIM115
        except OSError as exc:
            print(f"pytrackfunc: failed to open log file: {exc}", file=sys.stderr)
            self._stop()
            return

        with log:
            try:
                self._drain_into(log)
            except OSError as exc:
                print(f"pytrackfunc: failed to write log file: {exc}", file=sys.stderr)
                self._stop()

    def _drain_into(self, log) -> None:
        while True:
            item = self._queue.get()
            if item is _SHUTDOWN:
                self._alive.clear()
                log.flush()
                self._discard_queued()
                return
            if isinstance(item, threading.Event):
                log.flush()
                item.set()
                continue
            name, elapsed_ns = item
            log.write(f"{name} 1 {elapsed_ns}\n")
            if self._queue.empty():
                log.flush()

    def _stop(self) -> None:
        """Mark the writer dead and release anything still queued."""
        self._alive.clear()
        self._discard_queued()

    def _discard_queued(self) -> None:
        """Count queued events as dropped and wake any flush waiters."""
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return
            if isinstance(item, threading.Event):
                item.set()
            elif item is not _SHUTDOWN:
                self._count_dropped()


class Stop:
    """Returned by ``hook``: call it, or use it as a context manager, to record."""

    __slots__ = ("_collector", "name", "start")

    def __init__(self, collector: Collector, name: str, start: int) -> None:
        self._collector = collector
        self.name = name
        self.start = start

    def __call__(self) -> None:
        self._collector.publish(self.name, time.perf_counter_ns() - self.start)

    def __enter__(self) -> Stop:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self()


_lock = threading.Lock()
_collector: Collector | None = None


def _ensure_started() -> Collector:
    global _collector
    collector = _collector
    if collector is not None:
        return collector
    with _lock:
        if _collector is None:
            _collector = Collector(os.environ.get(LOG_PATH_ENV, DEFAULT_LOG_PATH))
            atexit.register(_collector.close)
        return _collector


def hook(name: str, start: int) -> Stop:
    """Start tracking one call of ``name`` that began at ``start`` (perf_counter_ns)."""
    return Stop(_ensure_started(), name, start)


def flush(timeout: float = 5.0) -> bool:
    """Wait until queued events reach the log. False if nothing is running."""
    collector = _collector
    if collector is None:
        return False
    return collector.flush(timeout)


def dropped() -> int:
    """Events discarded because the writer was not running."""
    collector = _collector
    return collector.dropped if collector is not None else 0
