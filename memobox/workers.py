from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Generic, List, Optional, TypeVar

LOGGER = logging.getLogger("workers")

T = TypeVar("T")

_SENTINEL = object()


class WorkerPool(Generic[T]):
    """Run a handler over queued items on a fixed number of threads.

    Items are taken in submission order. A failing item is logged and skipped.
    """

    def __init__(self, name: str, handler: Callable[[T], None], concurrency: int = 1) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.name = name
        self.concurrency = concurrency
        self._handler = handler
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._stop = threading.Event()
        self._threads: List[threading.Thread] = []

    def __enter__(self) -> "WorkerPool[T]":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.stop()

    def start(self) -> None:
        if self._threads:
            return
        self._stop.clear()
        for index in range(self.concurrency):
            thread = threading.Thread(
                target=self._worker_loop, name=f"{self.name}-{index + 1}", daemon=True
            )
            thread.start()
            self._threads.append(thread)

    def submit(self, item: T) -> None:
        self._queue.put(item)

    def join(self) -> None:
        """Block until every submitted item has been handled."""
        self._queue.join()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        for _ in self._threads:
            self._queue.put(_SENTINEL)
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []

    def _worker_loop(self) -> None:
        while not self._stop.is_set():
            try:
                item = self._queue.get(timeout=0.5)
            except queue.Empty:
                continue

            if item is _SENTINEL:
                self._queue.task_done()
                break

            try:
                self._handler(item)  # type: ignore[arg-type]
            except Exception:
                LOGGER.exception("%s failed to process %s", self.name, item)
            finally:
                self._queue.task_done()
