"""Bounded pool of recognition workers with exclusive checkout."""

import queue
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Generic, TypeVar

from src.utils.logger import get_logger

logger = get_logger(__name__)

W = TypeVar("W")


class WorkerPool(Generic[W]):
    """Lazily populated pool of at most ``size`` workers.

    A worker is handed to exactly one caller at a time through
    ``checkout()``; callers beyond the pool size block until a worker
    is returned.

    Args:
        factory: Callable creating a new worker.
        size: Maximum number of workers.
    """

    def __init__(self, factory: Callable[[], W], size: int = 4) -> None:
        if size < 1:
            raise ValueError("Worker pool size must be at least 1")
        self._factory = factory
        self.size = size
        self._idle: queue.LifoQueue[W] = queue.LifoQueue()
        self._created = 0
        self._lock = threading.Lock()
        self._closed = False

    @property
    def created(self) -> int:
        """Number of workers created so far."""
        return self._created

    def _acquire(self) -> W:
        if self._closed:
            raise RuntimeError("Worker pool is closed")
        try:
            return self._idle.get_nowait()
        except queue.Empty:
            pass
        with self._lock:
            can_create = self._created < self.size
            if can_create:
                self._created += 1
        if not can_create:
            return self._idle.get()

        logger.debug("Creating worker %d/%d", self._created, self.size)
        try:
            return self._factory()
        except Exception:
            with self._lock:
                self._created -= 1
            raise

    @contextmanager
    def checkout(self) -> Iterator[W]:
        """Borrow a worker for the duration of the ``with`` block."""
        worker = self._acquire()
        try:
            yield worker
        finally:
            self._idle.put(worker)

    def close(self) -> None:
        """Refuse further checkouts and drop idle workers."""
        self._closed = True
        while True:
            try:
                self._idle.get_nowait()
            except queue.Empty:
                break
        logger.debug("Worker pool closed after creating %d worker(s)", self._created)
