# Copyright (c) Syntropy Systems
"""Fire-and-forget task dispatch.

Submitters get control back immediately; failures of the dispatched task
are logged here and never surface to the caller that submitted it.
"""
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable

logger = logging.getLogger(__name__)


class Dispatcher:
    """One-way asynchronous task submission on a small thread pool."""

    def __init__(self, max_workers: int = 4) -> None:
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="coilsim-dispatch",
        )
        self._pending: set[Future[object]] = set()
        self._idle = threading.Condition()

    def submit(
        self,
        fn: Callable[..., object],
        *args: object,
        description: str = "task",
    ) -> Future[object]:
        """Schedule fn(*args) and return without waiting for it."""
        with self._idle:
            future = self._pool.submit(fn, *args)
            self._pending.add(future)

        def _done(done: Future[object]) -> None:
            if done.cancelled():
                logger.warning("Dispatch of %s was cancelled", description)
            else:
                exc = done.exception()
                if exc is not None:
                    logger.error("Dispatch of %s failed: %s", description, exc, exc_info=exc)
            # Only counted as finished once its outcome has been logged.
            with self._idle:
                self._pending.discard(done)
                self._idle.notify_all()

        future.add_done_callback(_done)
        return future

    def drain(self, timeout: float | None = None) -> bool:
        """Block until every task submitted so far has finished.

        Returns False if the timeout expired with tasks still pending.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._idle:
            while self._pending:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    logger.warning("Drain timed out with %d tasks pending", len(self._pending))
                    return False
                _ = self._idle.wait(remaining)
        return True

    @property
    def pending_count(self) -> int:
        with self._idle:
            return len(self._pending)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting tasks; optionally wait for running ones."""
        self._pool.shutdown(wait=wait)
